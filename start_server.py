#!/usr/bin/env python3
"""Container entry point: serve the route planning API on $PORT."""

import logging
import os
import sys

import uvicorn

logger = logging.getLogger("fieldroute.start")


def _port() -> int:
    raw = os.environ.get("PORT", "8000")
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid PORT value '{raw}', using 8000")
        return 8000


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = _port()
    logger.info(f"Starting route planning API on port {port}")
    # single worker; behind a proxy that sets X-Forwarded-* headers
    uvicorn.run(
        "fieldroute.main:app",
        app_dir=os.path.join(os.path.dirname(os.path.abspath(__file__)), "src"),
        host="0.0.0.0",
        port=port,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
