"""Read access to service jobs owned by the job store."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Iterable, Optional

from ..models.domain import ASSIGNABLE_JOB_STATUSES, Job, Point

logger = logging.getLogger(__name__)

JOB_COLUMNS = "id, shop_id, job_number, address, latitude, longitude, scheduled_date, status"
# below the PostgREST max_rows default of 1000
JOB_PAGE_SIZE = 500


def _coerce_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(str(value).replace(",", ""))
    except ValueError as exc:
        raise ValueError(f"Unable to parse float from value '{value}'") from exc


def _coordinate(row: dict) -> Optional[Point]:
    latitude = _coerce_float(row.get("latitude"))
    longitude = _coerce_float(row.get("longitude"))
    if latitude is None or longitude is None:
        return None
    if not (-90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0):
        logger.warning(f"Job {row.get('id')} has out-of-range coordinates ({latitude}, {longitude}); treating as not geocoded")
        return None
    return Point(latitude, longitude)


def job_from_row(row: dict) -> Job:
    """Build a Job from a ``jobs`` table row.

    A missing or out-of-range lat/lng means the job is not geocoded.
    """
    scheduled = row["scheduled_date"]
    if isinstance(scheduled, str):
        scheduled = date.fromisoformat(scheduled[:10])
    return Job(
        id=str(row["id"]),
        shop_id=str(row["shop_id"]),
        job_number=row.get("job_number"),
        address=(row.get("address") or "").strip(),
        coordinate=_coordinate(row),
        scheduled_date=scheduled,
        status=row.get("status") or "pending",
    )


class JobStore(ABC):
    @abstractmethod
    def get_assignable_jobs(self, shop_id: str, date_from: date, date_to: date) -> list[Job]:
        """Jobs of the shop scheduled within the inclusive range whose status is assignable."""
        raise NotImplementedError

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[Job]:
        raise NotImplementedError

    @abstractmethod
    def get_jobs(self, job_ids: Iterable[str]) -> dict[str, Job]:
        raise NotImplementedError


class InMemoryJobStore(JobStore):
    def __init__(self, jobs: Iterable[Job] = ()) -> None:
        self._jobs: dict[str, Job] = {job.id: job for job in jobs}

    def add(self, job: Job) -> None:
        self._jobs[job.id] = job

    def set_status(self, job_id: str, status: str) -> None:
        self._jobs[job_id].status = status

    def get_assignable_jobs(self, shop_id: str, date_from: date, date_to: date) -> list[Job]:
        return [
            job
            for job in self._jobs.values()
            if job.shop_id == shop_id and date_from <= job.scheduled_date <= date_to and job.is_assignable
        ]

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def get_jobs(self, job_ids: Iterable[str]) -> dict[str, Job]:
        return {job_id: self._jobs[job_id] for job_id in job_ids if job_id in self._jobs}


class SupabaseJobStore(JobStore):
    """Job store backed by the ``jobs`` table."""

    def __init__(self, client, table: str = "jobs") -> None:
        self._client = client
        self._table = table

    def _rows_to_jobs(self, rows: Iterable[dict]) -> list[Job]:
        jobs: list[Job] = []
        for row in rows:
            try:
                jobs.append(job_from_row(row))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping invalid job row {row.get('id')}: {e}")
        return jobs

    def get_assignable_jobs(self, shop_id: str, date_from: date, date_to: date) -> list[Job]:
        rows: list[dict] = []
        offset = 0
        while True:
            response = (
                self._client.table(self._table)
                .select(JOB_COLUMNS)
                .eq("shop_id", shop_id)
                .gte("scheduled_date", date_from.isoformat())
                .lte("scheduled_date", date_to.isoformat())
                .in_("status", list(ASSIGNABLE_JOB_STATUSES))
                .order("id")
                .range(offset, offset + JOB_PAGE_SIZE - 1)
                .execute()
            )
            page = response.data or []
            rows.extend(page)
            if len(page) < JOB_PAGE_SIZE:
                return self._rows_to_jobs(rows)
            offset += JOB_PAGE_SIZE

    def get_job(self, job_id: str) -> Optional[Job]:
        response = self._client.table(self._table).select(JOB_COLUMNS).eq("id", job_id).limit(1).execute()
        jobs = self._rows_to_jobs(response.data or [])
        return jobs[0] if jobs else None

    def get_jobs(self, job_ids: Iterable[str]) -> dict[str, Job]:
        ids = list(dict.fromkeys(job_ids))
        if not ids:
            return {}
        response = self._client.table(self._table).select(JOB_COLUMNS).in_("id", ids).execute()
        return {job.id: job for job in self._rows_to_jobs(response.data or [])}
