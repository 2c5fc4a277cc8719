"""Unassigned job pool."""

from __future__ import annotations

from datetime import date

from ...data.jobs_repository import JobStore
from ...models.domain import Job
from ...persistence.base import RouteStore


class AssignmentResolver:
    """Derives the unassigned pool from the job store and route stops on every call."""

    def __init__(self, jobs: JobStore, store: RouteStore) -> None:
        self.jobs = jobs
        self.store = store

    def list_unassigned_jobs(self, shop_id: str, date_from: date, date_to: date) -> list[Job]:
        if date_from > date_to:
            raise ValueError(f"date_from {date_from} is after date_to {date_to}.")
        candidates = self.jobs.get_assignable_jobs(shop_id, date_from, date_to)
        candidates = [job for job in candidates if job.is_assignable]
        assigned = self.store.assigned_job_ids(job.id for job in candidates)
        unassigned = [job for job in candidates if job.id not in assigned]
        unassigned.sort(key=lambda job: (job.scheduled_date, job.id))
        return unassigned
