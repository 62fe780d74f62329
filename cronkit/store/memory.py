"""
In-memory job store — for testing and ephemeral use.

Simple dict-based storage. Data lost when process exits.
"""

from __future__ import annotations

import asyncio

from cronkit.core.errors import JobNotFoundError
from cronkit.scheduler.job import ExecutionRecord, Job
from cronkit.store.base import JobMutator, JobStore


class InMemoryJobStore(JobStore):
    """
    In-memory job store.

    Usage:
        store = InMemoryJobStore()
        await store.create(job)
        assert (await store.get(job.id)).name == job.name
    """

    def __init__(self, history_limit: int | None = None) -> None:
        self._jobs: dict[str, Job] = {}
        self._history: dict[str, list[ExecutionRecord]] = {}
        self._history_limit = history_limit
        self._lock = asyncio.Lock()

    async def create(self, job: Job) -> Job:
        async with self._lock:
            self._jobs[job.id] = job.copy()
            return job.copy()

    async def get(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job.copy()

    async def list_jobs(self) -> list[Job]:
        return [job.copy() for job in self._jobs.values()]

    async def update(self, job_id: str, mutator: JobMutator) -> Job:
        async with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            updated = current.copy()
            mutator(updated)
            self._jobs[job_id] = updated
            return updated.copy()

    async def remove(self, job_id: str) -> None:
        async with self._lock:
            if self._jobs.pop(job_id, None) is None:
                raise JobNotFoundError(job_id)

    async def append_history(self, job_id: str, record: ExecutionRecord) -> None:
        async with self._lock:
            records = self._history.setdefault(job_id, [])
            records.append(ExecutionRecord.from_dict(record.to_dict()))
            if self._history_limit is not None and len(records) > self._history_limit:
                del records[: len(records) - self._history_limit]

    async def get_history(self, job_id: str, limit: int = 10) -> list[ExecutionRecord]:
        records = self._history.get(job_id, [])
        newest = list(reversed(records))[: max(limit, 0)]
        return [ExecutionRecord.from_dict(r.to_dict()) for r in newest]

    async def purge_history(self, job_id: str) -> int:
        async with self._lock:
            return len(self._history.pop(job_id, []))

    async def close(self) -> None:
        self._jobs.clear()
        self._history.clear()
