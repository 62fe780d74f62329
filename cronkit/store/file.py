"""
FileJobStore — JSON document persistence for jobs and history.

File: ~/.cronkit/jobs.json (configurable)

Document:
    {
      "version": 1,
      "jobs":    {"<id>": {...Job.to_dict()}},            # creation order
      "history": {"<job_id>": [{...record}, ...]}         # oldest first
    }

The whole document is cached in memory and rewritten on every mutation:
serialise → write <file>.tmp → fsync → os.replace. A crash at any point
leaves either the old document or the new one on disk, never a mix.
The in-memory cache only changes after the replace succeeded.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path

import aiofiles
import aiofiles.os

from cronkit.core.errors import CronkitError, JobNotFoundError, StoreError
from cronkit.scheduler.job import ExecutionRecord, Job
from cronkit.store.base import JobMutator, JobStore

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class FileJobStore(JobStore):
    """
    Durable JSON-file store. One asyncio.Lock guards cache and file.

    Usage:
        store = FileJobStore(Path("~/.cronkit/jobs.json"))
        await store.initialize()
        await store.create(job)
    """

    def __init__(self, path: Path | str | None = None, history_limit: int | None = 100) -> None:
        self._path = Path(path or (Path.home() / ".cronkit" / "jobs.json")).expanduser()
        self._history_limit = history_limit
        self._jobs: dict[str, Job] = {}
        self._history: dict[str, list[ExecutionRecord]] = {}
        self._lock = asyncio.Lock()
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    async def initialize(self) -> None:
        async with self._lock:
            await self._ensure_loaded()

    # ── Jobs ─────────────────────────────────────────────────────────────────

    async def create(self, job: Job) -> Job:
        async with self._lock:
            await self._ensure_loaded()
            jobs = dict(self._jobs)
            jobs[job.id] = job.copy()
            await self._write(jobs, self._history)
            self._jobs = jobs
            return job.copy()

    async def get(self, job_id: str) -> Job:
        async with self._lock:
            await self._ensure_loaded()
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job.copy()

    async def list_jobs(self) -> list[Job]:
        async with self._lock:
            await self._ensure_loaded()
            return [job.copy() for job in self._jobs.values()]

    async def update(self, job_id: str, mutator: JobMutator) -> Job:
        async with self._lock:
            await self._ensure_loaded()
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            updated = current.copy()
            mutator(updated)
            jobs = dict(self._jobs)
            jobs[job_id] = updated
            await self._write(jobs, self._history)
            self._jobs = jobs
            return updated.copy()

    async def remove(self, job_id: str) -> None:
        async with self._lock:
            await self._ensure_loaded()
            if job_id not in self._jobs:
                raise JobNotFoundError(job_id)
            jobs = {k: v for k, v in self._jobs.items() if k != job_id}
            await self._write(jobs, self._history)
            self._jobs = jobs

    # ── History ──────────────────────────────────────────────────────────────

    async def append_history(self, job_id: str, record: ExecutionRecord) -> None:
        async with self._lock:
            await self._ensure_loaded()
            records = self._history.get(job_id, []) + [
                ExecutionRecord.from_dict(record.to_dict())
            ]
            if self._history_limit is not None and len(records) > self._history_limit:
                records = records[len(records) - self._history_limit:]
            history = dict(self._history)
            history[job_id] = records
            await self._write(self._jobs, history)
            self._history = history

    async def get_history(self, job_id: str, limit: int = 10) -> list[ExecutionRecord]:
        async with self._lock:
            await self._ensure_loaded()
            records = self._history.get(job_id, [])
            newest = list(reversed(records))[: max(limit, 0)]
            return [ExecutionRecord.from_dict(r.to_dict()) for r in newest]

    async def purge_history(self, job_id: str) -> int:
        async with self._lock:
            await self._ensure_loaded()
            if job_id not in self._history:
                return 0
            history = {k: v for k, v in self._history.items() if k != job_id}
            await self._write(self._jobs, history)
            removed = len(self._history[job_id])
            self._history = history
            return removed

    async def close(self) -> None:
        async with self._lock:
            self._jobs = {}
            self._history = {}
            self._loaded = False

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def _ensure_loaded(self) -> None:
        """Read the document once. Caller holds the lock."""
        if self._loaded:
            return
        if not await aiofiles.os.path.exists(self._path):
            logger.debug(f"No job file at {self._path}, starting empty")
            self._loaded = True
            return

        try:
            async with aiofiles.open(self._path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except OSError as e:
            raise StoreError(f"Failed to read {self._path}: {e}") from e

        try:
            doc = json.loads(raw)
            jobs = {job_id: Job.from_dict(data) for job_id, data in doc.get("jobs", {}).items()}
            history = {
                job_id: [ExecutionRecord.from_dict(r) for r in records]
                for job_id, records in doc.get("history", {}).items()
            }
        except (ValueError, KeyError, TypeError, AttributeError, CronkitError) as e:
            raise StoreError(
                f"Corrupt job file {self._path}: {e}",
                details={"path": str(self._path)},
            ) from e

        self._jobs = jobs
        self._history = history
        self._loaded = True
        logger.debug(f"Loaded {len(jobs)} jobs from {self._path}")

    async def _write(
        self, jobs: dict[str, Job], history: dict[str, list[ExecutionRecord]]
    ) -> None:
        doc = {
            "version": FORMAT_VERSION,
            "jobs": {job_id: job.to_dict() for job_id, job in jobs.items()},
            "history": {
                job_id: [r.to_dict() for r in records]
                for job_id, records in history.items()
            },
        }
        text = json.dumps(doc, indent=2)
        tmp = self._path.with_name(self._path.name + ".tmp")

        try:
            await aiofiles.os.makedirs(self._path.parent, exist_ok=True)
            async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
                await f.write(text)
                await f.flush()
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, os.fsync, f.fileno())
            await aiofiles.os.replace(tmp, self._path)
        except OSError as e:
            try:
                await aiofiles.os.remove(tmp)
            except OSError:
                pass  # tmp was never created
            raise StoreError(f"Failed to write {self._path}: {e}") from e
