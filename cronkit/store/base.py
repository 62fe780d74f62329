"""
Job Store interface.

Durable keyed collection of jobs plus their execution history.
Every operation is atomic with respect to a single job id.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from cronkit.scheduler.job import ExecutionRecord, Job

JobMutator = Callable[[Job], None]


class JobStore(ABC):
    """
    Abstract base class for job store backends.

    Jobs handed in are copied; jobs handed out are copies. Callers never
    share an object with the backend.

    Implementations:
        FileJobStore — JSON document on disk, default
        InMemoryJobStore — for testing and ephemeral use
    """

    async def initialize(self) -> None:
        """Load or create backing state. Safe to call more than once."""

    @abstractmethod
    async def create(self, job: Job) -> Job:
        """Insert a new job. Returns the stored copy."""
        ...

    @abstractmethod
    async def get(self, job_id: str) -> Job:
        """Return a job. Raises JobNotFoundError."""
        ...

    @abstractmethod
    async def list_jobs(self) -> list[Job]:
        """All jobs in creation order."""
        ...

    @abstractmethod
    async def update(self, job_id: str, mutator: JobMutator) -> Job:
        """
        Apply *mutator* to a copy of the job and persist the result.

        If the mutator raises, nothing is stored and the exception
        propagates. Raises JobNotFoundError for unknown ids.
        """
        ...

    @abstractmethod
    async def remove(self, job_id: str) -> None:
        """Delete a job. History is kept. Raises JobNotFoundError."""
        ...

    @abstractmethod
    async def append_history(self, job_id: str, record: ExecutionRecord) -> None:
        """Append a finished execution record."""
        ...

    @abstractmethod
    async def get_history(self, job_id: str, limit: int = 10) -> list[ExecutionRecord]:
        """Most recent records first. Works for removed jobs too."""
        ...

    @abstractmethod
    async def purge_history(self, job_id: str) -> int:
        """Drop all history for a job id. Returns the number of records removed."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
