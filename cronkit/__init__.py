"""
cronkit — cron-style job scheduling for shell commands and agent prompts.

Public API:
    from cronkit import CronManager, Job, parse
"""

__version__ = "0.1.0"

# Core
from cronkit.core.config import CronkitConfig
from cronkit.core.errors import (
    AlreadyRunningError,
    CronkitError,
    JobNotFoundError,
    ParseError,
    ScheduleExhaustedError,
)
from cronkit.core.events import Event, EventType

# Scheduler
from cronkit.scheduler.cron import Schedule, parse
from cronkit.scheduler.job import AgentJobConfig, ExecutionRecord, ExecutionStatus, Job, JobStatus
from cronkit.scheduler.manager import CronManager

# Stores
from cronkit.store.file import FileJobStore
from cronkit.store.memory import InMemoryJobStore

__all__ = [
    # Core
    "CronkitConfig",
    "CronkitError",
    "ParseError",
    "ScheduleExhaustedError",
    "JobNotFoundError",
    "AlreadyRunningError",
    "Event",
    "EventType",
    # Scheduler
    "Schedule",
    "parse",
    "Job",
    "JobStatus",
    "AgentJobConfig",
    "ExecutionRecord",
    "ExecutionStatus",
    "CronManager",
    # Stores
    "FileJobStore",
    "InMemoryJobStore",
]
