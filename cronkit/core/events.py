"""
Scheduler events — types and constants.

The engine and manager emit one event per lifecycle step. Events flow
through the bus middleware chain, then to subscribers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
import time
import uuid


class EventType:
    """
    Event type constants.

    Hierarchical naming: "category:action"
    Supports wildcard matching: "job:*" matches "job:completed"
    """

    # Scheduler lifecycle
    SCHEDULER_STARTED = "scheduler:started"
    SCHEDULER_STOPPED = "scheduler:stopped"
    SCHEDULER_TICK = "scheduler:tick"

    # Administrative changes
    JOB_ADDED = "job:added"
    JOB_UPDATED = "job:updated"
    JOB_PAUSED = "job:paused"
    JOB_RESUMED = "job:resumed"
    JOB_REMOVED = "job:removed"

    # Executions
    JOB_STARTED = "job:started"
    JOB_COMPLETED = "job:completed"
    JOB_FAILED = "job:failed"
    JOB_TIMEOUT = "job:timeout"
    JOB_CANCELLED = "job:cancelled"

    # Wildcard
    ALL = "*"


@dataclass(slots=True)
class Event:
    """
    A single scheduler event.

    `data` always carries "job_id" for job:* events, plus
    "execution_id" for execution events.
    """

    type: str
    data: dict[str, Any] = field(default_factory=dict)
    source: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    timestamp: float = field(default_factory=time.time)
