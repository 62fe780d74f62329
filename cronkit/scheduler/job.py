"""
Scheduler data model — Job, AgentJobConfig and ExecutionRecord.

A Job describes what to run and when; its parsed Schedule is rebuilt
from the raw `schedule` text whenever the job is constructed or its
schedule is changed, so the two can never drift apart.

Everything serialises through to_dict()/from_dict() so the store
backends never need to know field details.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cronkit.scheduler.cron import Schedule, parse


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class JobStatus(str, Enum):
    """Administrative state of a job. Running is tracked per execution."""

    ACTIVE = "active"
    PAUSED = "paused"


class JobType(str, Enum):
    SHELL = "shell"
    AGENT = "agent"


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    RUNNING = "running"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


@dataclass
class AgentJobConfig:
    """How an agent job talks to its executor."""

    model: str
    api_key: str = ""
    workspace: str | None = None
    system_prompt: str | None = None
    base_url: str | None = None

    def to_dict(self) -> dict:
        return {
            "model": self.model,
            "api_key": self.api_key,
            "workspace": self.workspace,
            "system_prompt": self.system_prompt,
            "base_url": self.base_url,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "AgentJobConfig":
        return cls(
            model=d["model"],
            api_key=d.get("api_key", ""),
            workspace=d.get("workspace"),
            system_prompt=d.get("system_prompt"),
            base_url=d.get("base_url"),
        )


@dataclass
class Job:
    """A scheduled task."""

    name: str            # human label, not unique
    schedule: str        # raw cron text as accepted
    command: str         # shell command, or the prompt for agent jobs

    id: str = field(default_factory=_new_id)
    job_type: JobType = JobType.SHELL
    agent_config: AgentJobConfig | None = None
    status: JobStatus = JobStatus.ACTIVE
    working_dir: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None   # seconds, None = no deadline
    created_at: int = field(default_factory=lambda: int(time.time()))
    updated_at: int = field(default_factory=lambda: int(time.time()))
    last_run: float | None = None  # unix timestamp of the last start
    next_run: float | None = None  # unix timestamp of the next due minute
    run_count: int = 0
    fail_count: int = 0

    parsed: Schedule = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.parsed = parse(self.schedule)

    @property
    def active(self) -> bool:
        return self.status == JobStatus.ACTIVE

    @property
    def is_agent(self) -> bool:
        return self.job_type == JobType.AGENT

    def set_schedule(self, text: str) -> None:
        """Replace the schedule. Parses first, so a bad expression changes nothing."""
        parsed = parse(text)
        self.schedule = parsed.expression
        self.parsed = parsed

    def touch(self) -> None:
        self.updated_at = int(time.time())

    def copy(self) -> "Job":
        return Job.from_dict(self.to_dict())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "schedule": self.schedule,
            "command": self.command,
            "job_type": self.job_type.value,
            "agent_config": self.agent_config.to_dict() if self.agent_config else None,
            "status": self.status.value,
            "working_dir": self.working_dir,
            "env": dict(self.env),
            "timeout": self.timeout,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "last_run": self.last_run,
            "next_run": self.next_run,
            "run_count": self.run_count,
            "fail_count": self.fail_count,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Job":
        agent_config = d.get("agent_config")
        return cls(
            id=d["id"],
            name=d["name"],
            schedule=d["schedule"],
            command=d["command"],
            job_type=JobType(d.get("job_type", JobType.SHELL.value)),
            agent_config=AgentJobConfig.from_dict(agent_config) if agent_config else None,
            status=JobStatus(d.get("status", JobStatus.ACTIVE.value)),
            working_dir=d.get("working_dir"),
            env=dict(d.get("env") or {}),
            timeout=d.get("timeout"),
            created_at=d["created_at"],
            updated_at=d.get("updated_at", d["created_at"]),
            last_run=d.get("last_run"),
            next_run=d.get("next_run"),
            run_count=d.get("run_count", 0),
            fail_count=d.get("fail_count", 0),
        )


@dataclass
class ExecutionRecord:
    """
    One execution of one job.

    Created in RUNNING state by start(); finished exactly once through
    complete(), fail(), timed_out() or cancel(), each of which returns
    a new record rather than mutating this one.
    """

    job_id: str
    id: str = field(default_factory=_new_id)
    started_at: float = field(default_factory=time.time)
    ended_at: float | None = None
    status: ExecutionStatus = ExecutionStatus.RUNNING
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    error: str | None = None

    @classmethod
    def start(cls, job_id: str) -> "ExecutionRecord":
        return cls(job_id=job_id)

    @property
    def finished(self) -> bool:
        return self.status != ExecutionStatus.RUNNING

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    @property
    def duration_ms(self) -> int | None:
        if self.ended_at is None:
            return None
        return int((self.ended_at - self.started_at) * 1000)

    def complete(
        self, exit_code: int | None, stdout: str, stderr: str = ""
    ) -> "ExecutionRecord":
        """Finish with output. A non-zero exit code is a failure."""
        ok = exit_code is None or exit_code == 0
        return self._finish(
            ExecutionStatus.SUCCESS if ok else ExecutionStatus.FAILURE,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            error=None if ok else f"Process exited with code {exit_code}",
        )

    def fail(self, error: str, stdout: str = "", stderr: str = "") -> "ExecutionRecord":
        return self._finish(
            ExecutionStatus.FAILURE, stdout=stdout, stderr=stderr, error=error
        )

    def timed_out(self, seconds: float, stdout: str = "", stderr: str = "") -> "ExecutionRecord":
        return self._finish(
            ExecutionStatus.TIMEOUT,
            stdout=stdout,
            stderr=stderr,
            error=f"Timed out after {seconds:g}s",
        )

    def cancel(self) -> "ExecutionRecord":
        return self._finish(ExecutionStatus.CANCELLED, error="Execution cancelled")

    def _finish(self, status: ExecutionStatus, **changes: Any) -> "ExecutionRecord":
        data = self.to_dict()
        data.update(changes)
        data["status"] = status.value
        data["ended_at"] = time.time()
        return ExecutionRecord.from_dict(data)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "status": self.status.value,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ExecutionRecord":
        return cls(
            id=d["id"],
            job_id=d["job_id"],
            started_at=d["started_at"],
            ended_at=d.get("ended_at"),
            status=ExecutionStatus(d["status"]),
            stdout=d.get("stdout", ""),
            stderr=d.get("stderr", ""),
            exit_code=d.get("exit_code"),
            error=d.get("error"),
        )
