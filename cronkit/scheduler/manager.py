"""
CronManager — the public CRUD surface over store + engine.

Every schedule text is validated before a job is created or changed.
Text that is not a cron expression goes through the translator, when
one is configured. Every change is routed through the engine so the
working table the tick loop reads stays reconciled with the store.

Usage:
    manager = CronManager.from_config()
    await manager.initialize()

    job = await manager.add_job("backup", "0 2 * * *", "tar czf /tmp/b.tgz ~/data")
    await manager.start()
    ...
    record = await manager.run_job(job.id)
    history = await manager.get_history(job.id, limit=5)
    await manager.close()
"""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Callable

from cronkit.agents.base import AgentExecutor
from cronkit.agents.ollama import OllamaExecutor
from cronkit.core.bus import EventBus, EventHandler
from cronkit.core.config import CronkitConfig
from cronkit.core.errors import ConfigurationError, ParseError
from cronkit.core.events import Event, EventType
from cronkit.middleware.logging import EventLogger, setup_logging
from cronkit.scheduler.cron import parse
from cronkit.scheduler.dispatcher import Dispatcher
from cronkit.scheduler.engine import SchedulerEngine
from cronkit.scheduler.job import AgentJobConfig, ExecutionRecord, Job, JobStatus, JobType
from cronkit.scheduler.translate import Translator
from cronkit.shell.base import ShellRunner
from cronkit.shell.bash import BashRunner
from cronkit.store.base import JobStore
from cronkit.store.file import FileJobStore
from cronkit.store.memory import InMemoryJobStore

logger = logging.getLogger(__name__)

_UNSET = object()


class CronManager:
    """
    Cron manager for job scheduling and execution.

    Store and agent executor are injected, so the same manager runs
    against a JSON file in production and an in-memory store in tests.
    """

    def __init__(
        self,
        store: JobStore,
        *,
        shell: ShellRunner | None = None,
        executor: AgentExecutor | None = None,
        bus: EventBus | None = None,
        translator: Translator | None = None,
        workspace: str | Path | None = None,
        tz: tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
        default_timeout: float | None = None,
    ) -> None:
        self._store = store
        self._bus = bus or EventBus()
        self._translator = translator
        self._workspace = str(workspace or Path.cwd())
        self._dispatcher = Dispatcher(
            shell or BashRunner(),
            executor,
            workspace=self._workspace,
            default_timeout=default_timeout,
        )
        self._engine = SchedulerEngine(
            store, self._dispatcher, bus=self._bus, tz=tz, clock=clock
        )
        self._initialized = False

    @classmethod
    def from_config(
        cls,
        config: CronkitConfig | None = None,
        executor: AgentExecutor | None = None,
        translator: Translator | None = None,
        configure_logging: bool = True,
    ) -> "CronManager":
        """
        Build a manager from layered configuration (see CronkitConfig.load).

        Without an explicit executor, agent jobs go to Ollama at
        agent.base_url. Set configure_logging=False when the host
        application owns the "cronkit" logger.
        """
        config = config or CronkitConfig.load()
        if configure_logging:
            console_level, file_level = config.get_log_levels()
            setup_logging(config.get_log_dir(), console_level=console_level, file_level=file_level)

        if executor is None:
            executor = OllamaExecutor(
                base_url=config.agent.base_url,
                request_timeout=config.agent.request_timeout,
                model=config.agent.model,
            )
            logger.info(f"Agent executor: {config.agent.model} at {config.agent.base_url}")

        history_limit = config.scheduler.history_limit

        store: JobStore
        if config.scheduler.store_backend == "memory":
            store = InMemoryJobStore(history_limit=history_limit)
        else:
            store = FileJobStore(config.get_store_path(), history_limit=history_limit)

        bus = EventBus()
        if config.logging.log_events:
            bus.use(EventLogger(config.get_log_dir()).middleware)

        return cls(
            store,
            shell=BashRunner(config.shell.executable),
            executor=executor,
            bus=bus,
            translator=translator,
            workspace=config.get_workspace(),
            tz=config.get_timezone(),
            default_timeout=config.shell.default_timeout,
        )

    # ── Properties ────────────────────────────────────────────────────────────

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def engine(self) -> SchedulerEngine:
        return self._engine

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def executor(self) -> AgentExecutor | None:
        return self._dispatcher.executor

    @property
    def is_running(self) -> bool:
        return self._engine.is_running

    def running_jobs(self) -> list[str]:
        return self._engine.running_jobs()

    def set_agent_executor(self, executor: AgentExecutor | None) -> None:
        """Set the executor used by agent-mode jobs."""
        self._dispatcher.set_executor(executor)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe to scheduler events, e.g. "job:completed" or "job:*"."""
        self._bus.on(event_type, handler)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Load the store and the engine's working table."""
        await self._store.initialize()
        await self._engine.load()
        self._initialized = True

    async def start(self) -> None:
        """Start the background tick loop."""
        await self._ensure_initialized()
        await self._engine.start()

    async def stop(self) -> None:
        await self._engine.stop()

    async def close(self) -> None:
        await self._engine.stop()
        executor = self._dispatcher.executor
        if executor is not None:
            await executor.close()
        await self._store.close()
        self._initialized = False

    # ── Schedules ─────────────────────────────────────────────────────────────

    def resolve_schedule(self, text: str) -> str:
        """
        Validate schedule text and return the normalised cron expression.

        Text that parses as a cron expression is used as-is. Otherwise,
        when a translator is configured, the text is translated and the
        translator's output is parsed like user input.

        Raises:
            ParseError: invalid expression (also for bad translator output)
            TranslationError: the translator did not recognise the text
        """
        text = text.strip()
        try:
            return parse(text).expression
        except ParseError:
            if self._translator is None:
                raise
        translated = self._translator.translate(text)
        logger.debug(f"Translated {text!r} -> {translated!r}")
        return parse(translated).expression

    # ── CRUD ─────────────────────────────────────────────────────────────────

    async def add_job(
        self,
        name: str,
        schedule: str,
        command: str,
        *,
        working_dir: str | None = None,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Job:
        """Add a shell-command job."""
        return await self._add(
            Job(
                name=name,
                schedule=self.resolve_schedule(schedule),
                command=command,
                working_dir=working_dir or self._workspace,
                env=dict(env or {}),
                timeout=timeout,
            )
        )

    async def add_agent_job(
        self,
        name: str,
        schedule: str,
        prompt: str,
        agent_config: AgentJobConfig,
        *,
        working_dir: str | None = None,
        timeout: float | None = None,
    ) -> Job:
        """
        Add an agent-mode job. When it fires, `prompt` is sent to the
        configured agent executor along with `agent_config`.
        """
        return await self._add(
            Job(
                name=name,
                schedule=self.resolve_schedule(schedule),
                command=prompt,
                job_type=JobType.AGENT,
                agent_config=agent_config,
                working_dir=working_dir or self._workspace,
                timeout=timeout,
            )
        )

    async def list_jobs(self) -> list[Job]:
        await self._ensure_initialized()
        return await self._store.list_jobs()

    async def get_job(self, job_id: str) -> Job:
        """Raises JobNotFoundError for unknown ids."""
        await self._ensure_initialized()
        return await self._store.get(job_id)

    async def find_jobs(self, name: str) -> list[Job]:
        """Jobs with this name. Names are labels, so there may be several."""
        return [job for job in await self.list_jobs() if job.name == name]

    async def pause_job(self, job_id: str) -> Job:
        await self._ensure_initialized()

        def pause(job: Job) -> None:
            job.status = JobStatus.PAUSED
            job.touch()

        job = await self._engine.mutate(job_id, pause)
        logger.info(f"Paused cron job: {job.name} ({job.id})")
        await self._emit(EventType.JOB_PAUSED, job)
        return job

    async def resume_job(self, job_id: str) -> Job:
        await self._ensure_initialized()

        def resume(job: Job) -> None:
            job.status = JobStatus.ACTIVE
            job.next_run = self._engine.next_run_for(job)
            job.touch()

        job = await self._engine.mutate(job_id, resume)
        logger.info(f"Resumed cron job: {job.name} ({job.id})")
        await self._emit(EventType.JOB_RESUMED, job)
        return job

    async def update_job(
        self,
        job_id: str,
        schedule: str | None = None,
        command: str | None = None,
        *,
        agent_config: AgentJobConfig | None = None,
        working_dir: str | None = None,
        env: dict[str, str] | None = None,
        timeout: object = _UNSET,
    ) -> Job:
        """
        Change schedule and/or payload. Status is left as it is.

        Pass `timeout=None` to clear a deadline; omit it to keep the
        current one.
        """
        await self._ensure_initialized()
        expression = self.resolve_schedule(schedule) if schedule is not None else None

        def apply(job: Job) -> None:
            if expression is not None:
                job.set_schedule(expression)
                job.next_run = self._engine.next_run_for(job)
            if command is not None:
                job.command = command
            if agent_config is not None:
                if not job.is_agent:
                    raise ConfigurationError(
                        f"Job {job.id} is a shell job; agent_config does not apply"
                    )
                job.agent_config = agent_config
            if working_dir is not None:
                job.working_dir = working_dir
            if env is not None:
                job.env = dict(env)
            if timeout is not _UNSET:
                job.timeout = timeout  # type: ignore[assignment]
            job.touch()

        job = await self._engine.mutate(job_id, apply)
        logger.info(f"Updated cron job: {job.name} ({job.id})")
        await self._emit(EventType.JOB_UPDATED, job)
        return job

    async def remove_job(self, job_id: str, purge: bool = False) -> None:
        """
        Delete a job. Its history stays readable through get_history()
        unless `purge` is set.
        """
        await self._ensure_initialized()
        job = await self._store.get(job_id)
        await self._engine.remove(job_id)
        if purge:
            await self._store.purge_history(job_id)
        logger.info(f"Removed cron job: {job.name} ({job.id})")
        await self._emit(EventType.JOB_REMOVED, job, purged=purge)

    # ── Execution & history ───────────────────────────────────────────────────

    async def run_job(self, job_id: str) -> ExecutionRecord:
        """
        Run a job now and wait for its record. Payload failures come back
        as a failed record, not an exception.

        Raises:
            JobNotFoundError, AlreadyRunningError
        """
        await self._ensure_initialized()
        return await self._engine.run_now(job_id)

    async def get_history(self, job_id: str, limit: int = 10) -> list[ExecutionRecord]:
        """Most recent first. Also works for removed jobs."""
        await self._ensure_initialized()
        return await self._store.get_history(job_id, limit)

    async def purge_history(self, job_id: str) -> int:
        await self._ensure_initialized()
        return await self._store.purge_history(job_id)

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    async def _add(self, job: Job) -> Job:
        await self._ensure_initialized()
        job.next_run = self._engine.next_run_for(job)
        stored = await self._engine.add(job)
        kind = "agent cron job" if stored.is_agent else "cron job"
        logger.info(f"Added {kind}: {stored.name} ({stored.id})")
        await self._emit(EventType.JOB_ADDED, stored)
        return stored

    async def _emit(self, event_type: str, job: Job, **extra: object) -> None:
        await self._engine.emit(Event(
            type=event_type,
            source="manager",
            data={"job_id": job.id, "job_name": job.name, **extra},
        ))
