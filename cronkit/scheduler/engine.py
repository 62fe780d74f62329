"""
SchedulerEngine — the background asyncio task that fires jobs.

Design:
- Keeps a working table {job_id: Job} loaded from the store. Every
  administrative change goes through add()/mutate()/remove(), which
  write the store first and only then replace the working copy.
- One asyncio.Lock per job id. It is held for check-and-set of status,
  schedule and the Running marker, and for store writes — never across
  a dispatch.
- The loop sleeps to each minute boundary and ticks. A tick snapshots
  the active jobs, then for each one re-checks it under its lock, so a
  pause that lands mid-tick either wins before the due check or not at
  all.
- Running markers (`_in_flight`) enforce no-overlap: a due job whose
  previous execution is still running is skipped for that tick, and a
  manual run fails fast with AlreadyRunningError.
- No missed-run replay: minutes that passed while the process was down
  (or the loop was blocked) are never fired late.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone, tzinfo
from typing import Callable

from cronkit.core.bus import EventBus
from cronkit.core.errors import (
    AlreadyRunningError,
    JobNotFoundError,
    ScheduleExhaustedError,
)
from cronkit.core.events import Event, EventType
from cronkit.scheduler.dispatcher import Dispatcher
from cronkit.scheduler.job import ExecutionRecord, ExecutionStatus, Job
from cronkit.store.base import JobMutator, JobStore

logger = logging.getLogger(__name__)

TICK_SLACK = 0.01  # seconds past the minute boundary before ticking

_OUTCOME_EVENTS = {
    ExecutionStatus.SUCCESS: EventType.JOB_COMPLETED,
    ExecutionStatus.FAILURE: EventType.JOB_FAILED,
    ExecutionStatus.TIMEOUT: EventType.JOB_TIMEOUT,
    ExecutionStatus.CANCELLED: EventType.JOB_CANCELLED,
}


class SchedulerEngine:
    """
    Background scheduler.

    Usage:
        engine = SchedulerEngine(store, Dispatcher(BashRunner()))
        await engine.start()
        ...
        await engine.stop()

    Tests drive time explicitly instead of starting the loop:
        tasks = await engine.tick(datetime(2026, 1, 5, 2, 0, tzinfo=timezone.utc))
        await engine.join()
    """

    def __init__(
        self,
        store: JobStore,
        dispatcher: Dispatcher,
        bus: EventBus | None = None,
        tz: tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._bus = bus or EventBus()
        self._tz = tz or timezone.utc
        self._clock = clock or (lambda: datetime.now(self._tz))
        self._table: dict[str, Job] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._in_flight: dict[str, asyncio.Task] = {}  # Running markers
        self._last_fired: dict[str, datetime] = {}     # minute last fired by tick
        self._task: asyncio.Task | None = None
        self._running = False
        self._loaded = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def bus(self) -> EventBus:
        return self._bus

    def now(self) -> datetime:
        return self._clock()

    def running_jobs(self) -> list[str]:
        """Ids of jobs with an execution in flight."""
        return list(self._in_flight)

    def is_job_running(self, job_id: str) -> bool:
        return job_id in self._in_flight

    def next_run_for(self, job: Job, after: datetime | None = None) -> float:
        """
        Unix timestamp of the job's next due minute.

        Raises:
            ScheduleExhaustedError: the schedule never fires
        """
        return job.parsed.next_after(after or self.now()).timestamp()

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def load(self) -> None:
        """(Re)load the working table from the store."""
        jobs = await self._store.list_jobs()
        self._table = {job.id: job for job in jobs}
        self._loaded = True
        logger.debug(f"Working table loaded: {len(jobs)} jobs")

    async def start(self) -> None:
        """Start the background tick loop. No-op if already running."""
        if self._running:
            return
        if not self._loaded:
            await self.load()
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="cronkit-scheduler")
        logger.info("SchedulerEngine started")
        await self.emit(Event(type=EventType.SCHEDULER_STARTED, source="scheduler"))

    async def stop(self, cancel_running: bool = True) -> None:
        """
        Stop the loop. In-flight dispatches are cancelled (recorded as
        cancelled) unless *cancel_running* is False, in which case they
        are awaited.
        """
        was_running = self._running
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

        tasks = list(self._in_flight.values())
        if cancel_running:
            for task in tasks:
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if was_running:
            logger.info("SchedulerEngine stopped")
            await self.emit(Event(type=EventType.SCHEDULER_STOPPED, source="scheduler"))

    async def join(self) -> None:
        """Wait until no dispatch is in flight."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    # ── Administrative changes ────────────────────────────────────────────────

    async def add(self, job: Job) -> Job:
        async with self._lock(job.id):
            stored = await self._store.create(job)
            self._table[stored.id] = stored
        return stored.copy()

    async def mutate(self, job_id: str, mutator: JobMutator) -> Job:
        """Apply *mutator* in the store, then reconcile the working copy."""
        async with self._lock(job_id):
            updated = await self._store.update(job_id, mutator)
            self._table[job_id] = updated
        return updated.copy()

    async def remove(self, job_id: str) -> None:
        async with self._lock(job_id):
            await self._store.remove(job_id)
            self._table.pop(job_id, None)
            self._last_fired.pop(job_id, None)

    # ── Execution ─────────────────────────────────────────────────────────────

    async def run_now(self, job_id: str) -> ExecutionRecord:
        """
        Dispatch a job immediately, ignoring schedule and pause state.

        Raises:
            JobNotFoundError: unknown id
            AlreadyRunningError: an execution of this job is in flight
        """
        async with self._lock(job_id):
            job = self._table.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job_id in self._in_flight:
                raise AlreadyRunningError(job_id)
            task = self._spawn(job.copy())
        return await task

    async def tick(self, now: datetime | None = None) -> list[asyncio.Task]:
        """
        One evaluation pass. Returns the dispatch tasks it spawned.

        Jobs are checked one at a time under their own lock; distinct
        jobs have no ordering guarantee.
        """
        minute = (now or self.now()).replace(second=0, microsecond=0)
        snapshot = [job_id for job_id, job in self._table.items() if job.active]

        spawned: list[asyncio.Task] = []
        for job_id in snapshot:
            task = await self._fire_if_due(job_id, minute)
            if task is not None:
                spawned.append(task)

        await self.emit(Event(
            type=EventType.SCHEDULER_TICK,
            source="scheduler",
            data={"minute": minute.isoformat(), "fired": len(spawned)},
        ))
        return spawned

    # ── Internal ──────────────────────────────────────────────────────────────

    def _lock(self, job_id: str) -> asyncio.Lock:
        lock = self._locks.get(job_id)
        if lock is None:
            lock = self._locks[job_id] = asyncio.Lock()
        return lock

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._seconds_to_next_minute())
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Scheduler tick error (non-fatal): {e}", exc_info=True)

    def _seconds_to_next_minute(self) -> float:
        now = self.now()
        return 60 - now.second - now.microsecond / 1_000_000 + TICK_SLACK

    async def _fire_if_due(self, job_id: str, minute: datetime) -> asyncio.Task | None:
        async with self._lock(job_id):
            job = self._table.get(job_id)
            if job is None or not job.active:
                return None  # removed or paused since the snapshot
            if not job.parsed.is_due(minute):
                return None
            if self._last_fired.get(job_id) == minute:
                return None  # at most once per scheduled minute
            if job_id in self._in_flight:
                logger.debug(f"Job {job.name!r} still executing, skipping tick")
                return None
            self._last_fired[job_id] = minute
            return self._spawn(job.copy())

    def _spawn(self, job: Job) -> asyncio.Task:
        """Set the Running marker and start the dispatch. Caller holds the job lock."""
        execution = ExecutionRecord.start(job.id)
        task = asyncio.create_task(
            self._execute(job, execution), name=f"cronkit:{job.name}:{execution.id}"
        )
        self._in_flight[job.id] = task
        # A task cancelled before its first step never reaches _execute's finally
        task.add_done_callback(lambda t: self._task_done(job.id, t))
        return task

    def _release(self, job_id: str, task: asyncio.Task) -> None:
        if self._in_flight.get(job_id) is task:
            del self._in_flight[job_id]

    def _task_done(self, job_id: str, task: asyncio.Task) -> None:
        self._release(job_id, task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Dispatch task {task.get_name()} failed: {error}", exc_info=error)

    async def _execute(self, job: Job, execution: ExecutionRecord) -> ExecutionRecord:
        logger.info(f"Firing job {job.name!r} (id={job.id}, type={job.job_type.value})")
        try:
            try:
                await self.emit(self._job_event(EventType.JOB_STARTED, job, execution))
                record = await self._dispatcher.dispatch(job, execution)
            except asyncio.CancelledError:
                record = execution.cancel()
                await asyncio.shield(self._finish(job, record))
                raise
            await self._finish(job, record)
            return record
        finally:
            # Released only after history and stats are written
            self._release(job.id, asyncio.current_task())

    async def _finish(self, job: Job, record: ExecutionRecord) -> None:
        try:
            await self._store.append_history(job.id, record)
        except Exception as e:
            logger.error(
                f"Failed to record execution {record.id} of job {job.id}: {e}", exc_info=True
            )

        async with self._lock(job.id):
            if job.id in self._table:
                try:
                    updated = await self._store.update(
                        job.id, lambda j: self._apply_run_stats(j, record)
                    )
                    self._table[job.id] = updated
                except JobNotFoundError:
                    logger.debug(f"Job {job.id} removed during execution")
                except Exception as e:
                    logger.error(
                        f"Failed to update run stats of job {job.id}: {e}", exc_info=True
                    )

        level = logging.INFO if record.succeeded else logging.WARNING
        logger.log(
            level,
            f"Job {job.name!r} finished: {record.status.value}"
            + (f" ({record.error})" if record.error else ""),
        )
        event_type = _OUTCOME_EVENTS.get(record.status, EventType.JOB_FAILED)
        await self.emit(self._job_event(event_type, job, record))

    def _apply_run_stats(self, job: Job, record: ExecutionRecord) -> None:
        job.last_run = record.started_at
        if record.succeeded:
            job.run_count += 1
        else:
            job.fail_count += 1
        try:
            job.next_run = self.next_run_for(job)
        except ScheduleExhaustedError:
            job.next_run = None
        job.touch()

    @staticmethod
    def _job_event(event_type: str, job: Job, record: ExecutionRecord) -> Event:
        data = {
            "job_id": job.id,
            "job_name": job.name,
            "execution_id": record.id,
            "status": record.status.value,
        }
        if record.error:
            data["error"] = record.error
        return Event(type=event_type, source=f"scheduler:{job.name}", data=data)

    async def emit(self, event: Event) -> None:
        """Emit, logging instead of raising. Events never break scheduling."""
        try:
            await self._bus.emit(event)
        except Exception as e:
            logger.error(f"Error emitting {event.type}: {e}")
