"""
Dispatcher — runs one job's payload and produces its execution record.

Shell jobs go through the ShellRunner; agent jobs through the injected
AgentExecutor. Whatever happens inside the payload — non-zero exit,
executor exception, missing executor, timeout, a bug in a runner — the
caller gets back a finished ExecutionRecord, never an exception.

The single exception is cancellation: asyncio.CancelledError is
re-raised so the engine can record the execution as cancelled and let
the task finish cancelling.
"""

from __future__ import annotations

import asyncio
import logging

from cronkit.agents.base import AgentExecutor
from cronkit.core.errors import ConfigurationError, DispatchError
from cronkit.scheduler.job import ExecutionRecord, Job
from cronkit.shell.base import ShellRunner

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Executes job payloads.

    Usage:
        dispatcher = Dispatcher(BashRunner(), workspace="/srv/app")
        record = await dispatcher.dispatch(job)
    """

    def __init__(
        self,
        shell: ShellRunner,
        executor: AgentExecutor | None = None,
        workspace: str = ".",
        default_timeout: float | None = None,
    ) -> None:
        self._shell = shell
        self._executor = executor
        self._workspace = workspace
        self._default_timeout = default_timeout

    @property
    def executor(self) -> AgentExecutor | None:
        return self._executor

    def set_executor(self, executor: AgentExecutor | None) -> None:
        self._executor = executor

    async def dispatch(
        self, job: Job, execution: ExecutionRecord | None = None
    ) -> ExecutionRecord:
        """
        Run *job* and return the finished record.

        Pass *execution* to reuse an id the caller has already announced
        (the engine emits job:started before dispatching).
        """
        execution = execution or ExecutionRecord.start(job.id)
        timeout = job.timeout if job.timeout is not None else self._default_timeout
        working_dir = job.working_dir or self._workspace

        try:
            if job.is_agent:
                return await self._run_agent(job, execution, working_dir, timeout)
            return await self._run_shell(job, execution, working_dir, timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Failure isolation: nothing escapes the dispatch boundary
            logger.warning(f"Job {job.name!r} ({job.id}) dispatch error: {e}")
            return execution.fail(f"{type(e).__name__}: {e}")

    async def _run_shell(
        self,
        job: Job,
        execution: ExecutionRecord,
        working_dir: str,
        timeout: float | None,
    ) -> ExecutionRecord:
        output = await self._shell.run(
            job.command,
            cwd=working_dir,
            env=job.env,
            timeout=timeout,
        )
        if output.timed_out:
            return execution.timed_out(timeout or 0, stdout=output.stdout, stderr=output.stderr)
        if output.signal is not None:
            return execution.fail(
                f"Killed by signal {output.signal}", stdout=output.stdout, stderr=output.stderr
            )
        return execution.complete(output.exit_code, output.stdout, output.stderr)

    async def _run_agent(
        self,
        job: Job,
        execution: ExecutionRecord,
        working_dir: str,
        timeout: float | None,
    ) -> ExecutionRecord:
        if self._executor is None:
            error = ConfigurationError("No agent executor configured for agent-mode cron job")
            logger.error(f"Job {job.name!r} ({job.id}): {error.message}")
            return execution.fail(f"ConfigurationError: {error.message}")
        if job.agent_config is None:
            raise DispatchError(f"Agent job {job.id} has no agent_config")

        call = self._executor.execute(
            job.agent_config,
            job.command,
            job.agent_config.workspace or working_dir,
        )
        try:
            text = await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            return execution.timed_out(timeout or 0)

        return execution.complete(None, text or "")
