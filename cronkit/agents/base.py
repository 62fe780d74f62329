"""
Agent Executor interface — the contract for running agent-job prompts.

The dispatcher never talks to a model API directly. It hands the
prompt and the job's AgentJobConfig to whatever executor the manager
was given, and records the returned text.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from cronkit.scheduler.job import AgentJobConfig

ExecuteFunc = Callable[[AgentJobConfig, str, str], Awaitable[str]]


class AgentExecutor(ABC):
    """
    Abstract base class for agent executors.

    Implementations:
        OllamaExecutor — chat completion over HTTP
        FunctionExecutor — wraps a plain async function
        MockAgentExecutor — for testing
    """

    @abstractmethod
    async def execute(self, config: AgentJobConfig, prompt: str, working_dir: str) -> str:
        """
        Run one prompt to completion.

        Args:
            config: Model, credentials and endpoint for this job
            prompt: The job's prompt text
            working_dir: Job working directory, for executors with file access

        Returns:
            The agent's response text.

        Raises:
            Any exception. The dispatcher records it as a failed execution.
        """
        ...

    async def close(self) -> None:
        """Release any held connections."""


class FunctionExecutor(AgentExecutor):
    """
    Adapts an async function to the executor interface.

    Usage:
        async def run(config, prompt, working_dir):
            return await my_agent.ask(prompt)

        manager.set_agent_executor(FunctionExecutor(run))
    """

    def __init__(self, func: ExecuteFunc) -> None:
        self._func = func

    async def execute(self, config: AgentJobConfig, prompt: str, working_dir: str) -> str:
        return await self._func(config, prompt, working_dir)
