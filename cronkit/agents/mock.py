"""
Mock Agent Executor — for testing.

Returns configurable responses without making any API calls.
Tracks all calls for test assertions.
"""

from __future__ import annotations

import asyncio

from cronkit.core.errors import AgentError
from cronkit.agents.base import AgentExecutor
from cronkit.scheduler.job import AgentJobConfig


class MockAgentExecutor(AgentExecutor):
    """
    Mock executor that returns pre-configured responses.

    Usage in tests:
        mock = MockAgentExecutor()
        mock.set_response("Refactored 3 files")

        text = await mock.execute(config, "Refactor auth", "/tmp")
        assert text == "Refactored 3 files"
        assert mock.last_prompt == "Refactor auth"

    For failure testing:
        mock.set_failure("model overloaded")

    For overlap testing, set `delay` so each call stays in flight.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay

        # Response queue — each execute() call pops the first one
        self._responses: list[str | Exception] = []

        # Default response if queue is empty
        self._default_response = "Mock agent done."

        # Call tracking
        self.call_count: int = 0
        self.last_prompt: str | None = None
        self.last_config: AgentJobConfig | None = None
        self.all_calls: list[dict] = []

    def set_response(self, text: str) -> None:
        """Queue a text response for the next execute() call."""
        self._responses.append(text)

    def set_responses(self, texts: list[str]) -> None:
        for text in texts:
            self.set_response(text)

    def set_failure(self, message: str) -> None:
        """Queue a failure for the next execute() call."""
        self._responses.append(AgentError(message))

    async def execute(self, config: AgentJobConfig, prompt: str, working_dir: str) -> str:
        self.call_count += 1
        self.last_prompt = prompt
        self.last_config = config
        self.all_calls.append(
            {"config": config, "prompt": prompt, "working_dir": working_dir}
        )

        if self.delay:
            await asyncio.sleep(self.delay)

        response = self._responses.pop(0) if self._responses else self._default_response
        if isinstance(response, Exception):
            raise response
        return response

    def reset(self) -> None:
        self._responses.clear()
        self.call_count = 0
        self.last_prompt = None
        self.last_config = None
        self.all_calls.clear()
