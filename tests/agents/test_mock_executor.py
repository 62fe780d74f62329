"""Tests for the mock and function agent executors."""

import pytest

from cronkit.agents.base import FunctionExecutor
from cronkit.agents.mock import MockAgentExecutor
from cronkit.core.errors import AgentError
from cronkit.scheduler.job import AgentJobConfig

CONFIG = AgentJobConfig(model="llama3.1")


@pytest.mark.asyncio
async def test_default_response():
    """Mock returns default response when no responses queued."""
    mock = MockAgentExecutor()
    assert await mock.execute(CONFIG, "hello", "/tmp") == "Mock agent done."


@pytest.mark.asyncio
async def test_set_multiple_responses():
    """Multiple responses are returned in order."""
    mock = MockAgentExecutor()
    mock.set_responses(["First response", "Second response"])

    assert await mock.execute(CONFIG, "a", "/tmp") == "First response"
    assert await mock.execute(CONFIG, "b", "/tmp") == "Second response"
    assert await mock.execute(CONFIG, "c", "/tmp") == "Mock agent done."


@pytest.mark.asyncio
async def test_call_tracking():
    mock = MockAgentExecutor()
    await mock.execute(CONFIG, "Refactor auth", "/repo")

    assert mock.call_count == 1
    assert mock.last_prompt == "Refactor auth"
    assert mock.last_config is CONFIG
    assert mock.all_calls == [{"config": CONFIG, "prompt": "Refactor auth", "working_dir": "/repo"}]


@pytest.mark.asyncio
async def test_set_failure():
    mock = MockAgentExecutor()
    mock.set_failure("model overloaded")

    with pytest.raises(AgentError, match="model overloaded"):
        await mock.execute(CONFIG, "x", "/tmp")
    assert await mock.execute(CONFIG, "x", "/tmp") == "Mock agent done."


@pytest.mark.asyncio
async def test_reset():
    mock = MockAgentExecutor()
    mock.set_response("queued")
    await mock.execute(CONFIG, "x", "/tmp")
    mock.set_response("left over")
    mock.reset()

    assert mock.call_count == 0
    assert mock.last_prompt is None
    assert mock.all_calls == []
    assert await mock.execute(CONFIG, "x", "/tmp") == "Mock agent done."


@pytest.mark.asyncio
async def test_function_executor():
    async def run(config, prompt, working_dir):
        return f"{config.model}:{prompt}:{working_dir}"

    executor = FunctionExecutor(run)
    assert await executor.execute(CONFIG, "go", "/w") == "llama3.1:go:/w"
    await executor.close()
