"""Tests for the Ollama agent executor — HTTP is mocked with httpx.MockTransport."""

import json

import httpx
import pytest

from cronkit.agents.ollama import DEFAULT_SYSTEM_PROMPT, OllamaExecutor
from cronkit.core.errors import AgentError
from cronkit.scheduler.job import AgentJobConfig


def make_executor(handler, **kwargs) -> OllamaExecutor:
    return OllamaExecutor(transport=httpx.MockTransport(handler), **kwargs)


def chat_reply(content: str) -> httpx.Response:
    return httpx.Response(200, json={"message": {"role": "assistant", "content": content}, "done": True})


@pytest.mark.asyncio
async def test_chat_request_and_response():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return chat_reply("  Found 2 stale branches.\n")

    executor = make_executor(handler)
    text = await executor.execute(AgentJobConfig(model="llama3.1"), "List stale branches", "/repo")
    await executor.close()

    assert text == "Found 2 stale branches."
    request = requests[0]
    assert request.url == "http://localhost:11434/api/chat"
    body = json.loads(request.content)
    assert body["model"] == "llama3.1"
    assert body["stream"] is False
    assert body["messages"] == [
        {"role": "system", "content": DEFAULT_SYSTEM_PROMPT},
        {"role": "user", "content": "List stale branches"},
    ]
    assert "authorization" not in request.headers


@pytest.mark.asyncio
async def test_job_config_overrides():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return chat_reply("ok")

    config = AgentJobConfig(
        model="qwen2.5",
        api_key="secret",
        system_prompt="You are terse.",
        base_url="http://gpu-box:11434/",
    )
    executor = make_executor(handler)
    await executor.execute(config, "hi", "/tmp")
    await executor.close()

    request = requests[0]
    assert request.url == "http://gpu-box:11434/api/chat"
    assert request.headers["authorization"] == "Bearer secret"
    assert json.loads(request.content)["messages"][0]["content"] == "You are terse."


@pytest.mark.asyncio
async def test_server_error_is_retryable():
    executor = make_executor(lambda request: httpx.Response(503, text="busy"))
    with pytest.raises(AgentError) as exc:
        await executor.execute(AgentJobConfig(model="m"), "hi", "/tmp")
    await executor.close()

    assert exc.value.retryable is True
    assert exc.value.model == "m"
    assert "503" in exc.value.message


@pytest.mark.asyncio
async def test_client_error_not_retryable():
    executor = make_executor(lambda request: httpx.Response(404, json={"error": "model not found"}))
    with pytest.raises(AgentError) as exc:
        await executor.execute(AgentJobConfig(model="missing"), "hi", "/tmp")
    await executor.close()
    assert exc.value.retryable is False


@pytest.mark.asyncio
async def test_error_in_body():
    executor = make_executor(lambda request: httpx.Response(200, json={"error": "out of memory"}))
    with pytest.raises(AgentError, match="out of memory"):
        await executor.execute(AgentJobConfig(model="m"), "hi", "/tmp")
    await executor.close()


@pytest.mark.asyncio
async def test_invalid_json():
    executor = make_executor(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(AgentError, match="invalid JSON"):
        await executor.execute(AgentJobConfig(model="m"), "hi", "/tmp")
    await executor.close()


@pytest.mark.asyncio
async def test_connection_refused():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    executor = make_executor(handler)
    with pytest.raises(AgentError, match="Is Ollama running") as exc:
        await executor.execute(AgentJobConfig(model="m"), "hi", "/tmp")
    await executor.close()
    assert exc.value.retryable is True


@pytest.mark.asyncio
async def test_close_is_idempotent():
    executor = make_executor(lambda request: chat_reply("ok"))
    await executor.execute(AgentJobConfig(model="m"), "hi", "/tmp")
    await executor.close()
    await executor.close()


@pytest.mark.asyncio
async def test_default_model_when_job_has_none():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return chat_reply("ok")

    executor = make_executor(handler, model="qwen2.5")
    await executor.execute(AgentJobConfig(model=""), "hi", "/tmp")
    await executor.execute(AgentJobConfig(model="llama3.1"), "hi", "/tmp")
    await executor.close()
    assert [json.loads(r.content)["model"] for r in requests] == ["qwen2.5", "llama3.1"]


@pytest.mark.asyncio
async def test_no_model_at_all():
    executor = make_executor(lambda request: chat_reply("ok"))
    with pytest.raises(AgentError, match="No model"):
        await executor.execute(AgentJobConfig(model=""), "hi", "/tmp")
