"""
Ollama Agent Executor — runs agent-job prompts against Ollama's chat API.

API docs: https://github.com/ollama/ollama/blob/main/docs/api.md

This executor:
- Sends one non-streamed request to /api/chat per execution
- Uses the job's model, system prompt and base_url (model and base_url
  fall back to the executor defaults when the job has none)
- Sends the job's api_key as a bearer token, for proxies that need one
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from cronkit.agents.base import AgentExecutor
from cronkit.core.errors import AgentError
from cronkit.scheduler.job import AgentJobConfig

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are completing a scheduled task. "
    "Be concise and clear. Do not ask follow-up questions."
)


class OllamaExecutor(AgentExecutor):
    """
    Agent executor for Ollama.

    Usage:
        executor = OllamaExecutor(base_url="http://localhost:11434")
        manager.set_agent_executor(executor)
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        request_timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
        model: str = "",
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._request_timeout = request_timeout
        self._transport = transport
        self._clients: dict[str, httpx.AsyncClient] = {}

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def model(self) -> str:
        return self._model

    async def _get_client(self, base_url: str) -> httpx.AsyncClient:
        """Get or create the HTTP client for an endpoint."""
        client = self._clients.get(base_url)
        if client is None or client.is_closed:
            client = httpx.AsyncClient(
                base_url=base_url,
                transport=self._transport,
                timeout=httpx.Timeout(
                    connect=10.0,
                    read=self._request_timeout,   # agents can take a while
                    write=10.0,
                    pool=10.0,
                ),
            )
            self._clients[base_url] = client
        return client

    async def execute(self, config: AgentJobConfig, prompt: str, working_dir: str) -> str:
        model = config.model or self._model
        if not model:
            raise AgentError("No model configured for agent job")
        base_url = (config.base_url or self._base_url).rstrip("/")
        client = await self._get_client(base_url)

        payload: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": config.system_prompt or DEFAULT_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "stream": False,
        }
        headers = {"Authorization": f"Bearer {config.api_key}"} if config.api_key else {}

        logger.debug(f"Agent request to {base_url} model={model} cwd={working_dir}")

        try:
            response = await client.post("/api/chat", json=payload, headers=headers)
        except httpx.ConnectError as e:
            raise AgentError(
                f"Cannot connect to Ollama at {base_url}. "
                f"Is Ollama running? Error: {e}",
                model=model,
                retryable=True,
            ) from e
        except httpx.TimeoutException as e:
            raise AgentError(
                f"Ollama request timed out: {e}",
                model=model,
                retryable=True,
            ) from e

        if response.status_code != 200:
            raise AgentError(
                f"Ollama API error ({response.status_code}): {response.text}",
                model=model,
                retryable=response.status_code >= 500,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AgentError(
                f"Ollama returned invalid JSON: {e}", model=model
            ) from e

        if "error" in data:
            raise AgentError(f"Ollama error: {data['error']}", model=model)

        return (data.get("message") or {}).get("content", "").strip()

    async def close(self) -> None:
        """Close the HTTP clients."""
        for client in self._clients.values():
            if not client.is_closed:
                await client.aclose()
        self._clients.clear()
