"""Shared test fixtures for cronkit."""

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from cronkit.agents.mock import MockAgentExecutor
from cronkit.core.bus import EventBus
from cronkit.core.config import CronkitConfig
from cronkit.shell.base import ShellOutput, ShellRunner
from cronkit.store.memory import InMemoryJobStore

# Monday 2026-01-05 01:30 UTC
FIXED_NOW = datetime(2026, 1, 5, 1, 30, tzinfo=timezone.utc)


class FakeShell(ShellRunner):
    """
    Shell runner that never spawns a process.

    Results are looked up by command; unknown commands succeed with
    empty output. A result may be an exception, which run() raises.
    """

    def __init__(self) -> None:
        self.results: dict[str, ShellOutput | Exception] = {}
        self.calls: list[dict] = []
        self.delay = 0.0

    async def run(self, command, cwd=None, env=None, timeout=None) -> ShellOutput:
        self.calls.append({"command": command, "cwd": cwd, "env": env, "timeout": timeout})
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.get(command, ShellOutput(stdout="", stderr="", exit_code=0))
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def config():
    """Create a default config without loading from disk."""
    return CronkitConfig()


@pytest.fixture
def bus():
    """Create a fresh event bus."""
    return EventBus()


@pytest.fixture
def memory_store():
    return InMemoryJobStore()


@pytest.fixture
def fake_shell():
    return FakeShell()


@pytest.fixture
def mock_executor():
    """Create a mock agent executor."""
    return MockAgentExecutor()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def restore_logger():
    """Undo setup_logging() on the "cronkit" logger after a test."""
    logger = logging.getLogger("cronkit")
    handlers, level = list(logger.handlers), logger.level
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
