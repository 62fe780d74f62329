"""
Shell Runner interface — the contract for running job commands.

The dispatcher never calls subprocess directly. It goes through
this interface, so tests can swap in a fake and other platforms can
provide their own runner.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(slots=True)
class ShellOutput:
    """Result of one command."""

    stdout: str
    stderr: str
    exit_code: int | None  # None when killed or timed out
    duration_ms: int = 0
    timed_out: bool = False
    signal: int | None = None  # set when a signal ended the process


class ShellRunner(ABC):
    """
    Abstract base class for shell runners.

    Each run() is a fresh process — no state carries between jobs.

    Implementations:
        BashRunner — Unix (bash, falling back to /bin/sh)
    """

    @abstractmethod
    async def run(
        self,
        command: str,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> ShellOutput:
        """
        Run a command to completion.

        Args:
            command: Command string, interpreted by the shell
            cwd: Working directory (None = current directory)
            env: Extra environment variables layered over os.environ
            timeout: Seconds before killing (None = wait forever)

        Returns:
            ShellOutput with stdout and stderr as the process wrote
            them. A timeout is reported with timed_out=True and
            whatever output arrived before the kill, never raised.

        Raises:
            ShellError: the process could not be started at all
        """
        ...
