"""
Bash shell runner — for Linux and macOS.

Runs each command as `bash -c <command>` in its own process, falling
back to /bin/sh when bash is not installed.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time

from cronkit.core.errors import ShellError
from cronkit.shell.base import ShellOutput, ShellRunner

logger = logging.getLogger(__name__)


class BashRunner(ShellRunner):
    """
    Shell runner using Bash.
    """

    def __init__(self, executable: str | None = None) -> None:
        self._executable = executable or self._find_shell()

    @property
    def executable(self) -> str:
        return self._executable

    async def run(
        self,
        command: str,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> ShellOutput:
        """Run a command in a fresh shell process."""
        process_env = os.environ.copy()
        if env:
            process_env.update(env)

        start_time = time.time()

        try:
            process = await asyncio.create_subprocess_exec(
                self._executable,
                "-c",
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=process_env,
            )
        except FileNotFoundError as e:
            raise ShellError(
                f"Cannot start '{self._executable}' in {cwd or os.getcwd()}: {e}"
            ) from e
        except OSError as e:
            raise ShellError(f"Failed to start command: {e}") from e

        logger.debug(f"Started pid {process.pid}: {command[:80]}")

        stdout_buf = bytearray()
        stderr_buf = bytearray()
        readers = [
            asyncio.create_task(self._drain(process.stdout, stdout_buf)),
            asyncio.create_task(self._drain(process.stderr, stderr_buf)),
        ]

        try:
            await asyncio.wait_for(
                asyncio.gather(*readers, process.wait()),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            await self._kill(process, readers)
            elapsed = int((time.time() - start_time) * 1000)
            stderr = _decode(stderr_buf)
            if stderr and not stderr.endswith("\n"):
                stderr += "\n"
            return ShellOutput(
                stdout=_decode(stdout_buf),
                stderr=stderr + f"Command timed out after {timeout:g}s",
                exit_code=None,
                duration_ms=elapsed,
                timed_out=True,
            )
        except asyncio.CancelledError:
            await self._kill(process, readers)
            raise

        elapsed = int((time.time() - start_time) * 1000)
        returncode = process.returncode

        output = ShellOutput(
            stdout=_decode(stdout_buf),
            stderr=_decode(stderr_buf),
            exit_code=returncode,
            duration_ms=elapsed,
            timed_out=False,
        )
        if returncode is not None and returncode < 0:
            # asyncio reports death by signal N as returncode -N
            output.exit_code = None
            output.signal = -returncode
        return output

    @staticmethod
    async def _drain(stream: asyncio.StreamReader | None, buffer: bytearray) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(65536)
            if not chunk:
                break
            buffer.extend(chunk)

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process, readers: list[asyncio.Task]) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass  # exited between the check and the kill
        await process.wait()
        # A grandchild may still hold the pipes open
        for reader in readers:
            reader.cancel()
        await asyncio.gather(*readers, return_exceptions=True)

    @staticmethod
    def _find_shell() -> str:
        """Find bash, else plain sh."""
        return shutil.which("bash") or "/bin/sh"


def _decode(data: bytes | bytearray) -> str:
    return data.decode("utf-8", errors="replace")
