"""Tests for the Bash shell runner — runs real processes."""

import platform
from pathlib import Path

import pytest

from cronkit.core.errors import ShellError
from cronkit.shell.bash import BashRunner

pytestmark = pytest.mark.skipif(
    platform.system().lower() == "windows", reason="BashRunner needs a POSIX shell"
)


@pytest.fixture
def shell():
    return BashRunner()


@pytest.mark.asyncio
async def test_echo(shell):
    """Simple echo command works."""
    result = await shell.run('echo "hello cronkit"')
    assert result.exit_code == 0
    assert result.stdout == "hello cronkit\n"
    assert result.timed_out is False
    assert result.duration_ms >= 0


@pytest.mark.asyncio
async def test_exit_code(shell):
    """Failed command returns its exit code."""
    result = await shell.run("exit 3")
    assert result.exit_code == 3


@pytest.mark.asyncio
async def test_stderr_captured(shell):
    result = await shell.run("echo oops >&2")
    assert result.stderr == "oops\n"
    assert result.stdout == ""


@pytest.mark.asyncio
async def test_working_directory(shell, tmp_path):
    result = await shell.run("pwd", cwd=str(tmp_path))
    assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()


@pytest.mark.asyncio
async def test_env_layered_over_process_env(shell):
    result = await shell.run('echo "$CRONKIT_TEST_VAR:$PATH"', env={"CRONKIT_TEST_VAR": "abc"})
    value, _, path = result.stdout.partition(":")
    assert value == "abc"
    assert path  # inherited


@pytest.mark.asyncio
async def test_pipes_and_operators(shell):
    result = await shell.run("printf 'b\\na\\n' | sort && echo done")
    assert result.stdout.splitlines() == ["a", "b", "done"]


@pytest.mark.asyncio
async def test_timeout(shell):
    """Long-running command gets killed."""
    result = await shell.run("sleep 30", timeout=0.5)
    assert result.timed_out is True
    assert result.exit_code is None
    assert "timed out" in result.stderr


@pytest.mark.asyncio
async def test_timeout_keeps_partial_output(shell):
    result = await shell.run("printf 'first '; echo warn >&2; exec sleep 30", timeout=0.5)
    assert result.timed_out is True
    assert result.stdout == "first "
    assert result.stderr.startswith("warn\n")


@pytest.mark.asyncio
async def test_output_is_not_stripped(shell):
    result = await shell.run("printf '  padded \\n\\n'")
    assert result.stdout == "  padded \n\n"


@pytest.mark.asyncio
async def test_killed_by_signal(shell):
    """A signal-terminated process has no exit code."""
    result = await shell.run("echo before; kill -9 $$")
    assert result.exit_code is None
    assert result.signal == 9
    assert result.stdout == "before\n"
    assert result.timed_out is False


@pytest.mark.asyncio
async def test_missing_working_directory(shell, tmp_path):
    with pytest.raises(ShellError):
        await shell.run("true", cwd=str(tmp_path / "missing"))


@pytest.mark.asyncio
async def test_missing_executable(tmp_path):
    runner = BashRunner(executable=str(tmp_path / "no-such-shell"))
    with pytest.raises(ShellError):
        await runner.run("true")


def test_finds_a_shell(shell):
    assert shell.executable
