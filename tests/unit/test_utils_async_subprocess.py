"""Tests for pr_reviewer.utils.async_subprocess module."""

from pathlib import Path

import pytest

from pr_reviewer.exceptions import CommandError
from pr_reviewer.utils.async_subprocess import (
    SPAWN_FAILURE_EXIT_CODE,
    CommandResult,
    run_shell_command,
)


class TestRunShellCommand:
    """Test run_shell_command against a real shell."""

    @pytest.mark.asyncio
    async def test_captures_stdout(self):
        """Test stdout of a successful command is captured."""
        result = await run_shell_command("echo hello")

        assert result == CommandResult(exit_code=0, stdout="hello\n", stderr="")
        assert result.succeeded

    @pytest.mark.asyncio
    async def test_captures_stderr_and_exit_code(self):
        """Test stderr and a nonzero exit code are captured without raising."""
        result = await run_shell_command("echo oops >&2; exit 3")

        assert result.exit_code == 3
        assert result.stderr.strip() == "oops"
        assert not result.succeeded

    @pytest.mark.asyncio
    async def test_runs_in_cwd(self, tmp_path: Path):
        """Test the command runs in the requested working directory."""
        result = await run_shell_command("pwd", cwd=tmp_path)

        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_shell_quoting_is_honored(self):
        """Test a quoted argument with spaces reaches the program as one word."""
        result = await run_shell_command("printf '%s|' 'a b' c")

        assert result.stdout == "a b|c|"

    @pytest.mark.asyncio
    async def test_invalid_utf8_is_replaced(self):
        """Test undecodable output bytes do not raise."""
        result = await run_shell_command("printf '\\377ok'")

        assert result.stdout.endswith("ok")
        assert "�" in result.stdout


class TestRunShellCommandCheck:
    """Test run_shell_command with check=True."""

    @pytest.mark.asyncio
    async def test_check_raises_command_error(self):
        """Test a failing command raises CommandError with its captured result."""
        with pytest.raises(CommandError) as exc_info:
            await run_shell_command("echo bad >&2; exit 2", check=True)

        error = exc_info.value
        assert error.command == "echo bad >&2; exit 2"
        assert error.result.exit_code == 2
        assert error.message == "Command failed: echo bad >&2; exit 2 (exit 2) stderr: bad"

    @pytest.mark.asyncio
    async def test_check_passes_on_success(self):
        """Test check=True returns normally when the command succeeds."""
        result = await run_shell_command("true", check=True)

        assert result.exit_code == 0

    @pytest.mark.asyncio
    async def test_missing_cwd_reported_as_spawn_failure(self, tmp_path: Path):
        """Test a command that cannot be spawned is reported with exit -1."""
        missing = tmp_path / "does-not-exist"

        result = await run_shell_command("true", cwd=missing)
        assert result.exit_code == SPAWN_FAILURE_EXIT_CODE
        assert result.stderr

        with pytest.raises(CommandError) as exc_info:
            await run_shell_command("true", cwd=missing, check=True)
        assert exc_info.value.result.exit_code == SPAWN_FAILURE_EXIT_CODE
