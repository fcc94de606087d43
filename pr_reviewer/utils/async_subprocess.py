"""Async subprocess utilities.

Provides non-blocking shell command execution for use in async contexts.
Every external tool the engine talks to (git, the hosting CLI, the
review/fix agent) goes through ``run_shell_command``; the engine only
ever looks at the captured exit code, stdout and stderr.

Example:
    >>> from pr_reviewer.utils.async_subprocess import run_shell_command
    >>> result = await run_shell_command("git status --porcelain", cwd="/repo")
    >>> if result.exit_code == 0 and not result.stdout.strip():
    ...     print("clean")

Thread Safety:
    Safe to call concurrently from multiple async tasks. Each call creates
    an independent subprocess with no shared state.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path

import structlog

from pr_reviewer.exceptions import CommandError

log = structlog.get_logger(__name__)

SPAWN_FAILURE_EXIT_CODE = -1


@dataclass(frozen=True)
class CommandResult:
    """Captured outcome of one external process.

    Attributes:
        exit_code: Process exit status (-1 when the process could not be spawned)
        stdout: Decoded standard output
        stderr: Decoded standard error
    """

    exit_code: int
    stdout: str
    stderr: str

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


async def run_shell_command(
    command: str,
    *,
    cwd: Path | str | None = None,
    check: bool = False,
) -> CommandResult:
    """Run a shell command asynchronously and capture its output.

    The command string is passed to the system shell, so quoting inside it
    (see ``pr_reviewer.utils.templates.sh_quote``) is honored. There is no
    timeout: the call returns when the process exits.

    Args:
        command: Complete shell command string to execute.
        cwd: Working directory for the command. None means the current
            working directory of this process.
        check: If True, raise CommandError when the exit code is nonzero.

    Returns:
        CommandResult with exit code and UTF-8 decoded stdout/stderr
        (invalid bytes replaced).

    Raises:
        CommandError: If check=True and the command failed. A process that
            cannot be spawned at all (missing cwd, no shell) is reported the
            same way, with exit code -1 and the OS error as stderr, when
            check=True; otherwise that result is returned.

    Warning:
        Interpolate untrusted values into ``command`` only after quoting them.
    """
    try:
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        log.warning("command_spawn_failed", command=command, cwd=str(cwd) if cwd else None, error=str(e))
        result = CommandResult(exit_code=SPAWN_FAILURE_EXIT_CODE, stdout="", stderr=str(e))
        if check:
            raise CommandError(command, result) from e
        return result

    stdout_bytes, stderr_bytes = await process.communicate()

    result = CommandResult(
        exit_code=process.returncode if process.returncode is not None else SPAWN_FAILURE_EXIT_CODE,
        stdout=(stdout_bytes or b"").decode("utf-8", errors="replace"),
        stderr=(stderr_bytes or b"").decode("utf-8", errors="replace"),
    )
    log.debug("command_finished", command=command, exit_code=result.exit_code)

    if check and not result.succeeded:
        raise CommandError(command, result)

    return result
