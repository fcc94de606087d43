"""Retry utilities for handling transient command failures.

Every externally invoked per-PR step (clone, checkout, review, fix, push)
runs through ``run_with_retry``:

    attempts = retries + 1
    delay between attempts = max(1, delay_seconds), fixed, no backoff

so ``retries=0`` means exactly one attempt and a permanently failing
command with ``retries=r`` is executed ``r + 1`` times with ``r`` sleeps.

Example:
    >>> result = await run_with_retry(
    ...     "git push",
    ...     cwd=workspace,
    ...     retries=2,
    ...     delay_seconds=15,
    ...     step="push",
    ... )

Thread Safety:
    Stateless. Each call keeps its own attempt counter, and the sleep only
    suspends the calling task, never the other workers.
"""

import asyncio
from pathlib import Path

import structlog

from pr_reviewer.exceptions import CommandError
from pr_reviewer.utils.async_subprocess import CommandResult, run_shell_command

log = structlog.get_logger(__name__)

MIN_RETRY_DELAY_SECONDS = 1


def retry_delay(delay_seconds: float) -> float:
    """Return the sleep applied between attempts."""
    return max(MIN_RETRY_DELAY_SECONDS, delay_seconds)


async def run_with_retry(
    command: str,
    *,
    cwd: Path | str | None = None,
    retries: int = 0,
    delay_seconds: float = 0,
    step: str = "command",
) -> CommandResult:
    """Run a shell command, retrying nonzero exits with a fixed delay.

    Args:
        command: Shell command to execute.
        cwd: Working directory for every attempt.
        retries: Number of retries after the first attempt. Negative values
            are treated as 0.
        delay_seconds: Seconds to sleep between attempts, floored at 1.
        step: Label used only in log events.

    Returns:
        The CommandResult of the first successful attempt.

    Raises:
        CommandError: The failure of the last attempt once all attempts
            are exhausted.
    """
    attempts = max(0, retries) + 1
    delay = retry_delay(delay_seconds)

    for attempt in range(1, attempts + 1):
        try:
            return await run_shell_command(command, cwd=cwd, check=True)
        except CommandError as e:
            if attempt == attempts:
                log.error(
                    "retry_exhausted",
                    step=step,
                    attempts=attempt,
                    exit_code=e.result.exit_code,
                )
                raise

            log.warning(
                "retry_attempt",
                step=step,
                attempt=attempt,
                max_attempts=attempts,
                delay=delay,
                exit_code=e.result.exit_code,
            )
            await asyncio.sleep(delay)

    # Unreachable: the loop either returns or re-raises on the last attempt
    raise RuntimeError("Retry logic error")
