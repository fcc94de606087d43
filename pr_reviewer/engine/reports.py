"""Markdown report artifacts, one file per attempted PR per run.

A review tool may write its own findings to ``{{REPORT_PATH}}``. A report
file with non-empty content is therefore never overwritten by the engine's
generic report; failures are appended to it as an extra section instead.
"""

from pathlib import Path

import aiofiles

from pr_reviewer.models.domain import OpenPR, timestamp
from pr_reviewer.utils.async_subprocess import CommandResult


def report_file_name(number: int, run_id: str) -> str:
    return f"pr-{number}-{run_id}.md"


async def has_content(path: Path) -> bool:
    """True when ``path`` exists and holds more than whitespace."""
    try:
        async with aiofiles.open(path, encoding="utf-8", errors="replace") as f:
            content = await f.read()
    except FileNotFoundError:
        return False
    return bool(content.strip())


def _header(pr: OpenPR) -> list[str]:
    return [
        f"# PR #{pr.number} Review Report",
        "",
        f"- Title: {pr.title}",
        f"- URL: {pr.url}",
        f"- Generated At: {timestamp()}",
    ]


def _output_sections(result: CommandResult, heading: str = "##") -> list[str]:
    return [
        f"{heading} stdout",
        "",
        "```",
        result.stdout.rstrip("\n"),
        "```",
        "",
        f"{heading} stderr",
        "",
        "```",
        result.stderr.rstrip("\n"),
        "```",
    ]


def render_review_report(pr: OpenPR, command: str, result: CommandResult) -> str:
    lines = _header(pr) + [
        f"- Review Command: `{command}`",
        f"- Exit Code: {result.exit_code}",
        "",
        *_output_sections(result),
    ]
    return "\n".join(lines) + "\n"


def render_command_failure_section(step: str, command: str, result: CommandResult) -> str:
    lines = [
        f"## Failure: {step}",
        "",
        f"- Time: {timestamp()}",
        f"- Command: `{command}`",
        f"- Exit Code: {result.exit_code}",
        "",
        *_output_sections(result, heading="###"),
    ]
    return "\n".join(lines) + "\n"


def render_error_report(pr: OpenPR, message: str) -> str:
    lines = _header(pr) + [
        "- Exit Code: -1",
        "",
        "## error",
        "",
        message,
    ]
    return "\n".join(lines) + "\n"


async def _write(path: Path, content: str, mode: str = "w") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, mode, encoding="utf-8") as f:
        await f.write(content)


async def write_review_report(path: Path, pr: OpenPR, command: str, result: CommandResult) -> bool:
    """Write the review artifact unless a non-empty report already exists.

    Returns:
        True if the file was written.
    """
    if await has_content(path):
        return False
    await _write(path, render_review_report(pr, command, result))
    return True


async def write_command_failure_report(
    path: Path, pr: OpenPR, step: str, command: str, result: CommandResult
) -> None:
    """Record a failed command, appending to an existing report when there is one."""
    section = render_command_failure_section(step, command, result)
    if await has_content(path):
        await _write(path, "\n" + section, mode="a")
    else:
        await _write(path, "\n".join(_header(pr)) + "\n\n" + section)


async def write_error_report(path: Path, pr: OpenPR, message: str) -> None:
    """Write a minimal error report if no report exists yet."""
    if await has_content(path):
        return
    await _write(path, render_error_report(pr, message))
