"""Custom exception hierarchy for the pr-reviewer engine.

Exception Hierarchy:
    PRReviewerError (base)
    ├── ConfigurationError
    ├── EnvironmentCheckError
    ├── GitOperationError
    ├── DiscoveryError
    ├── WorkflowError
    │   └── PRNotFoundError
    └── CommandError

Fatal errors (everything except ``CommandError`` raised inside a per-PR
pipeline) abort a run before any PR is attempted. ``CommandError`` raised
while processing a single PR is caught at the PR boundary and recorded on
that PR's result instead.

Example Usage:
    >>> from pr_reviewer.exceptions import ConfigurationError
    >>> if not settings.repo_path:
    ...     raise ConfigurationError("repo_path is empty in settings")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pr_reviewer.utils.async_subprocess import CommandResult


class PRReviewerError(Exception):
    """Base exception for all pr-reviewer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(PRReviewerError):
    """Configuration-related errors.

    Examples:
        - repo_path is empty
        - repo_path points at a remote URL instead of a directory
        - Invalid YAML syntax in the settings file
    """

    pass


class EnvironmentCheckError(PRReviewerError):
    """A required external binary is missing or the tracked path is not a work tree."""

    pass


class GitOperationError(PRReviewerError):
    """Git operation errors on the tracked repository.

    Raised when fetch/checkout/pull fail during sync, or when the remote
    origin URL cannot be resolved. These are structural problems, so they
    are never retried and they abort the whole run.
    """

    pass


class DiscoveryError(PRReviewerError):
    """The hosting CLI returned a PR list that could not be decoded."""

    pass


class WorkflowError(PRReviewerError):
    """Workflow execution errors."""

    pass


class PRNotFoundError(WorkflowError):
    """A caller-selected PR number is not in the current open PR list."""

    def __init__(self, number: int) -> None:
        self.number = number
        super().__init__(f"PR #{number} not found in open PR list")


class CommandError(PRReviewerError):
    """An external command exited with a nonzero status.

    Attributes:
        command: The exact command text that was executed
        result: Captured exit code, stdout and stderr
    """

    def __init__(self, command: str, result: CommandResult) -> None:
        self.command = command
        self.result = result
        super().__init__(render_command_failure(command, result))


def render_command_failure(command: str, result: CommandResult) -> str:
    """Format a failed command for logs, snapshots and result records."""
    stderr = result.stderr.strip()
    if not stderr:
        return f"Command failed: {command} (exit {result.exit_code})"
    return f"Command failed: {command} (exit {result.exit_code}) stderr: {stderr}"
