"""Tracked repository preparation: bootstrap, environment checks and sync.

Everything here runs before any PR is touched, and every failure is fatal
for the run. Sync commands are not retried.
"""

import shutil
from pathlib import Path

import structlog

from pr_reviewer.config.settings import ReviewerSettings
from pr_reviewer.exceptions import (
    CommandError,
    ConfigurationError,
    EnvironmentCheckError,
    GitOperationError,
)
from pr_reviewer.utils.async_subprocess import run_shell_command
from pr_reviewer.utils.retry import run_with_retry
from pr_reviewer.utils.templates import sh_quote

log = structlog.get_logger(__name__)

REMOTE_URL_PREFIXES = ("http://", "https://", "git@")


class RepositorySynchronizer:
    """Prepare the local working tree named by ``settings.repo_path``."""

    def __init__(self, settings: ReviewerSettings) -> None:
        self.settings = settings

    @property
    def repo_path(self) -> Path:
        return Path(self.settings.require_repo_path()).expanduser()

    async def ensure_repo_ready(self) -> None:
        """Make sure ``repo_path`` is a local directory with a checkout in it.

        A missing or empty directory is bootstrapped by cloning
        ``repo_clone_url`` into it.

        Raises:
            ConfigurationError: repo_path is empty or is a remote URL, or it
                needs bootstrapping and no clone URL is configured
            GitOperationError: The bootstrap clone failed
        """
        raw_path = self.settings.require_repo_path().strip()
        if raw_path.startswith(REMOTE_URL_PREFIXES):
            raise ConfigurationError(
                "repo_path must be a local directory path, not a remote URL; "
                "put the remote URL in repo_clone_url"
            )

        repo_path = self.repo_path
        if repo_path.exists() and not repo_path.is_dir():
            raise ConfigurationError(f"repo_path is not a directory: {repo_path}")
        if repo_path.is_dir() and any(repo_path.iterdir()):
            return

        clone_url = self.settings.repo_clone_url.strip()
        if not clone_url:
            raise ConfigurationError("repo_path is empty and repo_clone_url is not set, cannot auto clone")

        repo_path.mkdir(parents=True, exist_ok=True)
        log.info("repo_bootstrap_clone", repo_path=str(repo_path), clone_url=clone_url)
        try:
            await run_with_retry(
                f"git clone {sh_quote(clone_url)} {sh_quote(str(repo_path))}",
                retries=self.settings.max_command_retries,
                delay_seconds=self.settings.retry_delay_seconds,
                step="bootstrap_clone",
            )
        except CommandError as e:
            raise GitOperationError(e.message) from e

    async def validate_environment(self) -> None:
        """Check the work tree and the external executables.

        Raises:
            EnvironmentCheckError: repo_path is not a git work tree, or git,
                the hosting CLI or the agent executable is not on PATH
        """
        repo_path = self.repo_path
        check = await run_shell_command("git rev-parse --is-inside-work-tree", cwd=repo_path)
        if not check.succeeded:
            raise EnvironmentCheckError(f"repo_path is not a git repository: {repo_path}")

        missing = [name for name in self.settings.required_executables if shutil.which(name) is None]
        if missing:
            raise EnvironmentCheckError(f"Required executables not found on PATH: {', '.join(missing)}")

    async def sync(self) -> None:
        """Fast-forward the default branch from origin.

        Raises:
            GitOperationError: fetch, checkout or pull failed
        """
        branch = sh_quote(self.settings.default_branch)
        commands = [
            "git fetch --all --prune",
            f"git checkout {branch}",
            f"git pull --ff-only origin {branch}",
        ]
        for command in commands:
            try:
                await run_shell_command(command, cwd=self.repo_path, check=True)
            except CommandError as e:
                log.error("repo_sync_failed", command=command, exit_code=e.result.exit_code)
                raise GitOperationError(e.message) from e

        log.info("repo_synced", repo_path=str(self.repo_path), branch=self.settings.default_branch)

    async def resolve_origin_url(self) -> str:
        """Return the tracked repository's ``origin`` remote URL.

        Raises:
            GitOperationError: The remote is not configured
        """
        result = await run_shell_command("git config --get remote.origin.url", cwd=self.repo_path)
        origin = result.stdout.strip()
        if not result.succeeded or not origin:
            raise GitOperationError(f"Unable to resolve remote.origin.url in {self.repo_path}")
        return origin
