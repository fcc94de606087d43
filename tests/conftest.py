"""Pytest configuration and shared fixtures."""

import asyncio
import json
import os
import re
from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from pr_reviewer.config.settings import ReviewerSettings
from pr_reviewer.engine.store import Store
from pr_reviewer.exceptions import CommandError
from pr_reviewer.models.domain import OpenPR
from pr_reviewer.utils.async_subprocess import CommandResult

# Captured before any test patches asyncio.sleep
_real_sleep = asyncio.sleep

Responder = CommandResult | Callable[[str, str | None], CommandResult]


class FakeShell:
    """Scripted stand-in for ``run_shell_command``.

    Rules registered with ``on()`` are matched by regex against the command
    text, first match wins. A rule with several responses plays them in
    order and then keeps repeating the last one. Commands without a rule get
    sensible defaults: the configured PR list for ``pr list``, the origin URL
    for ``remote.origin.url``, and a clean ``git status``.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str | None]] = []
        self.pr_list: list[dict] = []
        self.origin_url = "https://git.example.com/acme/widgets.git"
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self.sleep = AsyncMock()
        self._rules: list[tuple[re.Pattern[str], list[Responder]]] = []
        self._delays: list[tuple[re.Pattern[str], float]] = []

    @staticmethod
    def ok(stdout: str = "") -> CommandResult:
        return CommandResult(exit_code=0, stdout=stdout, stderr="")

    @staticmethod
    def fail(exit_code: int = 1, stderr: str = "boom") -> CommandResult:
        return CommandResult(exit_code=exit_code, stdout="", stderr=stderr)

    def on(self, pattern: str, *responses: Responder) -> None:
        self._rules.append((re.compile(pattern), list(responses)))

    def slow(self, pattern: str, seconds: float) -> None:
        """Make commands matching ``pattern`` take ``seconds`` to finish."""
        self._delays.append((re.compile(pattern), seconds))

    def commands(self, pattern: str = "") -> list[str]:
        regex = re.compile(pattern)
        return [command for command, _ in self.calls if regex.search(command)]

    def _respond(self, command: str, cwd: str | None) -> CommandResult:
        for regex, responses in self._rules:
            if regex.search(command):
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                return response(command, cwd) if callable(response) else response

        if " pr list " in f" {command} ":
            return self.ok(json.dumps(self.pr_list))
        if "remote.origin.url" in command:
            return self.ok(self.origin_url + "\n")
        if "rev-parse --is-inside-work-tree" in command:
            return self.ok("true\n")
        return self.ok()

    async def __call__(
        self, command: str, *, cwd: Path | str | None = None, check: bool = False
    ) -> CommandResult:
        cwd_text = str(cwd) if cwd is not None else None
        self.calls.append((command, cwd_text))

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = max([seconds for regex, seconds in self._delays if regex.search(command)], default=self.delay)
            await _real_sleep(delay)
            result = self._respond(command, cwd_text)
        finally:
            self.in_flight -= 1

        if check and not result.succeeded:
            raise CommandError(command, result)
        return result


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep PR_REVIEWER_* variables from the developer shell out of tests."""
    for name in list(os.environ):
        if name.startswith("PR_REVIEWER_"):
            monkeypatch.delenv(name)


@pytest.fixture
def fake_shell(monkeypatch: pytest.MonkeyPatch) -> FakeShell:
    """Replace every external command, PATH lookup and retry sleep."""
    shell = FakeShell()
    monkeypatch.setattr("pr_reviewer.utils.retry.run_shell_command", shell)
    monkeypatch.setattr("pr_reviewer.engine.processor.run_shell_command", shell)
    monkeypatch.setattr("pr_reviewer.engine.repository.run_shell_command", shell)
    monkeypatch.setattr("pr_reviewer.engine.repository.shutil.which", lambda name: f"/usr/bin/{name}")
    monkeypatch.setattr("pr_reviewer.utils.retry.asyncio.sleep", shell.sleep)
    return shell


@pytest.fixture
def temp_store(tmp_path: Path) -> Store:
    """Store rooted in a temporary directory."""
    return Store(tmp_path / "home")


@pytest.fixture
def repo_dir(tmp_path: Path) -> Path:
    """Non-empty directory standing in for the tracked working tree."""
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "README.md").write_text("# widgets\n")
    return repo


@pytest.fixture
def settings(repo_dir: Path) -> ReviewerSettings:
    """Settings pointing at the temporary working tree."""
    return ReviewerSettings(
        repo_path=str(repo_dir),
        max_concurrent_prs=2,
        max_command_retries=1,
        retry_delay_seconds=0,
        review_command_template="codex review --base {{DEFAULT_BRANCH}}",
        fix_command_template="codex exec 'fix PR' {{PR_NUMBER}} --report {{REPORT_PATH}}",
    )


@pytest.fixture
def sample_pr() -> OpenPR:
    """Sample open PR."""
    return OpenPR(
        number=42,
        title='Fix bug: "quotes"',
        head_ref_name="feature/x",
        url="https://git.example.com/acme/widgets/pull/42",
        updated_at="2026-10-01T12:00:00Z",
    )


@pytest.fixture
def make_pr_payload() -> Callable[..., dict]:
    """Factory for entries of the hosting CLI's ``pr list --json`` output."""

    def make(number: int, updated_at: str = "2026-10-01T12:00:00Z", title: str | None = None) -> dict:
        return {
            "number": number,
            "title": title if title is not None else f"PR {number}",
            "headRefName": f"feature/{number}",
            "url": f"https://git.example.com/acme/widgets/pull/{number}",
            "updatedAt": updated_at,
        }

    return make
