"""Per-PR pipeline: clone, checkout, review, fix, and optionally push.

Each PR is processed in its own workspace ``<run_root>/pr-<number>``, a fresh
clone of the tracked repository's origin. Nothing in a workspace is shared
with other workers, and the workspace is removed on every exit path.

Pipeline:
    1. ``git clone --quiet --no-tags <origin> <workspace>``      (retried)
    2. ``<hosting_cli> pr checkout <number>``                     (retried)
    3. review command from ``review_command_template``            (retried)
       then the review report, unless the tool already wrote one
    4. fix command from ``fix_command_template``                  (retried)
    5. if auto-push is enabled and the tree is dirty:
       ``git add -A``, commit with hooks disabled, ``git push``   (push retried)

Any error inside the pipeline stops it. The error is recorded on the PR's
result and in its report; it never propagates to the caller.
"""

import shutil
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

import structlog

from pr_reviewer.config.settings import ReviewerSettings
from pr_reviewer.engine.reports import (
    report_file_name,
    write_command_failure_report,
    write_error_report,
    write_review_report,
)
from pr_reviewer.enums import ExecutionStage
from pr_reviewer.exceptions import CommandError, PRReviewerError
from pr_reviewer.models.domain import OpenPR, PRExecutionResult, PROutcome, timestamp
from pr_reviewer.utils.async_subprocess import CommandResult, run_shell_command
from pr_reviewer.utils.retry import run_with_retry
from pr_reviewer.utils.templates import TemplateContext, expand_template, sh_quote

log = structlog.get_logger(__name__)

StageCallback = Callable[[OpenPR, ExecutionStage], Awaitable[None]]


def commit_message(number: int) -> str:
    return f"chore: auto-fix for PR #{number}"


@dataclass
class _PipelineProgress:
    """Mutable per-PR progress, so a failure can report what already happened."""

    step: str = "setup"
    review_exit_code: int | None = None
    fix_exit_code: int | None = None
    pushed: bool = False


class PRProcessor:
    """Run the review/fix pipeline for one PR at a time.

    A single instance is shared by all workers of a run; it holds no
    per-PR state.
    """

    def __init__(
        self,
        settings: ReviewerSettings,
        reports_dir: str | Path,
        on_stage: StageCallback | None = None,
    ) -> None:
        self.settings = settings
        self.reports_dir = Path(reports_dir)
        self.on_stage = on_stage

    async def process(self, pr: OpenPR, origin_url: str, run_root: str | Path, run_id: str) -> PROutcome:
        """Process one PR and describe the outcome.

        Args:
            pr: The PR to process
            origin_url: Clone source for the workspace
            run_root: Run-scoped temporary root; the workspace is created under it
            run_id: Run identifier used in the report file name

        Returns:
            PROutcome whose ``mark_as_processed`` is True only if every step succeeded
        """
        logs: list[str] = []

        def note(message: str) -> None:
            logs.append(f"[{timestamp()}] [PR #{pr.number}] {message}")

        report_path = self.reports_dir / report_file_name(pr.number, run_id)
        workspace = Path(run_root) / f"pr-{pr.number}"
        progress = _PipelineProgress()

        log.info("pr_processing_started", pr_number=pr.number, workspace=str(workspace))

        try:
            await self._run_pipeline(pr, origin_url, workspace, report_path, progress, note)
        except Exception as e:
            message = e.message if isinstance(e, PRReviewerError) else (str(e) or type(e).__name__)
            note(f"Failed: {message}")
            log.error("pr_processing_failed", pr_number=pr.number, step=progress.step, error=message)
            await self._record_failure(report_path, pr, progress.step, e, message)
            return PROutcome(
                result=self._result(pr, report_path, progress, error_message=message),
                mark_as_processed=False,
                log_lines=logs,
            )
        finally:
            shutil.rmtree(workspace, ignore_errors=True)

        note("PR completed")
        log.info("pr_processing_completed", pr_number=pr.number, pushed=progress.pushed)
        return PROutcome(
            result=self._result(pr, report_path, progress),
            mark_as_processed=True,
            log_lines=logs,
        )

    async def _run_pipeline(
        self,
        pr: OpenPR,
        origin_url: str,
        workspace: Path,
        report_path: Path,
        progress: _PipelineProgress,
        note: Callable[[str], None],
    ) -> None:
        progress.step = "clone"
        note("Clone repository")
        await self._retry(
            f"git clone --quiet --no-tags {sh_quote(origin_url)} {sh_quote(str(workspace))}",
            cwd=None,
            step="clone",
        )

        progress.step = "checkout"
        note("Checkout PR")
        await self._retry(f"{self.settings.hosting_cli} pr checkout {pr.number}", cwd=workspace, step="checkout")

        context = TemplateContext(
            pr=pr,
            default_branch=self.settings.default_branch,
            repo_path=str(workspace),
            report_path=str(report_path),
        )

        progress.step = "review"
        await self._notify(pr, ExecutionStage.REVIEWING_PR)
        review_command = expand_template(self.settings.review_command_template, context)
        note("Run review command")
        try:
            review = await self._retry(review_command, cwd=workspace, step="review")
        except CommandError as e:
            progress.review_exit_code = e.result.exit_code
            raise
        progress.review_exit_code = review.exit_code
        await write_review_report(report_path, pr, review_command, review)

        progress.step = "fix"
        await self._notify(pr, ExecutionStage.FIXING_PR)
        fix_command = expand_template(self.settings.fix_command_template, context)
        note("Run fix command")
        try:
            fix = await self._retry(fix_command, cwd=workspace, step="fix")
        except CommandError as e:
            progress.fix_exit_code = e.result.exit_code
            raise
        progress.fix_exit_code = fix.exit_code

        if self.settings.auto_push_enabled:
            progress.step = "push"
            await self._notify(pr, ExecutionStage.PUSHING_CHANGES)
            note("Commit and push")
            progress.pushed = await self._commit_and_push(pr, workspace)
            if not progress.pushed:
                note("No changes to push")

    async def _commit_and_push(self, pr: OpenPR, workspace: Path) -> bool:
        """Commit and push local changes; return False when the tree is clean."""
        status = await run_shell_command("git status --porcelain", cwd=workspace, check=True)
        if not status.stdout.strip():
            return False

        await run_shell_command("git add -A", cwd=workspace, check=True)
        await run_shell_command(
            f"git -c core.hooksPath=/dev/null commit --no-verify -m {sh_quote(commit_message(pr.number))}",
            cwd=workspace,
            check=True,
        )
        await self._retry("git push", cwd=workspace, step="push")
        return True

    async def _retry(self, command: str, *, cwd: Path | None, step: str) -> CommandResult:
        return await run_with_retry(
            command,
            cwd=cwd,
            retries=self.settings.max_command_retries,
            delay_seconds=self.settings.retry_delay_seconds,
            step=step,
        )

    async def _notify(self, pr: OpenPR, stage: ExecutionStage) -> None:
        if self.on_stage is not None:
            await self.on_stage(pr, stage)

    async def _record_failure(
        self, report_path: Path, pr: OpenPR, step: str, error: Exception, message: str
    ) -> None:
        try:
            if isinstance(error, CommandError):
                await write_command_failure_report(report_path, pr, step, error.command, error.result)
            else:
                await write_error_report(report_path, pr, message)
        except OSError as e:
            log.warning("failure_report_not_written", pr_number=pr.number, path=str(report_path), error=str(e))

    @staticmethod
    def _result(
        pr: OpenPR,
        report_path: Path,
        progress: _PipelineProgress,
        error_message: str | None = None,
    ) -> PRExecutionResult:
        return PRExecutionResult(
            number=pr.number,
            title=pr.title,
            url=pr.url,
            review_exit_code=progress.review_exit_code,
            fix_exit_code=progress.fix_exit_code,
            pushed=progress.pushed,
            report_path=str(report_path),
            error_message=error_message,
        )
