"""
Run coordinator: sync, discover, dispatch to the worker pool, finalize.

Run Lifecycle:
    idle -> syncingRepo -> loadingPRs -> reviewingPR -> completed | failed

    syncingRepo:  settings check, repository bootstrap, environment check, sync
    loadingPRs:   list open PRs, drop processed ones, cap the batch
    reviewingPR:  every selected PR runs through PRProcessor on a bounded
                  WorkerPool inside a run-scoped temporary root
    finalize:     processed set grows by the PRs that fully succeeded, state
                  is saved, the snapshot is marked succeeded or failed

Every transition is persisted to the run snapshot so that an observer can
follow progress from another process. Failures before the batch starts are
fatal for the run; failures inside one PR only fail that PR.

Concurrency Model:
    One coordinating coroutine plus ``max(1, max_concurrent_prs)`` worker
    coroutines. Workers share the snapshot and the batch tallies, and every
    read-modify-write of those goes through a single ``asyncio.Lock``.

Example:
    >>> runner = WorkflowRunner(Store())
    >>> snapshot = await runner.run_once()
    >>> snapshot.status
    <RunStatus.SUCCEEDED: 'succeeded'>
"""

import asyncio
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from pr_reviewer.config.settings import ReviewerSettings
from pr_reviewer.engine.discovery import list_open_prs, select_new_prs
from pr_reviewer.engine.processor import PRProcessor
from pr_reviewer.engine.repository import RepositorySynchronizer
from pr_reviewer.engine.store import Store
from pr_reviewer.engine.worker_pool import WorkerPool
from pr_reviewer.enums import ExecutionStage, RunStatus
from pr_reviewer.exceptions import PRNotFoundError, PRReviewerError
from pr_reviewer.models.domain import EngineState, OpenPR, PROutcome, RunSnapshot, utc_now

log = structlog.get_logger(__name__)

RUNS_DIRNAME = "prreviewer-runs"


def new_run_id() -> str:
    """UTC timestamp usable in file names (no colons)."""
    return utc_now().strftime("%Y-%m-%dT%H-%M-%SZ")


def failure_summary(failed_count: int) -> str:
    return f"{failed_count} PR(s) failed. Check reports and logs."


def _error_message(error: Exception) -> str:
    if isinstance(error, PRReviewerError):
        return error.message
    return str(error) or type(error).__name__


@dataclass
class _BatchTally:
    completed: int = 0
    failed: int = 0
    newly_processed: set[int] = field(default_factory=set)


class WorkflowRunner:
    """Drive one run of the review engine and keep its snapshot current.

    Args:
        store: Where settings are read from and state, snapshot and reports go
        settings: Settings to use instead of the store's settings file
        runs_dir: Parent of run-scoped temporary roots (defaults to
            ``<system temp>/prreviewer-runs``)
    """

    def __init__(
        self,
        store: Store,
        settings: ReviewerSettings | None = None,
        runs_dir: str | Path | None = None,
    ) -> None:
        self.store = store
        self._settings = settings
        self.runs_dir = Path(runs_dir) if runs_dir is not None else Path(tempfile.gettempdir()) / RUNS_DIRNAME
        self.snapshot = RunSnapshot()
        self._lock = asyncio.Lock()

    def load_settings(self) -> ReviewerSettings:
        if self._settings is not None:
            return self._settings
        return self.store.load_settings()

    async def run_once(self) -> RunSnapshot:
        """Process every new open PR, up to ``max_prs_per_run``.

        Never raises; fatal errors end the run with a failed snapshot.
        """
        await self._begin()
        log.info("run_started")

        try:
            settings = self.load_settings()
            settings.require_repo_path()
            await self._append_log("Start run")

            synchronizer = await self._prepare_repository(settings)

            await self._set_stage(ExecutionStage.LOADING_PRS)
            open_prs = await list_open_prs(settings)
            state = await self.store.load_state()
            new_prs = select_new_prs(open_prs, state.processed_set, settings.max_prs_per_run)

            async with self._lock:
                self.snapshot.total_prs = len(new_prs)
                self.snapshot.current_index = 0
                self.snapshot.report = []
                self.snapshot.error_message = None
                await self._persist()

            if not new_prs:
                log.info("run_no_new_prs", open_prs=len(open_prs))
                state.last_run_at = utc_now()
                await self.store.save_state(state)
                async with self._lock:
                    self.snapshot.append_log("No new PRs found")
                    self.snapshot.finish(RunStatus.SUCCEEDED)
                    await self._persist()
                return self.snapshot

            tally = await self._process_batch(settings, synchronizer, new_prs, state)
        except Exception as e:
            return await self._fail(e, "Run failed")

        async with self._lock:
            self.snapshot.current_index = self.snapshot.total_prs
            if tally.failed:
                self.snapshot.append_log(f"Run completed with {tally.failed} failure(s)")
                self.snapshot.finish(RunStatus.FAILED, failure_summary(tally.failed))
            else:
                self.snapshot.append_log("Run completed successfully")
                self.snapshot.finish(RunStatus.SUCCEEDED)
            await self._persist()

        log.info(
            "run_finished",
            status=self.snapshot.status.value,
            processed=len(tally.newly_processed),
            failed=tally.failed,
        )
        return self.snapshot

    async def run_selected_pr(self, number: int) -> RunSnapshot:
        """Process exactly one open PR, whether or not it was processed before.

        Never raises; a PR number that is not open fails the run.
        """
        await self._begin()
        log.info("selected_run_started", pr_number=number)

        try:
            settings = self.load_settings()
            settings.require_repo_path()
            await self._append_log(f"Start selected PR run for #{number}")

            synchronizer = await self._prepare_repository(settings)

            await self._set_stage(ExecutionStage.LOADING_PRS)
            open_prs = await list_open_prs(settings)
            selected = next((pr for pr in open_prs if pr.number == number), None)
            if selected is None:
                raise PRNotFoundError(number)

            async with self._lock:
                self.snapshot.total_prs = 1
                self.snapshot.current_index = 0
                self.snapshot.current_pr_number = selected.number
                self.snapshot.current_pr_title = selected.title
                self.snapshot.report = []
                self.snapshot.error_message = None
                self.snapshot.append_log(f"Selected PR #{selected.number}: {selected.title}")
                await self._persist()

            state = await self.store.load_state()
            tally = await self._process_batch(settings, synchronizer, [selected], state)
        except Exception as e:
            return await self._fail(e, "Selected PR run failed")

        async with self._lock:
            result = next(item for item in self.snapshot.report if item.number == number)
            if tally.failed:
                self.snapshot.append_log(f"Selected PR #{number} failed")
                self.snapshot.finish(RunStatus.FAILED, result.error_message)
            else:
                self.snapshot.append_log(f"Selected PR #{number} completed")
                self.snapshot.finish(RunStatus.SUCCEEDED)
            await self._persist()

        log.info("selected_run_finished", pr_number=number, status=self.snapshot.status.value)
        return self.snapshot

    async def fetch_open_prs(self) -> list[OpenPR]:
        """Sync the tracked repository and list its open PRs.

        Unlike the run entry points this writes no snapshot and lets errors
        propagate to the caller.
        """
        settings = self.load_settings()
        settings.require_repo_path()
        await self._prepare_repository(settings)
        return await list_open_prs(settings)

    async def _prepare_repository(self, settings: ReviewerSettings) -> RepositorySynchronizer:
        synchronizer = RepositorySynchronizer(settings)
        await synchronizer.ensure_repo_ready()
        await synchronizer.validate_environment()
        await synchronizer.sync()
        return synchronizer

    async def _process_batch(
        self,
        settings: ReviewerSettings,
        synchronizer: RepositorySynchronizer,
        prs: list[OpenPR],
        state: EngineState,
    ) -> _BatchTally:
        """Run ``prs`` through the worker pool and fold the outcomes into state."""
        origin_url = await synchronizer.resolve_origin_url()
        run_id = new_run_id()
        run_root = self.runs_dir / run_id
        run_root.mkdir(parents=True, exist_ok=True)

        self.store.ensure_directories()
        processor = PRProcessor(settings, self.store.paths.reports_dir, on_stage=self._on_stage)
        pool: WorkerPool[OpenPR] = WorkerPool(settings.worker_count)
        tally = _BatchTally()

        async def handle(pr: OpenPR) -> None:
            async with self._lock:
                self.snapshot.current_pr_number = pr.number
                self.snapshot.current_pr_title = pr.title
                self.snapshot.append_log(f"Start PR #{pr.number}")
                await self._persist()

            outcome = await processor.process(pr, origin_url, run_root, run_id)
            await self._record_outcome(pr, outcome, tally)

        await self._set_stage(ExecutionStage.REVIEWING_PR)
        await self._append_log(f"Processing {len(prs)} PR(s), max concurrency: {pool.max_workers}")
        log.info("batch_started", run_id=run_id, prs=len(prs), workers=pool.max_workers)

        try:
            await pool.run(prs, handle)
        finally:
            shutil.rmtree(run_root, ignore_errors=True)
            state.mark_processed(tally.newly_processed)
            state.last_run_at = utc_now()
            await self.store.save_state(state)

        return tally

    async def _record_outcome(self, pr: OpenPR, outcome: PROutcome, tally: _BatchTally) -> None:
        async with self._lock:
            tally.completed += 1
            if outcome.mark_as_processed:
                tally.newly_processed.add(pr.number)
            if outcome.result.failed:
                tally.failed += 1

            self.snapshot.current_index = tally.completed
            self.snapshot.current_pr_number = pr.number
            self.snapshot.current_pr_title = pr.title
            self.snapshot.merge_result(outcome.result)
            self.snapshot.extend_logs(outcome.log_lines)
            await self._persist()

    async def _on_stage(self, pr: OpenPR, stage: ExecutionStage) -> None:
        async with self._lock:
            self.snapshot.stage = stage
            self.snapshot.current_pr_number = pr.number
            self.snapshot.current_pr_title = pr.title
            await self._persist()

    async def _begin(self) -> None:
        async with self._lock:
            self.snapshot = RunSnapshot.start()
            await self._persist()

    async def _set_stage(self, stage: ExecutionStage) -> None:
        async with self._lock:
            self.snapshot.stage = stage
            await self._persist()

    async def _append_log(self, message: str) -> None:
        async with self._lock:
            self.snapshot.append_log(message)
            await self._persist()

    async def _fail(self, error: Exception, prefix: str) -> RunSnapshot:
        message = _error_message(error)
        log.error("run_failed", error=message, error_type=type(error).__name__)
        async with self._lock:
            self.snapshot.append_log(f"{prefix}: {message}")
            self.snapshot.finish(RunStatus.FAILED, message)
            await self._persist()
        return self.snapshot

    async def _persist(self) -> None:
        """Save the snapshot; caller holds the lock.

        The snapshot is progress reporting only, so a failed write is logged
        and the run carries on.
        """
        try:
            await self.store.save_snapshot(self.snapshot)
        except OSError as e:
            log.warning("snapshot_persist_failed", error=str(e))
