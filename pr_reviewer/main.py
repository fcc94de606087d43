"""CLI entry point for the review engine.

Each command performs one action and exits; scheduling (cron, launchd,
systemd timers) is left to the caller.
"""

import asyncio
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import click
import structlog

from pr_reviewer import __version__
from pr_reviewer.config.settings import ReviewerSettings
from pr_reviewer.engine.runner import WorkflowRunner
from pr_reviewer.engine.store import Store
from pr_reviewer.enums import RunStatus
from pr_reviewer.exceptions import PRReviewerError
from pr_reviewer.models.domain import OpenPR, RunSnapshot
from pr_reviewer.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

T = TypeVar("T")


@click.group()
@click.version_option(__version__, prog_name="pr-reviewer")
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Store directory (default: $PR_REVIEWER_HOME or ~/.pr-reviewer)",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    help="Logging level",
)
@click.pass_context
def cli(ctx: click.Context, home: Path | None, log_level: str) -> None:
    """pr-reviewer: review and fix open pull requests with external tools."""
    configure_logging(log_level)
    ctx.obj = {"store": Store(home)}


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Process every new open PR once."""
    store: Store = ctx.obj["store"]
    click.echo(f"Running workflow (store: {store.paths.root})")
    snapshot = _run_or_exit(WorkflowRunner(store).run_once(), "run")
    _print_run_result(snapshot)


@cli.command("run-pr")
@click.option("--pr", "number", type=int, required=True, help="PR number to process")
@click.pass_context
def run_pr(ctx: click.Context, number: int) -> None:
    """Process one open PR, even if it was processed before."""
    store: Store = ctx.obj["store"]
    click.echo(f"Running workflow for PR #{number}")
    snapshot = _run_or_exit(WorkflowRunner(store).run_selected_pr(number), "run_pr")
    _print_run_result(snapshot)


@cli.command()
@click.pass_context
def prs(ctx: click.Context) -> None:
    """List open PRs, marking which are new and which are processed."""
    store: Store = ctx.obj["store"]

    async def collect() -> tuple[list[OpenPR], set[int]]:
        open_prs = await WorkflowRunner(store).fetch_open_prs()
        state = await store.load_state()
        return open_prs, state.processed_set

    open_prs, processed = _run_or_exit(collect(), "prs")
    if not open_prs:
        click.echo("No open PRs")
        return

    for index, pr in enumerate(open_prs, start=1):
        marker = "processed" if pr.number in processed else "new"
        click.echo(f"{index:>3}. #{pr.number} [{marker}] {pr.title} ({pr.head_ref_name}, updated {pr.updated_at})")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the latest run snapshot."""
    store: Store = ctx.obj["store"]
    snapshot = asyncio.run(store.load_snapshot())

    current = f"#{snapshot.current_pr_number}" if snapshot.current_pr_number is not None else "-"
    click.echo(f"status      : {snapshot.status.value}")
    click.echo(f"stage       : {snapshot.stage.display_name}")
    click.echo(f"progress    : {snapshot.current_index}/{snapshot.total_prs}")
    click.echo(f"current_pr  : {current}")
    click.echo(f"last_error  : {snapshot.error_message or '-'}")


@cli.command()
@click.pass_context
def report(ctx: click.Context) -> None:
    """Show the latest run results and the newest markdown report."""
    store: Store = ctx.obj["store"]
    snapshot = asyncio.run(store.load_snapshot())

    click.echo(f"latest run status: {snapshot.status.value}")
    click.echo(f"stage: {snapshot.stage.display_name}")
    click.echo(f"processed in run: {len(snapshot.report)}")
    if snapshot.started_at:
        click.echo(f"started_at: {snapshot.started_at.isoformat()}")
    if snapshot.finished_at:
        click.echo(f"finished_at: {snapshot.finished_at.isoformat()}")

    if not snapshot.report:
        click.echo("no PR report entries yet")
    else:
        click.echo("--- PR results ---")
        for item in snapshot.report:
            state = "failed" if item.failed else "ok"
            click.echo(f"#{item.number} {item.title} [{state}] report={item.report_path}")
            if item.error_message:
                click.echo(f"    error: {item.error_message}")

    latest = store.latest_report()
    if latest is None:
        click.echo(f"no markdown report file found in {store.paths.reports_dir}")
        return
    click.echo("--- latest markdown report ---")
    click.echo(f"file: {latest}")
    click.echo(latest.read_text(encoding="utf-8", errors="replace"))


@cli.command()
@click.option("--repo-path", default=None, help="Local working tree of the tracked repository")
@click.option("--repo-clone-url", default=None, help="Clone URL used when the working tree is empty")
@click.option("--force", is_flag=True, help="Overwrite an existing settings file")
@click.pass_context
def init(ctx: click.Context, repo_path: str | None, repo_clone_url: str | None, force: bool) -> None:
    """Create the store directory and a default settings file."""
    store: Store = ctx.obj["store"]
    store.ensure_directories()

    settings_file = store.paths.settings_file
    if settings_file.exists() and not force:
        click.echo(f"settings already exist: {settings_file}")
        return

    overrides: dict[str, str] = {}
    if repo_path is not None:
        overrides["repo_path"] = repo_path
    if repo_clone_url is not None:
        overrides["repo_clone_url"] = repo_clone_url

    store.save_settings(ReviewerSettings(**overrides))
    click.echo(f"settings initialized: {settings_file}")


@cli.command("settings")
@click.pass_context
def show_settings(ctx: click.Context) -> None:
    """Print the settings file path and the effective settings."""
    store: Store = ctx.obj["store"]
    click.echo(f"settings file: {store.paths.settings_file}")
    for name, value in store.load_settings().model_dump().items():
        click.echo(f"{name}: {value}")


def _run_or_exit(coro: Coroutine[Any, Any, T], command: str) -> T:
    """Run a coroutine for a CLI command, turning errors into exit codes."""
    try:
        return asyncio.run(coro)
    except PRReviewerError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug(f"{command}_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)


def _print_run_result(snapshot: RunSnapshot) -> None:
    for line in snapshot.log_lines:
        click.echo(line)

    click.echo(f"status: {snapshot.status.value}, processed: {len(snapshot.report)}")
    if snapshot.status == RunStatus.FAILED:
        click.echo(f"Error: {snapshot.error_message}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
