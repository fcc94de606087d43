"""Open PR discovery through the hosting CLI, and selection of unprocessed PRs."""

import json
from pathlib import Path

import structlog
from pydantic import ValidationError

from pr_reviewer.config.settings import ReviewerSettings
from pr_reviewer.exceptions import DiscoveryError
from pr_reviewer.models.domain import OpenPR
from pr_reviewer.utils.retry import run_with_retry

log = structlog.get_logger(__name__)

PR_LIST_FIELDS = "number,title,headRefName,url,updatedAt"


def build_list_command(settings: ReviewerSettings) -> str:
    return f"{settings.hosting_cli} pr list --state open --limit {settings.pr_list_limit} --json {PR_LIST_FIELDS}"


def parse_pr_list(payload: str) -> list[OpenPR]:
    """Decode the hosting CLI's JSON array, newest update first.

    Raises:
        DiscoveryError: The payload is not a JSON array of PR objects
    """
    try:
        items = json.loads(payload or "[]")
    except json.JSONDecodeError as e:
        raise DiscoveryError(f"Unable to decode PR list: {e}") from e

    if not isinstance(items, list):
        raise DiscoveryError("Unable to decode PR list: expected a JSON array")

    try:
        prs = [OpenPR.model_validate(item) for item in items]
    except ValidationError as e:
        raise DiscoveryError(f"Unable to decode PR list: {e}") from e

    # ISO 8601 timestamps sort correctly as strings
    prs.sort(key=lambda pr: pr.updated_at, reverse=True)
    return prs


async def list_open_prs(settings: ReviewerSettings) -> list[OpenPR]:
    """Fetch open PRs for the tracked repository.

    Raises:
        CommandError: The hosting CLI kept failing after all retries
        DiscoveryError: The output could not be decoded
    """
    result = await run_with_retry(
        build_list_command(settings),
        cwd=Path(settings.require_repo_path()).expanduser(),
        retries=settings.max_command_retries,
        delay_seconds=settings.retry_delay_seconds,
        step="list_prs",
    )
    prs = parse_pr_list(result.stdout)
    log.info("open_prs_discovered", count=len(prs))
    return prs


def select_new_prs(prs: list[OpenPR], processed: set[int], max_prs_per_run: int) -> list[OpenPR]:
    """Drop already processed PRs and cap the batch, keeping discovery order.

    A cap of zero or less means unlimited.
    """
    candidates = [pr for pr in prs if pr.number not in processed]
    if max_prs_per_run > 0:
        return candidates[:max_prs_per_run]
    return candidates
