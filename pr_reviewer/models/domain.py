"""
Domain models for the review engine.

These models are both the in-memory representation used by the engine and
the on-disk schema of the persisted records. JSON keys use camelCase
aliases (``processedPRNumbers``, ``reviewExitCode``...) so files written by
earlier releases keep loading; either the alias or the Python field name is
accepted on input.

Every persisted field has a default. A record written by an older schema
version therefore materializes the missing fields from their defaults one
by one instead of failing to load.

Example:
    Decoding the hosting CLI's PR list::

        prs = [OpenPR.model_validate(item) for item in json.loads(stdout)]
        prs.sort(key=lambda pr: pr.updated_at, reverse=True)
"""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pr_reviewer.enums import ExecutionStage, RunStatus

SCHEMA_VERSION = 1
MAX_LOG_LINES = 500


def utc_now() -> datetime:
    return datetime.now(UTC)


def timestamp() -> str:
    """ISO 8601 UTC timestamp used as the log line prefix."""
    return utc_now().isoformat(timespec="seconds")


class PersistedModel(BaseModel):
    """Base for records stored as JSON."""

    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class OpenPR(BaseModel):
    """An open pull request as reported by the hosting CLI at discovery time."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    number: int
    title: str = ""
    head_ref_name: str = Field(default="", alias="headRefName")
    url: str = ""
    updated_at: str = Field(default="", alias="updatedAt")


class PRExecutionResult(PersistedModel):
    """Outcome of one attempted PR within one run.

    ``review_exit_code`` and ``fix_exit_code`` are None when the step never
    ran. When the step ran they hold the exit code of its last attempt: 0 on
    success, the final failing code after retries were exhausted.
    """

    number: int
    title: str = ""
    url: str = ""
    review_exit_code: int | None = Field(default=None, alias="reviewExitCode")
    fix_exit_code: int | None = Field(default=None, alias="fixExitCode")
    pushed: bool = False
    report_path: str = Field(default="", alias="reportPath")
    error_message: str | None = Field(default=None, alias="errorMessage")

    @property
    def failed(self) -> bool:
        return bool(self.error_message)


class PROutcome(BaseModel):
    """What the per-PR processor hands back to the runner."""

    result: PRExecutionResult
    mark_as_processed: bool = False
    log_lines: list[str] = Field(default_factory=list)


class EngineState(PersistedModel):
    """Durable engine state: which PRs are done and when the engine last ran."""

    schema_version: int = Field(default=SCHEMA_VERSION, alias="schemaVersion")
    processed_pr_numbers: list[int] = Field(default_factory=list, alias="processedPRNumbers")
    last_run_at: datetime | None = Field(default=None, alias="lastRunAt")

    @field_validator("processed_pr_numbers")
    @classmethod
    def normalize_processed(cls, value: list[int]) -> list[int]:
        return sorted(set(value))

    @property
    def processed_set(self) -> set[int]:
        return set(self.processed_pr_numbers)

    def mark_processed(self, numbers: set[int] | list[int]) -> None:
        """Union ``numbers`` into the processed set; never removes entries."""
        self.processed_pr_numbers = sorted(self.processed_set | set(numbers))


class RunSnapshot(PersistedModel):
    """Live, persisted progress record of the current or most recent run."""

    schema_version: int = Field(default=SCHEMA_VERSION, alias="schemaVersion")
    started_at: datetime | None = Field(default=None, alias="startedAt")
    finished_at: datetime | None = Field(default=None, alias="finishedAt")
    status: RunStatus = RunStatus.IDLE
    stage: ExecutionStage = ExecutionStage.IDLE
    total_prs: int = Field(default=0, alias="totalPRs")
    current_index: int = Field(default=0, alias="currentIndex")
    current_pr_number: int | None = Field(default=None, alias="currentPRNumber")
    current_pr_title: str | None = Field(default=None, alias="currentPRTitle")
    error_message: str | None = Field(default=None, alias="errorMessage")
    report: list[PRExecutionResult] = Field(default_factory=list)
    log_lines: list[str] = Field(default_factory=list, alias="logLines")

    @classmethod
    def start(cls) -> "RunSnapshot":
        return cls(started_at=utc_now(), status=RunStatus.RUNNING, stage=ExecutionStage.SYNCING_REPO)

    def append_log(self, message: str) -> None:
        self.log_lines.append(f"[{timestamp()}] {message}")
        self.trim_log_lines()

    def extend_logs(self, lines: list[str]) -> None:
        self.log_lines.extend(lines)
        self.trim_log_lines()

    def trim_log_lines(self) -> None:
        if len(self.log_lines) > MAX_LOG_LINES:
            self.log_lines = self.log_lines[-MAX_LOG_LINES:]

    def merge_result(self, result: PRExecutionResult) -> None:
        """Insert or replace the result for ``result.number``, keeping ascending order."""
        others = [existing for existing in self.report if existing.number != result.number]
        self.report = sorted([*others, result], key=lambda item: item.number)

    def finish(self, status: RunStatus, error_message: str | None = None) -> None:
        self.status = status
        self.stage = ExecutionStage.COMPLETED if status == RunStatus.SUCCEEDED else ExecutionStage.FAILED
        self.error_message = error_message
        self.finished_at = utc_now()
        self.report = sorted(self.report, key=lambda item: item.number)
