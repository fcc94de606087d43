"""Enumerations for run status and execution stage."""

from enum import Enum


class RunStatus(str, Enum):
    """Overall status of the current or most recent run."""

    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class ExecutionStage(str, Enum):
    """Stage of the run state machine.

    The values are persisted verbatim in the run snapshot, so observers
    written against the on-disk format can read them directly.
    """

    IDLE = "idle"
    SYNCING_REPO = "syncingRepo"
    LOADING_PRS = "loadingPRs"
    REVIEWING_PR = "reviewingPR"
    FIXING_PR = "fixingPR"
    PUSHING_CHANGES = "pushingChanges"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    ExecutionStage.IDLE: "Idle",
    ExecutionStage.SYNCING_REPO: "Syncing repository",
    ExecutionStage.LOADING_PRS: "Loading PR list",
    ExecutionStage.REVIEWING_PR: "Reviewing PR",
    ExecutionStage.FIXING_PR: "Auto fixing",
    ExecutionStage.PUSHING_CHANGES: "Pushing changes",
    ExecutionStage.COMPLETED: "Completed",
    ExecutionStage.FAILED: "Failed",
}
