"""Domain models for the review engine."""

from pr_reviewer.models.domain import (
    EngineState,
    OpenPR,
    PRExecutionResult,
    PROutcome,
    RunSnapshot,
)

__all__ = [
    "EngineState",
    "OpenPR",
    "PRExecutionResult",
    "PROutcome",
    "RunSnapshot",
]
