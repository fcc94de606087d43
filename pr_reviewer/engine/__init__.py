"""Workflow execution engine.

Key Components:
    - WorkflowRunner: Run coordinator (sync, discover, dispatch, finalize)
    - PRProcessor: Per-PR pipeline in an isolated workspace
    - WorkerPool: Bounded pool of worker coroutines
    - RepositorySynchronizer: Tracked repository checks and sync
    - Store: Persisted settings, processed state, snapshot and reports

Example:
    >>> from pr_reviewer.engine import Store, WorkflowRunner
    >>> runner = WorkflowRunner(Store())
    >>> snapshot = await runner.run_once()
"""

from pr_reviewer.engine.processor import PRProcessor
from pr_reviewer.engine.repository import RepositorySynchronizer
from pr_reviewer.engine.runner import WorkflowRunner
from pr_reviewer.engine.store import Store, StorePaths
from pr_reviewer.engine.worker_pool import WorkerPool

__all__ = [
    "PRProcessor",
    "RepositorySynchronizer",
    "Store",
    "StorePaths",
    "WorkerPool",
    "WorkflowRunner",
]
