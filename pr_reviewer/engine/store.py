"""
Persistence for settings, processed state, the run snapshot and reports.

Store Layout:
    All files live under one root directory, created on demand::

        <root>/
            settings.yaml        ReviewerSettings
            engine-state.json    EngineState (processed PR numbers, last run)
            run-snapshot.json    RunSnapshot of the current or latest run
            reports/             pr-<number>-<run_id>.md, one per attempted PR

    The root is the explicit constructor argument, else ``$PR_REVIEWER_HOME``,
    else ``~/.pr-reviewer``.

Loading never fails: a missing file yields the default record, and an
unreadable or corrupt one is logged at WARNING and also yields the default.

Writes are atomic. The record is written to ``<file>.tmp`` and renamed over
the target, so a concurrent reader sees either the old or the new content,
never a partial file. Each file has its own asyncio lock so concurrent
writers of the same record are serialized.

Example:
    >>> store = Store("/tmp/pr-reviewer-home")
    >>> state = await store.load_state()
    >>> state.mark_processed({7, 9})
    >>> await store.save_state(state)
"""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

import aiofiles
import structlog
from pydantic import ValidationError

from pr_reviewer.config.settings import ReviewerSettings
from pr_reviewer.models.domain import EngineState, PersistedModel, RunSnapshot

log = structlog.get_logger(__name__)

HOME_ENV_VAR = "PR_REVIEWER_HOME"
DEFAULT_HOME_DIRNAME = ".pr-reviewer"

ModelT = TypeVar("ModelT", bound=PersistedModel)


def default_root() -> Path:
    """Resolve the store root from the environment."""
    configured = os.environ.get(HOME_ENV_VAR, "").strip()
    if configured:
        return Path(configured).expanduser()
    return Path.home() / DEFAULT_HOME_DIRNAME


@dataclass(frozen=True)
class StorePaths:
    """Locations of every persisted file under one root."""

    root: Path

    @property
    def settings_file(self) -> Path:
        return self.root / "settings.yaml"

    @property
    def state_file(self) -> Path:
        return self.root / "engine-state.json"

    @property
    def snapshot_file(self) -> Path:
        return self.root / "run-snapshot.json"

    @property
    def reports_dir(self) -> Path:
        return self.root / "reports"


class Store:
    """Load and atomically save the engine's persisted records."""

    def __init__(self, root: str | Path | None = None) -> None:
        self.paths = StorePaths(Path(root).expanduser() if root is not None else default_root())
        # One lock per file path
        self._locks: dict[Path, asyncio.Lock] = {}

    def ensure_directories(self) -> None:
        self.paths.root.mkdir(parents=True, exist_ok=True)
        self.paths.reports_dir.mkdir(parents=True, exist_ok=True)

    def _lock_for(self, path: Path) -> asyncio.Lock:
        return self._locks.setdefault(path, asyncio.Lock())

    def load_settings(self) -> ReviewerSettings:
        return ReviewerSettings.load_or_default(self.paths.settings_file)

    def save_settings(self, settings: ReviewerSettings) -> None:
        settings.to_yaml(self.paths.settings_file)

    async def load_state(self) -> EngineState:
        return await self._read_model(self.paths.state_file, EngineState)

    async def save_state(self, state: EngineState) -> None:
        await self._write_model(self.paths.state_file, state)

    async def load_snapshot(self) -> RunSnapshot:
        return await self._read_model(self.paths.snapshot_file, RunSnapshot)

    async def save_snapshot(self, snapshot: RunSnapshot) -> None:
        await self._write_model(self.paths.snapshot_file, snapshot)

    def latest_report(self) -> Path | None:
        """Return the most recently modified markdown report, if any."""
        reports_dir = self.paths.reports_dir
        if not reports_dir.is_dir():
            return None
        reports = [path for path in reports_dir.glob("*.md") if path.is_file()]
        if not reports:
            return None
        return max(reports, key=lambda path: path.stat().st_mtime)

    async def _read_model(self, path: Path, model: type[ModelT]) -> ModelT:
        """Read a record, falling back to its defaults when missing or corrupt."""
        if not path.exists():
            return model()

        async with self._lock_for(path):
            try:
                async with aiofiles.open(path, encoding="utf-8") as f:
                    content = await f.read()
                return model.model_validate_json(content)
            except (OSError, UnicodeDecodeError, ValidationError) as e:
                log.warning("store_record_unreadable", path=str(path), error=str(e))
                return model()

    async def _write_model(self, path: Path, record: PersistedModel) -> None:
        """Write a record atomically using a temporary file in the same directory."""
        async with self._lock_for(path):
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(path.name + ".tmp")

            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(record.to_json())

            tmp_path.replace(path)
