"""Persisted workflow state, one JSON document per feature directory.

Every write replaces the whole document. No locking is taken, so two
callers updating the same feature directory at once can lose one update
(last write wins).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .config import DEFAULT_STATE_FILE
from .files import file_exists, read_text, write_text
from .models import (
    WorkflowMetadata,
    WorkflowState,
    step_status_from_dict,
    validate_step,
)
from .speckit_logging import log_operation, log_workflow_step

logger = logging.getLogger("speckit.state")

Clock = Callable[[], datetime]


def _utc_clock() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _feature_key(feature_dir: Path | str) -> str:
    if feature_dir is None or not str(feature_dir).strip():
        raise ValueError("Feature directory is required")
    return str(feature_dir)


class WorkflowStateStore:
    """Read, initialize and merge-update workflow state by feature directory."""

    def __init__(self, *, clock: Clock = _utc_clock, state_filename: str = DEFAULT_STATE_FILE):
        self.clock = clock
        self.state_filename = state_filename

    def state_path(self, feature_dir: Path | str) -> Path:
        return Path(_feature_key(feature_dir)) / self.state_filename

    def _now(self) -> str:
        return format_timestamp(self.clock())

    def read(self, feature_dir: Path | str) -> Optional[WorkflowState]:
        """Return the stored state, or None if absent or unreadable."""
        path = self.state_path(feature_dir)
        if not file_exists(path):
            return None
        try:
            return WorkflowState.from_dict(json.loads(read_text(path)))
        except (OSError, ValueError, TypeError, KeyError) as e:
            logger.warning(f"Ignoring unreadable workflow state at {path}: {e}")
            return None

    def write(self, state: WorkflowState, feature_dir: Path | str | None = None) -> Path:
        """Persist ``state``, by default into its own feature directory."""
        path = self.state_path(feature_dir if feature_dir is not None else state.feature_dir)
        write_text(path, json.dumps(state.to_dict(), indent=2))
        return path

    def initialize(self, feature_dir: Path | str, description: str = "") -> WorkflowState:
        """Create fresh state at ``specify``, replacing any existing state."""
        key = _feature_key(feature_dir)
        with log_operation("initialize_workflow_state", feature_dir=key):
            state = WorkflowState(
                feature_dir=key,
                current_step="specify",
                metadata=WorkflowMetadata(
                    started_at=self._now(),
                    feature_description=description,
                ),
            )
            self.write(state)
        log_workflow_step("initialized", feature_dir=key)
        return state

    def update(
        self,
        feature_dir: Path | str,
        step: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> WorkflowState:
        """Move to ``step`` and shallow-merge ``data`` into its status.

        The step is always marked completed. Steps may be set in any order;
        an earlier step after a later one moves ``current_step`` back.
        """
        key = _feature_key(feature_dir)
        validate_step(step)
        with log_operation("update_workflow_state", feature_dir=key, step=step):
            state = self.read(key) or self.initialize(key, "")
            previous = state.step_status.get(step) or step_status_from_dict(step, {})
            merged = previous.merge(dict(data or {}))
            merged.completed = True
            state.current_step = step
            state.step_status[step] = merged
            self.write(state, key)
        log_workflow_step(step, feature_dir=key, fields=sorted((data or {}).keys()))
        return state

    def mark_complete(self, feature_dir: Path | str) -> WorkflowState:
        """Move the workflow to its terminal ``complete`` step."""
        key = _feature_key(feature_dir)
        state = self.update(key, "complete")
        state.metadata.completed_at = self._now()
        self.write(state, key)
        return state
