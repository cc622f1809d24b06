"""Environment-driven settings for Speck-It Autopilot."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_STATE_FILE = ".speckit-workflow-state.json"
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclass(slots=True)
class Settings:
    """Runtime configuration sourced from ``SPECKIT_*`` environment variables."""

    log_level: str = "INFO"
    log_file: Optional[Path] = None
    state_file: str = DEFAULT_STATE_FILE
    tasks_template: Optional[Path] = None
    project_root: Optional[Path] = None

    def resolve_feature_dir(self, feature_dir: str) -> Path:
        """Resolve a feature directory, relative paths against the project root."""
        if not feature_dir or not feature_dir.strip():
            raise ValueError("Feature directory is required")
        path = Path(feature_dir).expanduser()
        if not path.is_absolute() and self.project_root is not None:
            path = self.project_root / path
        return path.resolve()


def _optional_path(name: str) -> Optional[Path]:
    value = os.getenv(name)
    if not value or not value.strip():
        return None
    return Path(value.strip()).expanduser().resolve()


def load_settings() -> Settings:
    """Read settings from the environment."""
    log_level = os.getenv("SPECKIT_LOG_LEVEL", "INFO").strip().upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(f"SPECKIT_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")

    state_file = os.getenv("SPECKIT_STATE_FILE", "").strip() or DEFAULT_STATE_FILE
    if Path(state_file).name != state_file:
        raise ValueError("SPECKIT_STATE_FILE must be a file name, not a path")

    return Settings(
        log_level=log_level,
        log_file=_optional_path("SPECKIT_LOG_FILE"),
        state_file=state_file,
        tasks_template=_optional_path("SPECKIT_TASKS_TEMPLATE"),
        project_root=_optional_path("SPECKIT_PROJECT_ROOT"),
    )
