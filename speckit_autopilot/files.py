"""File primitives used by the checklist and state modules."""

from __future__ import annotations

from pathlib import Path


class FileAccessError(OSError):
    """Raised when a read or write fails; wraps the underlying OSError or decode error."""

    def __init__(self, operation: str, path: Path | str, error: Exception):
        self.operation = operation
        self.path = Path(path)
        reason = getattr(error, "strerror", None) or str(error)
        super().__init__(getattr(error, "errno", None), f"Failed to {operation} file {self.path}: {reason}")

    def __str__(self) -> str:
        return self.strerror


def _require_path(path: Path | str | None) -> Path:
    if path is None or not str(path).strip():
        raise ValueError("File path is required")
    return Path(path)


def read_text(path: Path | str) -> str:
    """Read a UTF-8 text file, preserving its line endings."""
    target = _require_path(path)
    try:
        with target.open("r", encoding="utf-8", newline="") as handle:
            return handle.read()
    except (OSError, UnicodeDecodeError) as e:
        raise FileAccessError("read", target, e) from e


def write_text(path: Path | str, content: str) -> Path:
    """Write ``content`` to ``path`` verbatim, creating parent directories."""
    target = _require_path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("w", encoding="utf-8", newline="") as handle:
            handle.write(content)
    except OSError as e:
        raise FileAccessError("write", target, e) from e
    return target


def file_exists(path: Path | str) -> bool:
    return Path(path).is_file()
