"""Parsing and completion tracking for tasks.md checklists.

A checklist is plain text. Two line shapes carry meaning::

    ## Phase 2: Core
    - [ ] T003 [P] [US1] Build core

Phase headings set the phase for every task below them until the next
heading. Task lines become :class:`~speckit_autopilot.models.Task` records.
Every other line is ignored by the parser and passed through untouched by
the mutator.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .files import read_text, write_text
from .models import Task
from .speckit_logging import log_operation, log_performance, log_task_update

logger = logging.getLogger("speckit.tasks")

COMPLETION_MARK = "X"

_PHASE_PATTERN = re.compile(r"^##\s+Phase\s+\d+[:\s]+(?P<title>.+)$", re.IGNORECASE)
_TASK_PATTERN = re.compile(
    r"^(?P<open>-\s+\[)(?P<mark>[ xX])(?P<close>\]\s+)(?P<task_id>T\d+)"
    r"(?:\s+\[P\])?"
    r"(?:\s+\[(?P<story>US\d+)\])?"
    r"\s+(?P<description>.+)$"
)
# The mutator only needs the checkbox and the id to rewrite a line.
_TASK_PREFIX_PATTERN = re.compile(r"^(?P<open>-\s+\[)(?P<mark>[ xX])(?P<close>\]\s+)(?P<task_id>T\d+)(?=\s|$)")
_PARALLEL_TAG = "[P]"


@dataclass(frozen=True, slots=True)
class PhaseHeading:
    title: str


@dataclass(frozen=True, slots=True)
class TaskLine:
    task_id: str
    completed: bool
    description: str
    parallel: bool
    story: Optional[str]


LineKind = Union[PhaseHeading, TaskLine, None]


@dataclass(frozen=True, slots=True)
class MarkResult:
    """Outcome of marking a task complete.

    ``matched`` is true when a task line with the id exists; ``changed`` is
    true only when its checkbox was actually flipped.
    """

    content: str
    task_id: str
    matched: bool
    changed: bool


def classify_line(line: str) -> LineKind:
    """Classify one line as a phase heading, a task line, or neither."""
    phase_match = _PHASE_PATTERN.match(line)
    if phase_match:
        return PhaseHeading(title=phase_match.group("title").strip())

    task_match = _TASK_PATTERN.match(line)
    if task_match:
        story = task_match.group("story")
        return TaskLine(
            task_id=task_match.group("task_id"),
            completed=task_match.group("mark").lower() == "x",
            description=task_match.group("description").strip(),
            parallel=_PARALLEL_TAG in line,
            story=story.strip() if story else None,
        )
    return None


def parse_tasks(content: str) -> List[Task]:
    """Return the task records of ``content`` in document order."""
    tasks: List[Task] = []
    current_phase = ""
    for line in content.split("\n"):
        kind = classify_line(line)
        if isinstance(kind, PhaseHeading):
            current_phase = kind.title
        elif isinstance(kind, TaskLine):
            tasks.append(
                Task(
                    task_id=kind.task_id,
                    description=kind.description,
                    completed=kind.completed,
                    phase=current_phase,
                    parallel=kind.parallel,
                    story=kind.story,
                )
            )
    return tasks


def incomplete_tasks(tasks: Union[str, Iterable[Task]]) -> List[Task]:
    """Filter to the tasks still open, keeping their order."""
    if isinstance(tasks, str):
        tasks = parse_tasks(tasks)
    return [task for task in tasks if not task.completed]


def count_tasks(content: str) -> int:
    return sum(1 for line in content.split("\n") if _TASK_PREFIX_PATTERN.match(line))


def list_phases(content: str) -> List[str]:
    """Titles of all phase headings, in order."""
    return [
        kind.title
        for kind in map(classify_line, content.split("\n"))
        if isinstance(kind, PhaseHeading)
    ]


def _require_task_id(task_id: Optional[str]) -> str:
    if not task_id or not task_id.strip():
        raise ValueError("Task ID is required")
    return task_id.strip()


def mark_task_complete(content: str, task_id: str) -> MarkResult:
    """Set the checkbox of the first line with ``task_id`` to complete.

    Only the single checkbox character changes. A line already marked
    complete is left exactly as it is. An unknown id leaves the content
    unchanged and is reported through ``matched``.
    """
    task_id = _require_task_id(task_id)
    lines = content.split("\n")
    for index, line in enumerate(lines):
        match = _TASK_PREFIX_PATTERN.match(line)
        if not match or match.group("task_id") != task_id:
            continue
        if match.group("mark").lower() == "x":
            return MarkResult(content=content, task_id=task_id, matched=True, changed=False)
        position = match.start("mark")
        lines[index] = line[:position] + COMPLETION_MARK + line[position + 1:]
        return MarkResult(content="\n".join(lines), task_id=task_id, matched=True, changed=True)
    return MarkResult(content=content, task_id=task_id, matched=False, changed=False)


# ---------------------------------------------------------------------------
# File-backed operations
# ---------------------------------------------------------------------------


def parse_tasks_file(path: Path | str) -> List[Task]:
    """Read and parse a tasks.md file."""
    return parse_tasks(read_text(path))


def incomplete_tasks_file(path: Path | str) -> List[Task]:
    return incomplete_tasks(parse_tasks_file(path))


@log_performance("mark_task_complete")
def mark_task_complete_file(path: Path | str, task_id: str) -> MarkResult:
    """Mark ``task_id`` complete in the file at ``path``.

    The file is rewritten only when a checkbox actually changed.
    """
    task_id = _require_task_id(task_id)
    with log_operation("mark_task_complete", path=str(path), task_id=task_id):
        result = mark_task_complete(read_text(path), task_id)
        if result.changed:
            write_text(path, result.content)
        elif not result.matched:
            logger.warning(f"Task '{task_id}' not found in {path}; checklist left unchanged")
        else:
            logger.debug(f"Task '{task_id}' in {path} was already complete")

    log_task_update(str(Path(path).parent), task_id, result.matched, changed=result.changed)
    return result
