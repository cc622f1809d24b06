"""Speck-It Autopilot - checklist parsing and workflow state tracking."""

from .models import Task, WorkflowState, WORKFLOW_STEPS
from .state import WorkflowStateStore
from .tasks import (
    MarkResult,
    incomplete_tasks,
    mark_task_complete,
    mark_task_complete_file,
    parse_tasks,
    parse_tasks_file,
)
from .workflow import WorkflowManager

__all__ = [
    "MarkResult",
    "Task",
    "WORKFLOW_STEPS",
    "WorkflowManager",
    "WorkflowState",
    "WorkflowStateStore",
    "incomplete_tasks",
    "mark_task_complete",
    "mark_task_complete_file",
    "parse_tasks",
    "parse_tasks_file",
]
