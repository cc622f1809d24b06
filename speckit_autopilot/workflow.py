"""Workflow management for Speck-It Autopilot.

This module drives the six pipeline steps (specify, clarify, plan, tasks,
implement, review) on top of the checklist parser and the workflow state
store. Every public method returns a plain dictionary suitable for an MCP
tool response; failures are logged and reported through an ``error`` key
so the caller decides whether to abort the pipeline.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .config import Settings, load_settings
from .files import file_exists, read_text, write_text
from .models import PIPELINE_STEPS, WorkflowState, validate_step
from .speckit_logging import log_error_with_context
from .state import WorkflowStateStore
from .tasks import (
    count_tasks,
    incomplete_tasks,
    list_phases,
    mark_task_complete_file,
    parse_tasks_file,
)

logger = logging.getLogger("speckit.workflow")

TASKS_FILENAME = "tasks.md"
SPEC_FILENAME = "spec.md"
PLAN_FILENAME = "plan.md"

DEFAULT_TASKS_TEMPLATE = """# Implementation Tasks

## Phase 1: Setup

## Phase 2: Foundational

## Phase 3: User Stories

## Phase 4: Polish
"""


def next_step_after(step: str) -> str:
    """The pipeline step that follows ``step``; ``complete`` after review."""
    if step == "complete":
        return "complete"
    index = PIPELINE_STEPS.index(validate_step(step))
    if index + 1 < len(PIPELINE_STEPS):
        return PIPELINE_STEPS[index + 1]
    return "complete"


class WorkflowManager:
    """Manages workflow progress for feature directories."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[WorkflowStateStore] = None,
    ):
        self.settings = settings or load_settings()
        self.store = store or WorkflowStateStore(state_filename=self.settings.state_file)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _feature_dir(self, feature_dir: str) -> Path:
        return self.settings.resolve_feature_dir(feature_dir)

    def tasks_path(self, feature_dir: str) -> Path:
        return self._feature_dir(feature_dir) / TASKS_FILENAME

    def _require_tasks(self, feature_dir: str) -> Path:
        path = self.tasks_path(feature_dir)
        if not file_exists(path):
            raise FileNotFoundError(f"{TASKS_FILENAME} not found in {path.parent}. Run speckit_tasks first.")
        return path

    def _tasks_template(self) -> str:
        template = self.settings.tasks_template
        if template is not None and file_exists(template):
            return read_text(template)
        return DEFAULT_TASKS_TEMPLATE

    @staticmethod
    def _failure(operation: str, error: Exception, suggestion: str, next_step: str, **context) -> Dict[str, Any]:
        logger.error(f"{operation} failed: {error}")
        log_error_with_context(error, {"operation": operation, **context})
        return {
            "success": False,
            "error": f"Failed to {operation.replace('_', ' ')}: {error}",
            "suggestion": suggestion,
            "next_suggested_step": next_step,
        }

    # ------------------------------------------------------------------
    # State management
    # ------------------------------------------------------------------

    def start_feature(self, feature_dir: str, description: str = "") -> Dict[str, Any]:
        """Initialize workflow state for a feature, discarding any previous state."""
        try:
            resolved = self._feature_dir(feature_dir)
            state = self.store.initialize(str(resolved), description)
            return {
                "success": True,
                "state": state.to_dict(),
                "state_path": str(self.store.state_path(resolved)),
                "next_suggested_step": "specify",
                "message": f"Workflow started for {resolved}",
            }
        except Exception as e:
            return self._failure(
                "start_feature", e,
                "Check that the feature directory is writable",
                "speckit_start",
                feature_dir=feature_dir,
            )

    def record_step(self, feature_dir: str, step: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Mark a pipeline step completed, merging step-specific data."""
        try:
            resolved = self._feature_dir(feature_dir)
            state = self.store.update(str(resolved), step, data or {})
            return {
                "success": True,
                "state": state.to_dict(),
                "next_suggested_step": next_step_after(step),
                "message": f"Step '{step}' recorded",
            }
        except Exception as e:
            return self._failure(
                "record_step", e,
                f"Use one of: {', '.join(PIPELINE_STEPS)}",
                "speckit_status",
                feature_dir=feature_dir,
                step=step,
            )

    def workflow_status(self, feature_dir: str) -> Dict[str, Any]:
        """Report stored progress and where to resume."""
        try:
            resolved = self._feature_dir(feature_dir)
            state = self.store.read(str(resolved))
            tasks_path = resolved / TASKS_FILENAME
            open_tasks = incomplete_tasks(parse_tasks_file(tasks_path)) if file_exists(tasks_path) else []
            return {
                "success": True,
                "exists": state is not None,
                "state": state.to_dict() if state else None,
                "incomplete_tasks": len(open_tasks),
                "next_suggested_step": self._resume_step(state, len(open_tasks)),
            }
        except Exception as e:
            return self._failure(
                "read_workflow_status", e,
                "Check that the feature directory exists",
                "speckit_start",
                feature_dir=feature_dir,
            )

    @staticmethod
    def _resume_step(state: Optional[WorkflowState], open_tasks: int) -> str:
        if state is None:
            return "specify"
        if state.current_step == "complete":
            return "complete"
        if open_tasks and state.is_step_completed("tasks"):
            return "implement"
        if not state.is_step_completed(state.current_step):
            return state.current_step
        return next_step_after(state.current_step)

    # ------------------------------------------------------------------
    # Task list
    # ------------------------------------------------------------------

    def generate_tasks(self, feature_dir: str) -> Dict[str, Any]:
        """Seed tasks.md if needed and record the tasks step."""
        try:
            path = self.tasks_path(feature_dir)
            for filename, step in ((SPEC_FILENAME, "specify"), (PLAN_FILENAME, "plan")):
                if not file_exists(path.parent / filename):
                    return self._failure(
                        "generate_tasks",
                        FileNotFoundError(f"{filename} not found in {path.parent}. Complete the {step} step first."),
                        f"Record the {step} step before generating tasks",
                        step,
                        feature_dir=feature_dir,
                    )
            created = not file_exists(path)
            if created:
                write_text(path, self._tasks_template())
            content = read_text(path)
            task_count = count_tasks(content)
            phases = list_phases(content)
            self.store.update(str(path.parent), "tasks", {"tasksPath": str(path), "taskCount": task_count})
            return {
                "success": True,
                "tasks_path": str(path),
                "created": created,
                "task_count": task_count,
                "phases": phases,
                "next_suggested_step": "implement",
                "message": f"Tasks ready: {task_count} tasks across {len(phases)} phases",
            }
        except Exception as e:
            return self._failure(
                "generate_tasks", e,
                "Check that the feature directory is writable",
                "speckit_plan",
                feature_dir=feature_dir,
            )

    def list_tasks(self, feature_dir: str) -> Dict[str, Any]:
        try:
            tasks = parse_tasks_file(self._require_tasks(feature_dir))
            return {
                "success": True,
                "tasks": [task.to_dict() for task in tasks],
                "total": len(tasks),
                "remaining": len(incomplete_tasks(tasks)),
            }
        except Exception as e:
            return self._failure(
                "list_tasks", e,
                "Generate tasks for this feature first",
                "speckit_tasks",
                feature_dir=feature_dir,
            )

    def implement_status(self, feature_dir: str) -> Dict[str, Any]:
        """Report which tasks still need implementation."""
        try:
            tasks = parse_tasks_file(self._require_tasks(feature_dir))
            remaining = incomplete_tasks(tasks)
            completed = len(tasks) - len(remaining)
            return {
                "success": True,
                "tasks_completed": completed,
                "total_tasks": len(tasks),
                "needs_implementation": bool(remaining),
                "incomplete_tasks": [
                    {"task_id": task.task_id, "description": task.description, "phase": task.phase}
                    for task in remaining
                ],
                "next_suggested_step": "implement" if remaining else "review",
                "message": f"Found {len(remaining)} incomplete tasks",
            }
        except Exception as e:
            return self._failure(
                "check_implementation", e,
                "Generate tasks for this feature first",
                "speckit_tasks",
                feature_dir=feature_dir,
            )

    def complete_task(self, feature_dir: str, task_id: str) -> Dict[str, Any]:
        """Mark a task complete and record implement progress."""
        try:
            if not task_id or not task_id.strip():
                raise ValueError("Task ID is required")
            path = self._require_tasks(feature_dir)
            result = mark_task_complete_file(path, task_id)
            tasks = parse_tasks_file(path)
            remaining = incomplete_tasks(tasks)
            completed = len(tasks) - len(remaining)
            self.store.update(
                str(path.parent),
                "implement",
                {"tasksCompleted": completed, "totalTasks": len(tasks)},
            )
            if not result.matched:
                message = f"Task '{result.task_id}' not found; checklist unchanged"
            elif result.changed:
                message = f"Task '{result.task_id}' marked complete"
            else:
                message = f"Task '{result.task_id}' was already complete"
            return {
                "success": True,
                "task_id": result.task_id,
                "matched": result.matched,
                "changed": result.changed,
                "tasks_completed": completed,
                "total_tasks": len(tasks),
                "remaining": len(remaining),
                "next_task": remaining[0].to_dict() if remaining else None,
                "next_suggested_step": "implement" if remaining else "review",
                "message": message,
            }
        except Exception as e:
            return self._failure(
                "complete_task", e,
                f"Check that task '{task_id}' exists in {TASKS_FILENAME}",
                "speckit_list_tasks",
                feature_dir=feature_dir,
                task_id=task_id,
            )

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def finalize_feature(self, feature_dir: str) -> Dict[str, Any]:
        """Mark the workflow complete once every task is done and review has run."""
        try:
            path = self._require_tasks(feature_dir)
            remaining = incomplete_tasks(parse_tasks_file(path))
            if remaining:
                ids = ", ".join(task.task_id for task in remaining)
                raise RuntimeError(f"{len(remaining)} tasks are still incomplete: {ids}")
            state = self.store.read(str(path.parent))
            if state is None or not state.is_step_completed("review"):
                return self._failure(
                    "finalize_feature",
                    RuntimeError("review step has not been recorded"),
                    "Run the review step and record it with speckit_record_step",
                    "review",
                    feature_dir=feature_dir,
                )
            state = self.store.mark_complete(str(path.parent))
            return {
                "success": True,
                "state": state.to_dict(),
                "next_suggested_step": "complete",
                "message": "Workflow complete",
            }
        except Exception as e:
            return self._failure(
                "finalize_feature", e,
                "Complete all tasks before finalizing",
                "speckit_implement",
                feature_dir=feature_dir,
            )
