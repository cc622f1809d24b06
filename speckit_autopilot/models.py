"""Data models for Speck-It Autopilot workflow tracking.

This module contains the structures shared by the checklist parser and the
workflow state store: parsed task records, per-step status payloads and the
persisted workflow state document.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Dict, List, Optional, Type


# Pipeline order; ``complete`` is terminal and only written explicitly.
WORKFLOW_STEPS = ("specify", "clarify", "plan", "tasks", "implement", "review", "complete")
PIPELINE_STEPS = WORKFLOW_STEPS[:-1]


def validate_step(step: str) -> str:
    """Return ``step`` if it names a workflow step, else raise ValueError."""
    if step not in WORKFLOW_STEPS:
        raise ValueError(f"Unknown workflow step '{step}'")
    return step


@dataclass(slots=True)
class Task:
    """Representation of a single tasks.md checklist entry."""

    task_id: str
    description: str
    completed: bool
    phase: str = ""
    parallel: bool = False
    story: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "task_id": self.task_id,
            "description": self.description,
            "completed": self.completed,
            "phase": self.phase,
            "parallel": self.parallel,
            "story": self.story,
        }


# ---------------------------------------------------------------------------
# Step status payloads
# ---------------------------------------------------------------------------


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class _Unreported:
    """Marker for a step field that has never been reported."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "UNREPORTED"

    def __bool__(self) -> bool:
        return False


UNREPORTED: Any = _Unreported()


@dataclass(slots=True)
class StepStatus:
    """Base payload for one pipeline step.

    Subclasses declare the fields a step is known to report. Keys that do not
    match a declared field's JSON name are kept verbatim in ``extra`` so merges
    never drop or rename data. Fields are snake_case in Python and camelCase
    in the JSON document; a field left at ``UNREPORTED`` is omitted, while an
    explicit ``None`` is written as ``null``.
    """

    step: ClassVar[str] = ""

    completed: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def _json_names(cls) -> Dict[str, str]:
        """Map JSON key to Python field name."""
        return {_camel(item.name): item.name for item in fields(cls) if item.name != "extra"}

    def merge(self, data: Dict[str, Any]) -> "StepStatus":
        """Return a new payload with ``data`` shallow-merged over this one."""
        known = self._json_names()
        values = {item.name: getattr(self, item.name) for item in fields(self)}
        values["extra"] = dict(self.extra)
        for key, value in data.items():
            if key in known:
                values[known[key]] = value
            else:
                values["extra"][key] = value
        return type(self)(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON shape, omitting fields never reported."""
        payload: Dict[str, Any] = dict(self.extra)
        for item in fields(self):
            if item.name == "extra":
                continue
            value = getattr(self, item.name)
            if value is UNREPORTED:
                continue
            payload[_camel(item.name)] = value
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepStatus":
        """Create from dictionary representation."""
        return cls().merge(data)


@dataclass(slots=True)
class SpecifyStatus(StepStatus):
    step: ClassVar[str] = "specify"

    branch_name: Optional[str] = UNREPORTED
    spec_path: Optional[str] = UNREPORTED


@dataclass(slots=True)
class ClarifyStatus(StepStatus):
    step: ClassVar[str] = "clarify"

    rounds_completed: Optional[int] = UNREPORTED
    questions_asked: Optional[int] = UNREPORTED


@dataclass(slots=True)
class PlanStatus(StepStatus):
    step: ClassVar[str] = "plan"

    plan_path: Optional[str] = UNREPORTED
    artifacts: Optional[List[str]] = UNREPORTED


@dataclass(slots=True)
class TasksStatus(StepStatus):
    step: ClassVar[str] = "tasks"

    tasks_path: Optional[str] = UNREPORTED
    task_count: Optional[int] = UNREPORTED


@dataclass(slots=True)
class ImplementStatus(StepStatus):
    step: ClassVar[str] = "implement"

    tasks_completed: Optional[int] = UNREPORTED
    total_tasks: Optional[int] = UNREPORTED


@dataclass(slots=True)
class ReviewStatus(StepStatus):
    step: ClassVar[str] = "review"

    iterations: Optional[int] = UNREPORTED
    issues_fixed: Optional[int] = UNREPORTED


@dataclass(slots=True)
class CompleteStatus(StepStatus):
    step: ClassVar[str] = "complete"


STEP_STATUS_TYPES: Dict[str, Type[StepStatus]] = {
    status_type.step: status_type
    for status_type in (
        SpecifyStatus,
        ClarifyStatus,
        PlanStatus,
        TasksStatus,
        ImplementStatus,
        ReviewStatus,
        CompleteStatus,
    )
}


def step_status_from_dict(step: str, data: Dict[str, Any]) -> StepStatus:
    """Build the payload type registered for ``step``."""
    if not isinstance(data, dict):
        raise TypeError(f"Status for step '{step}' must be a JSON object")
    return STEP_STATUS_TYPES[validate_step(step)].from_dict(data)


# ---------------------------------------------------------------------------
# Workflow state document
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class WorkflowMetadata:
    """Free-form timestamps and description attached to a workflow."""

    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    feature_description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.started_at is not None:
            payload["startedAt"] = self.started_at
        if self.completed_at is not None:
            payload["completedAt"] = self.completed_at
        if self.feature_description is not None:
            payload["featureDescription"] = self.feature_description
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowMetadata":
        return cls(
            started_at=data.get("startedAt"),
            completed_at=data.get("completedAt"),
            feature_description=data.get("featureDescription"),
        )


@dataclass(slots=True)
class WorkflowState:
    """Orchestration progress for one feature directory."""

    feature_dir: str
    current_step: str = "specify"
    step_status: Dict[str, StepStatus] = field(default_factory=dict)
    metadata: WorkflowMetadata = field(default_factory=WorkflowMetadata)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted JSON document shape."""
        return {
            "featureDir": self.feature_dir,
            "currentStep": self.current_step,
            "stepStatus": {step: status.to_dict() for step, status in self.step_status.items()},
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowState":
        """Create from dictionary representation.

        Raises ValueError or TypeError when the document does not have the
        expected shape.
        """
        if not isinstance(data, dict):
            raise TypeError("Workflow state must be a JSON object")
        feature_dir = data["featureDir"]
        if not isinstance(feature_dir, str):
            raise TypeError("featureDir must be a string")
        raw_status = data.get("stepStatus") or {}
        if not isinstance(raw_status, dict):
            raise TypeError("stepStatus must be a JSON object")
        raw_metadata = data.get("metadata") or {}
        if not isinstance(raw_metadata, dict):
            raise TypeError("metadata must be a JSON object")
        return cls(
            feature_dir=feature_dir,
            current_step=validate_step(data.get("currentStep", "specify")),
            step_status={
                step: step_status_from_dict(step, payload)
                for step, payload in raw_status.items()
            },
            metadata=WorkflowMetadata.from_dict(raw_metadata),
        )

    def is_step_completed(self, step: str) -> bool:
        status = self.step_status.get(step)
        return bool(status and status.completed)
