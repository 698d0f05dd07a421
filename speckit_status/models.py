"""Data models for spec-kit workflow status tracking.

This module contains the core data structures used throughout the status
engine, representing artifacts, branch context, workflow steps, task
progress, history events and the composed status snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


# Artifact status values
ARTIFACT_VALIDATED = "validated"
ARTIFACT_COMPLETE = "complete"
ARTIFACT_OPEN_QUESTIONS = "open-questions"
ARTIFACT_MISSING = "missing"
ARTIFACT_STATUSES = (ARTIFACT_VALIDATED, ARTIFACT_COMPLETE, ARTIFACT_OPEN_QUESTIONS, ARTIFACT_MISSING)

ARTIFACT_KINDS = ("file", "folder")
ARTIFACT_SOURCES = ("feature-folder", "memory")

# Branch match values
MATCH_MATCHED = "matched"
MATCH_MISSING = "missing"
MATCH_AMBIGUOUS = "ambiguous"
MATCH_STATUSES = (MATCH_MATCHED, MATCH_MISSING, MATCH_AMBIGUOUS)

# Workflow step status values
STEP_COMPLETE = "complete"
STEP_CURRENT = "current"
STEP_UPCOMING = "upcoming"
STEP_INCOMPLETE = "incomplete"
STEP_STATUSES = (STEP_COMPLETE, STEP_CURRENT, STEP_UPCOMING, STEP_INCOMPLETE)

# History event sources, also used as snapshot status sources
SOURCE_SESSION_LOG = "session-log"
SOURCE_ARTIFACT_FALLBACK = "artifact-fallback"
EVENT_SOURCES = (SOURCE_SESSION_LOG, SOURCE_ARTIFACT_FALLBACK)

# Evaluator result tags
DERIVED_FROM_ARTIFACT_SCAN = "artifact-scan"
DERIVED_FROM_EVENT_LOG = "event-log"


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """Return a fixed-width ISO-8601 UTC timestamp, e.g. 2026-02-13T00:00:00.000Z."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, returning None when it is not one."""
    if not isinstance(value, str) or not value:
        return None
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True, slots=True)
class ArtifactExpectation:
    """Static manifest entry describing one expected artifact."""

    id: str
    label: str
    kind: str
    step_id: str
    relative_path: str
    source: str
    checklist_relative_path: Optional[str] = None

    def validate(self) -> List[str]:
        """Validate the entry and return any issues."""
        issues = []
        if not self.id:
            issues.append("Artifact ID is required")
        if self.kind not in ARTIFACT_KINDS:
            issues.append(f"Invalid artifact kind: {self.kind}")
        if self.source not in ARTIFACT_SOURCES:
            issues.append(f"Invalid artifact source: {self.source}")
        if not self.relative_path:
            issues.append("Relative path is required")
        return issues


@dataclass(slots=True)
class ArtifactDescriptor:
    """A manifest entry resolved to a concrete location."""

    id: str
    label: str
    location: Path
    kind: str
    step_id: str
    checklist_location: Optional[Path] = None


@dataclass(slots=True)
class AdjustmentMatch:
    """A marker occurrence found in text, before it is tied to a file."""

    label: str
    line: int
    column: int


@dataclass(slots=True)
class Adjustment:
    """A located marker occurrence inside an artifact file."""

    id: str
    label: str
    file_path: str
    line: Optional[int] = None
    column: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "label": self.label,
            "file_path": self.file_path,
            "line": self.line,
            "column": self.column,
        }


@dataclass(slots=True)
class Artifact:
    """Runtime state of one expected artifact."""

    id: str
    label: str
    location: Path
    kind: str
    step_id: str
    status: str
    adjustment_count: int = 0
    adjustments: Optional[List[Adjustment]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "label": self.label,
            "location": str(self.location),
            "kind": self.kind,
            "step_id": self.step_id,
            "status": self.status,
            "adjustment_count": self.adjustment_count,
            "adjustments": [item.to_dict() for item in self.adjustments] if self.adjustments else None,
        }

    def validate(self) -> List[str]:
        """Validate the artifact and return any issues."""
        issues = []
        if self.kind not in ARTIFACT_KINDS:
            issues.append(f"Invalid artifact kind: {self.kind}")
        if self.status not in ARTIFACT_STATUSES:
            issues.append(f"Invalid artifact status: {self.status}")
        if self.adjustment_count != len(self.adjustments or []):
            issues.append(f"Adjustment count mismatch for {self.id}")
        return issues

    def is_good(self) -> bool:
        """Check if the artifact is complete or validated."""
        return self.status in (ARTIFACT_COMPLETE, ARTIFACT_VALIDATED)

    def is_present(self) -> bool:
        """Check if the artifact exists in any form."""
        return self.status != ARTIFACT_MISSING


@dataclass(slots=True)
class ChecklistStatus:
    """Checkbox counts for a markdown checklist."""

    total: int
    checked: int


@dataclass(slots=True)
class TaskProgress:
    """Completion progress of the tasks checklist."""

    completed: int
    total: int
    ratio: float
    text: str
    bar: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "completed": self.completed,
            "total": self.total,
            "ratio": self.ratio,
            "text": self.text,
            "bar": self.bar,
        }

    def is_complete(self) -> bool:
        """Check if every task is done."""
        return self.total > 0 and self.completed >= self.total


@dataclass(slots=True)
class BranchContext:
    """Which feature folder the current branch maps to."""

    branch_name: Optional[str] = None
    feature_folder_name: Optional[str] = None
    match_status: str = MATCH_MISSING

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "branch_name": self.branch_name,
            "feature_folder_name": self.feature_folder_name,
            "match_status": self.match_status,
        }

    def validate(self) -> List[str]:
        if self.match_status not in MATCH_STATUSES:
            return [f"Invalid match status: {self.match_status}"]
        return []

    @property
    def is_matched(self) -> bool:
        return self.match_status == MATCH_MATCHED


@dataclass(slots=True)
class SpecFolder:
    """A candidate feature folder discovered under a specs root."""

    name: str
    location: Path
    mtime: float = 0.0


@dataclass(slots=True)
class BranchResolution:
    """Branch context together with the selected feature folder, if any."""

    branch_context: BranchContext
    feature_folder: Optional[SpecFolder] = None


@dataclass(frozen=True, slots=True)
class StepDefinition:
    """Static definition of one workflow step."""

    id: str
    label: str
    order: int
    optional: bool = False


@dataclass(slots=True)
class WorkflowStep:
    """Represents a single evaluated step in the spec-kit workflow."""

    id: str
    label: str
    order: int
    optional: bool
    status: str
    artifact_ids: List[str] = field(default_factory=list)
    progress: Optional[TaskProgress] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "label": self.label,
            "order": self.order,
            "optional": self.optional,
            "status": self.status,
            "artifact_ids": list(self.artifact_ids),
            "progress": self.progress.to_dict() if self.progress else None,
        }

    def validate(self) -> List[str]:
        if self.status not in STEP_STATUSES:
            return [f"Invalid status for step {self.id}: {self.status}"]
        return []


@dataclass(slots=True)
class DerivedWorkflow:
    """Evaluator result tagged with the status source it was derived from."""

    steps: List[WorkflowStep]
    derived_from: str

    @property
    def from_event_log(self) -> bool:
        return self.derived_from == DERIVED_FROM_EVENT_LOG


@dataclass(slots=True)
class Recommendation:
    """The single most urgent unmet step and artifact."""

    step_id: str
    step_label: str
    artifact_id: str
    artifact_label: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "step_id": self.step_id,
            "step_label": self.step_label,
            "artifact_id": self.artifact_id,
            "artifact_label": self.artifact_label,
            "reason": self.reason,
        }


@dataclass(slots=True)
class WorkflowHistoryEvent:
    """One immutable entry in a branch's workflow history log."""

    id: str
    branch_key: str
    type: str
    step_id: str
    label: str
    timestamp: str
    source: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted dictionary representation."""
        return {
            "id": self.id,
            "branchKey": self.branch_key,
            "type": self.type,
            "stepId": self.step_id,
            "label": self.label,
            "timestamp": self.timestamp,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowHistoryEvent":
        """Create from the persisted dictionary representation."""
        return cls(
            id=str(data["id"]),
            branch_key=data["branchKey"],
            type=data["type"],
            step_id=data["stepId"],
            label=data.get("label", ""),
            timestamp=data["timestamp"],
            source=data["source"],
        )

    def validate(self) -> List[str]:
        """Validate the event and return any issues.

        Events loaded from disk may carry any JSON value, so every field
        that is compared or sorted on must be a string.
        """
        issues = []
        for name in ("id", "branch_key", "type", "step_id", "label", "timestamp", "source"):
            if not isinstance(getattr(self, name), str):
                issues.append(f"Event field {name} must be a string")
        if not self.type:
            issues.append("Event type cannot be empty")
        if self.source not in EVENT_SOURCES:
            issues.append(f"Invalid event source: {self.source}")
        return issues


@dataclass(slots=True)
class WorkflowHistoryLog:
    """Append-only event log for one workspace branch."""

    branch_key: str
    events: List[WorkflowHistoryEvent] = field(default_factory=list)
    last_updated: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted dictionary representation."""
        return {
            "branchKey": self.branch_key,
            "events": [event.to_dict() for event in self.events],
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowHistoryLog":
        """Create from the persisted dictionary representation."""
        return cls(
            branch_key=data["branchKey"],
            events=[WorkflowHistoryEvent.from_dict(item) for item in data["events"]],
            last_updated=data.get("lastUpdated") or utc_timestamp(),
        )

    def has_session_events(self) -> bool:
        return any(event.source == SOURCE_SESSION_LOG for event in self.events)


@dataclass(slots=True)
class InitializationState:
    """Whether the workspace has been set up for spec-kit."""

    initialized: bool
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"initialized": self.initialized, "message": self.message}


@dataclass(slots=True)
class ArtifactScan:
    """Artifact-level view of a workspace before workflow derivation."""

    branch_context: BranchContext
    artifacts: List[Artifact] = field(default_factory=list)
    task_progress: Optional[TaskProgress] = None
    initialization_state: Optional[InitializationState] = None


@dataclass(slots=True)
class StatusSnapshot:
    """Coherent status view consumed by presentation layers."""

    branch_context: BranchContext
    artifacts: List[Artifact]
    workflow: List[WorkflowStep]
    status_source: str
    last_updated: str
    task_progress: Optional[TaskProgress] = None
    initialization_state: Optional[InitializationState] = None
    recommendation: Optional[Recommendation] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "branch_context": self.branch_context.to_dict(),
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
            "workflow": [step.to_dict() for step in self.workflow],
            "status_source": self.status_source,
            "last_updated": self.last_updated,
            "task_progress": self.task_progress.to_dict() if self.task_progress else None,
            "initialization_state": (
                self.initialization_state.to_dict() if self.initialization_state else None
            ),
            "recommendation": self.recommendation.to_dict() if self.recommendation else None,
        }

    def validate(self) -> List[str]:
        """Validate the snapshot and everything it carries."""
        issues = self.branch_context.validate()
        for artifact in self.artifacts:
            issues.extend(artifact.validate())
        for step in self.workflow:
            issues.extend(step.validate())
        if self.status_source not in EVENT_SOURCES:
            issues.append(f"Invalid status source: {self.status_source}")
        return issues

    def current_step(self) -> Optional[WorkflowStep]:
        """Return the step marked current, if any."""
        return next((step for step in self.workflow if step.status == STEP_CURRENT), None)


# Workflow step definitions
WORKFLOW_STEPS = (
    StepDefinition(id="constitution", label="Constitution", order=1),
    StepDefinition(id="specify", label="Specify", order=2),
    StepDefinition(id="plan", label="Plan", order=3),
    StepDefinition(id="tasks", label="Tasks", order=4),
    StepDefinition(id="analyze", label="Analyze", order=5),
    StepDefinition(id="implement", label="Implement", order=6),
)

WORKFLOW_STEP_IDS = tuple(step.id for step in WORKFLOW_STEPS)
