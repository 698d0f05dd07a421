"""Workflow step evaluation for spec-kit features.

This module derives the ordered step list (one current step, earlier
unmet steps flagged incomplete) from either artifact statuses or recorded
history events, and picks the single most urgent next action.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from .models import (
    DERIVED_FROM_ARTIFACT_SCAN,
    DERIVED_FROM_EVENT_LOG,
    SOURCE_SESSION_LOG,
    STEP_COMPLETE,
    STEP_CURRENT,
    STEP_INCOMPLETE,
    STEP_UPCOMING,
    WORKFLOW_STEPS,
    Artifact,
    BranchContext,
    DerivedWorkflow,
    Recommendation,
    StepDefinition,
    TaskProgress,
    WorkflowHistoryEvent,
    WorkflowStep,
)


STEP_REQUIREMENTS: Dict[str, List[str]] = {
    "constitution": ["constitution"],
    "specify": ["spec", "checklist-requirements"],
    "plan": ["plan", "research", "data-model", "contracts"],
    "tasks": ["tasks"],
}

REASON_MISSING = "Required artifact missing"
REASON_NEEDS_ATTENTION = "Artifact needs attention"
REASON_TASKS_INCOMPLETE = "Tasks incomplete"


@dataclass(slots=True)
class _StepEvaluation:
    definition: StepDefinition
    artifact_ids: List[str]
    is_complete: bool


def _unmatched_steps() -> List[WorkflowStep]:
    return [
        WorkflowStep(
            id=step.id,
            label=step.label,
            order=step.order,
            optional=step.optional,
            status=STEP_INCOMPLETE,
            artifact_ids=[],
        )
        for step in WORKFLOW_STEPS
    ]


def _is_unmatched(branch_context: Optional[BranchContext]) -> bool:
    return branch_context is not None and not branch_context.is_matched


def _evaluate_steps(artifacts: Sequence[Artifact], task_progress: Optional[TaskProgress]) -> List[_StepEvaluation]:
    artifacts_by_id = {artifact.id: artifact for artifact in artifacts}
    evaluations: List[_StepEvaluation] = []

    for step in WORKFLOW_STEPS:
        if step.id == "implement":
            evaluations.append(
                _StepEvaluation(
                    definition=step,
                    artifact_ids=["tasks"],
                    is_complete=task_progress is not None and task_progress.is_complete(),
                )
            )
            continue

        if step.id == "analyze":
            required_ids = [artifact.id for artifact in artifacts]
        else:
            required_ids = list(STEP_REQUIREMENTS.get(step.id, []))

        required = [artifacts_by_id[item] for item in required_ids if item in artifacts_by_id]
        if step.id == "analyze":
            satisfied = all(artifact.is_good() for artifact in required)
        else:
            satisfied = all(artifact.is_present() for artifact in required)

        evaluations.append(
            _StepEvaluation(
                definition=step,
                artifact_ids=required_ids,
                is_complete=bool(required_ids) and len(required) == len(required_ids) and satisfied,
            )
        )

    return evaluations


def _assign_statuses(evaluations: Sequence[_StepEvaluation]) -> List[str]:
    """First incomplete step is current; the last step stands in when all are done."""
    current_index = next(
        (index for index, item in enumerate(evaluations) if not item.is_complete),
        len(evaluations) - 1,
    )
    statuses = []
    for index, item in enumerate(evaluations):
        if index < current_index:
            statuses.append(STEP_COMPLETE if item.is_complete else STEP_INCOMPLETE)
        elif index == current_index:
            statuses.append(STEP_CURRENT)
        else:
            statuses.append(STEP_UPCOMING)
    return statuses


def compute_workflow_steps(
    artifacts: Sequence[Artifact],
    branch_context: Optional[BranchContext] = None,
    task_progress: Optional[TaskProgress] = None,
) -> List[WorkflowStep]:
    """Derive the step list from artifact statuses."""
    if _is_unmatched(branch_context):
        return _unmatched_steps()

    evaluations = _evaluate_steps(artifacts, task_progress)
    return [
        WorkflowStep(
            id=item.definition.id,
            label=item.definition.label,
            order=item.definition.order,
            optional=item.definition.optional,
            status=status,
            artifact_ids=list(item.artifact_ids),
            progress=task_progress if item.definition.id == "implement" else None,
        )
        for item, status in zip(evaluations, _assign_statuses(evaluations))
    ]


def compute_workflow_steps_from_events(
    events: Iterable[WorkflowHistoryEvent],
    branch_context: Optional[BranchContext] = None,
) -> List[WorkflowStep]:
    """Derive the step list from recorded session events.

    A step counts as done when any session-log event names it, whatever
    its artifacts currently say.
    """
    if _is_unmatched(branch_context):
        return _unmatched_steps()

    completed_step_ids = {event.step_id for event in events if event.source == SOURCE_SESSION_LOG}
    evaluations = [
        _StepEvaluation(
            definition=step,
            artifact_ids=list(STEP_REQUIREMENTS.get(step.id, [])),
            is_complete=step.id in completed_step_ids,
        )
        for step in WORKFLOW_STEPS
    ]
    return [
        WorkflowStep(
            id=item.definition.id,
            label=item.definition.label,
            order=item.definition.order,
            optional=item.definition.optional,
            status=status,
            artifact_ids=item.artifact_ids,
        )
        for item, status in zip(evaluations, _assign_statuses(evaluations))
    ]


def derive_from_artifacts(
    artifacts: Sequence[Artifact],
    branch_context: Optional[BranchContext] = None,
    task_progress: Optional[TaskProgress] = None,
) -> DerivedWorkflow:
    return DerivedWorkflow(
        steps=compute_workflow_steps(artifacts, branch_context, task_progress),
        derived_from=DERIVED_FROM_ARTIFACT_SCAN,
    )


def derive_from_events(
    events: Sequence[WorkflowHistoryEvent],
    branch_context: Optional[BranchContext] = None,
    task_progress: Optional[TaskProgress] = None,
) -> DerivedWorkflow:
    """Derive from events and re-attach task progress to the implement step."""
    steps = compute_workflow_steps_from_events(events, branch_context)
    if task_progress is not None:
        for step in steps:
            if step.id == "implement":
                step.progress = task_progress
    return DerivedWorkflow(steps=steps, derived_from=DERIVED_FROM_EVENT_LOG)


def pick_current_step(steps: Sequence[WorkflowStep]) -> Optional[WorkflowStep]:
    """Return the current step, the last step when none is current, or None."""
    for step in steps:
        if step.status == STEP_CURRENT:
            return step
    return steps[-1] if steps else None


def compute_recommendation(
    artifacts: Sequence[Artifact],
    task_progress: Optional[TaskProgress] = None,
) -> Optional[Recommendation]:
    """Recommend the first unmet step, walking steps in order.

    Analyze points at the first artifact that is not complete or
    validated. Implement points at the tasks artifact while tasks remain,
    and ends the walk with no recommendation once they are all done.
    """
    if not artifacts:
        return None

    artifacts_by_id = {artifact.id: artifact for artifact in artifacts}

    for step in WORKFLOW_STEPS:
        if step.id == "analyze":
            target = next((artifact for artifact in artifacts if not artifact.is_good()), None)
            if target is not None:
                return Recommendation(
                    step_id=step.id,
                    step_label=step.label,
                    artifact_id=target.id,
                    artifact_label=target.label,
                    reason=REASON_MISSING if not target.is_present() else REASON_NEEDS_ATTENTION,
                )
            continue

        if step.id == "implement":
            if task_progress is not None and task_progress.total > 0:
                if task_progress.completed >= task_progress.total:
                    return None
                tasks_artifact = artifacts_by_id.get("tasks")
                return Recommendation(
                    step_id=step.id,
                    step_label=step.label,
                    artifact_id="tasks",
                    artifact_label=tasks_artifact.label if tasks_artifact else "Tasks",
                    reason=REASON_TASKS_INCOMPLETE,
                )
            continue

        for artifact_id in STEP_REQUIREMENTS.get(step.id, []):
            artifact = artifacts_by_id.get(artifact_id)
            if artifact is None or not artifact.is_present():
                return Recommendation(
                    step_id=step.id,
                    step_label=step.label,
                    artifact_id=artifact_id,
                    artifact_label=artifact.label if artifact else artifact_id,
                    reason=REASON_MISSING,
                )

    return None
