"""Status snapshot composition.

Combines branch matching, the artifact scan, workflow evaluation and the
history log into one snapshot. All collaborators arrive through an
explicit StatusContext; nothing here keeps module-level state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .artifacts import scan_artifacts
from .branch import BranchProvider, GitBranchProvider, get_branch_context
from .config import StatusConfig
from .fs import FileAccessor, LocalFileAccessor
from .history import HistoryStore, build_branch_key, create_session_event, generate_event_id
from .models import (
    SOURCE_ARTIFACT_FALLBACK,
    SOURCE_SESSION_LOG,
    ArtifactScan,
    DerivedWorkflow,
    StatusSnapshot,
    WorkflowHistoryEvent,
    WorkflowHistoryLog,
    WorkflowStep,
    utc_timestamp,
)
from .speckit_logging import log_performance, log_snapshot_built
from .workflow import compute_recommendation, derive_from_artifacts, derive_from_events, pick_current_step


logger = logging.getLogger("speckit.snapshot")

ARTIFACT_SCAN_TYPE = "artifact-scan"
ARTIFACT_SCAN_LABEL = "Artifact scan"


@dataclass(slots=True)
class StatusContext:
    """Everything one snapshot computation needs from its environment."""

    workspace_roots: List[Path]
    history: HistoryStore
    branch_provider: Optional[BranchProvider] = None
    accessor: FileAccessor = field(default_factory=LocalFileAccessor)

    @property
    def workspace_root(self) -> Optional[Path]:
        return self.workspace_roots[0] if self.workspace_roots else None

    @classmethod
    def from_config(cls, config: StatusConfig) -> "StatusContext":
        """Build the default local context: disk access, git branches, JSON history."""
        return cls(
            workspace_roots=[config.workspace_root],
            history=HistoryStore(config.storage_root),
            branch_provider=GitBranchProvider(config.workspace_root),
        )


def create_artifact_scan_event(branch_key: str, steps: List[WorkflowStep]) -> WorkflowHistoryEvent:
    """Heartbeat event recording which step the artifacts point at."""
    current = pick_current_step(steps)
    return WorkflowHistoryEvent(
        id=generate_event_id(),
        branch_key=branch_key,
        type=ARTIFACT_SCAN_TYPE,
        step_id=current.id if current else "implement",
        label=ARTIFACT_SCAN_LABEL,
        timestamp=utc_timestamp(),
        source=SOURCE_ARTIFACT_FALLBACK,
    )


async def build_status_snapshot(
    context: StatusContext,
    scan: ArtifactScan,
    workspace_root: Optional[Path] = None,
) -> StatusSnapshot:
    """Reconcile an artifact scan with the branch's history log."""
    now = utc_timestamp()
    branch_context = scan.branch_context
    initialization_state = scan.initialization_state

    if initialization_state is not None and not initialization_state.initialized:
        return StatusSnapshot(
            branch_context=branch_context,
            artifacts=[],
            workflow=[],
            status_source=SOURCE_ARTIFACT_FALLBACK,
            last_updated=now,
            task_progress=None,
            initialization_state=initialization_state,
            recommendation=None,
        )

    baseline = derive_from_artifacts(scan.artifacts, branch_context, scan.task_progress)
    derived: DerivedWorkflow = baseline
    status_source = SOURCE_ARTIFACT_FALLBACK
    last_updated = now

    root = workspace_root or context.workspace_root
    branch_key = build_branch_key(branch_context.branch_name, root)

    if branch_context.is_matched and branch_key:
        history = await context.history.read(branch_key)
        if history is not None and history.events:
            derived = derive_from_events(history.events, branch_context, scan.task_progress)
            if history.has_session_events():
                status_source = SOURCE_SESSION_LOG
            last_updated = history.last_updated

        heartbeat = create_artifact_scan_event(branch_key, baseline.steps)
        updated = await context.history.append(branch_key, [heartbeat])
        if updated is not None:
            last_updated = updated.last_updated

    implement = next((step for step in derived.steps if step.id == "implement"), None)
    progress = implement.progress if implement and implement.progress else scan.task_progress
    recommendation = compute_recommendation(scan.artifacts, progress)

    log_snapshot_built(
        branch_key,
        status_source,
        len(scan.artifacts),
        derived_from=derived.derived_from,
    )

    snapshot = StatusSnapshot(
        branch_context=branch_context,
        artifacts=scan.artifacts,
        workflow=derived.steps,
        status_source=status_source,
        last_updated=last_updated,
        task_progress=scan.task_progress,
        initialization_state=initialization_state,
        recommendation=recommendation,
    )
    issues = snapshot.validate()
    if issues:
        raise ValueError(f"Invalid status snapshot: {issues[0]}")
    return snapshot


@log_performance("get_status_snapshot")
async def get_status_snapshot(context: StatusContext) -> StatusSnapshot:
    """Compute a full status snapshot for the context's primary workspace."""
    resolution = await get_branch_context(context.workspace_roots, context.branch_provider, context.accessor)
    root = context.workspace_root
    if root is None:
        scan = ArtifactScan(branch_context=resolution.branch_context)
    else:
        scan = await scan_artifacts(root, resolution, context.accessor)
    return await build_status_snapshot(context, scan, workspace_root=root)


async def record_workflow_event(
    context: StatusContext,
    step_id: str,
    label: str,
    event_type: str = "manual",
) -> Optional[WorkflowHistoryLog]:
    """Record a session-log event for the current branch's feature.

    Returns None when the branch does not match exactly one feature folder
    or history is unavailable.
    """
    resolution = await get_branch_context(context.workspace_roots, context.branch_provider, context.accessor)
    branch_context = resolution.branch_context
    branch_key = build_branch_key(branch_context.branch_name, context.workspace_root)
    if not branch_context.is_matched or branch_key is None:
        logger.info(f"Not recording '{step_id}' event: branch match is {branch_context.match_status}")
        return None

    event = create_session_event(branch_key, step_id, label, event_type=event_type)
    return await context.history.append(branch_key, [event])
