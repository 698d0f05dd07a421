"""MCP server exposing spec-kit workflow status tools."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from .branch import get_branch_context
from .config import StatusConfig
from .history import build_branch_key
from .models import STEP_CURRENT, WORKFLOW_STEPS, StatusSnapshot
from .snapshot import StatusContext, get_status_snapshot, record_workflow_event as _record_workflow_event
from .speckit_logging import log_error_with_context, log_operation
from .workflow import STEP_REQUIREMENTS


logger = logging.getLogger("speckit.server")

mcp = FastMCP("speckit-status")

ROOT_SUGGESTION = "Provide the 'root' argument or set SPECKIT_PROJECT_ROOT"

STATUS_LABELS = {
    "complete": "Complete",
    "current": "Current",
    "upcoming": "Upcoming",
    "incomplete": "Incomplete",
    "validated": "Validated",
    "open-questions": "Open Questions",
    "missing": "Missing",
}


def _context(root: Optional[str]) -> StatusContext:
    return StatusContext.from_config(StatusConfig.from_env(root))


def render_snapshot(snapshot: StatusSnapshot) -> str:
    """Plain-text rendering of a snapshot for resource views."""
    state = snapshot.initialization_state
    if state is not None and not state.initialized:
        return state.message or "spec-kit not initialized"

    branch = snapshot.branch_context
    lines = [f"Branch: {branch.branch_name or '(none)'} ({branch.match_status})", "", "Workflow"]
    for step in snapshot.workflow:
        description = STATUS_LABELS.get(step.status, step.status)
        if step.id == "implement" and step.progress:
            description = f"{description} · {step.progress.text} [{step.progress.bar}]"
        lines.append(f"- {step.label}: {description}")

    lines.extend(["", "Spec Artifacts"])
    if not snapshot.artifacts:
        lines.append("- No artifacts available")
    for artifact in snapshot.artifacts:
        plural = "" if artifact.adjustment_count == 1 else "s"
        lines.append(
            f"- {artifact.label}: {STATUS_LABELS.get(artifact.status, artifact.status)}"
            f" · {artifact.adjustment_count} adjustment{plural}"
        )
        for adjustment in artifact.adjustments or []:
            lines.append(f"    {adjustment.label} (Line {adjustment.line}, Col {adjustment.column})")

    lines.extend(["", "Recommendation"])
    recommendation = snapshot.recommendation
    implement = next((step for step in snapshot.workflow if step.id == "implement"), None)
    if recommendation:
        lines.append(f"- Next: {recommendation.step_label} ({recommendation.artifact_label}: {recommendation.reason})")
    elif implement is not None and implement.progress is not None and implement.progress.is_complete():
        lines.append("- Feature complete")
    else:
        detail = "All steps complete" if snapshot.artifacts else "No artifacts available"
        lines.append(f"- No recommendation ({detail})")
    return "\n".join(lines)


@mcp.tool()
async def get_status(root: Optional[str] = None) -> Dict[str, Any]:
    """Return the full workflow status snapshot for the current branch's feature:
    artifact states with adjustment locations, the ordered workflow steps with the
    current step, task progress and the next recommended action."""

    try:
        with log_operation("get_status", root=root):
            snapshot = await get_status_snapshot(_context(root))
    except Exception as e:
        log_error_with_context(e, {"operation": "get_status", "root": root})
        return {
            "error": f"Failed to compute status: {e}",
            "suggestion": ROOT_SUGGESTION,
        }
    return snapshot.to_dict()


@mcp.tool()
async def get_recommendation(root: Optional[str] = None) -> Dict[str, Any]:
    """Return only the single most urgent next action for the current feature."""

    try:
        snapshot = await get_status_snapshot(_context(root))
    except Exception as e:
        log_error_with_context(e, {"operation": "get_recommendation", "root": root})
        return {"error": f"Failed to compute recommendation: {e}"}

    current = snapshot.current_step()
    recommendation = snapshot.recommendation
    return {
        "recommendation": recommendation.to_dict() if recommendation else None,
        "current_step": current.id if current and current.status == STEP_CURRENT else None,
        "message": (
            f"Next: {recommendation.step_label} - {recommendation.artifact_label} ({recommendation.reason})"
            if recommendation
            else "No recommendation"
        ),
    }


@mcp.tool()
async def record_workflow_event(
    step_id: str,
    label: Optional[str] = None,
    event_type: str = "manual",
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Record that a workflow step was carried out in this session. Recorded
    session events take precedence over artifact inference for the current branch."""

    try:
        context = _context(root)
    except ValueError as e:
        log_error_with_context(e, {"operation": "record_workflow_event", "root": root})
        return {"error": str(e), "suggestion": ROOT_SUGGESTION}

    try:
        with log_operation("record_workflow_event", step_id=step_id, event_type=event_type):
            log = await _record_workflow_event(
                context,
                step_id,
                label or f"{step_id} completed",
                event_type=event_type,
            )
    except ValueError as e:
        return {
            "error": str(e),
            "suggestion": f"Use one of: {', '.join(step.id for step in WORKFLOW_STEPS)}",
        }

    if log is None:
        return {
            "recorded": False,
            "message": "No history recorded: the branch does not match a single feature folder or history is disabled",
        }
    return {"recorded": True, "branch_key": log.branch_key, "event_count": len(log.events), "last_updated": log.last_updated}


@mcp.tool()
async def get_workflow_history(root: Optional[str] = None) -> Dict[str, Any]:
    """Return the recorded workflow history for the current branch."""

    try:
        context = _context(root)
    except ValueError as e:
        log_error_with_context(e, {"operation": "get_workflow_history", "root": root})
        return {"error": str(e), "suggestion": ROOT_SUGGESTION}

    resolution = await get_branch_context(context.workspace_roots, context.branch_provider, context.accessor)
    branch = resolution.branch_context
    branch_key = build_branch_key(branch.branch_name, context.workspace_root)
    if not branch.is_matched or branch_key is None:
        return {"branch_context": branch.to_dict(), "events": [], "message": "No feature matched for the current branch"}
    log = await context.history.read(branch_key)
    return {
        "branch_context": branch.to_dict(),
        "events": [event.to_dict() for event in log.events] if log else [],
        "last_updated": log.last_updated if log else None,
    }


@mcp.tool()
def get_workflow_guide() -> Dict[str, Any]:
    """Get the fixed spec-kit workflow steps and the artifacts each one requires."""
    return {
        "workflow_overview": "spec-kit feature workflow in required order",
        "steps": [
            {
                "step": step.order,
                "id": step.id,
                "label": step.label,
                "requires": (
                    STEP_REQUIREMENTS.get(step.id, [])
                    if step.id not in ("analyze", "implement")
                    else ("every artifact complete or validated" if step.id == "analyze" else "all tasks checked")
                ),
            }
            for step in WORKFLOW_STEPS
        ],
    }


@mcp.resource("speckit-status://snapshot")
async def resource_snapshot() -> str:
    """Resource view rendering the status snapshot as text."""

    try:
        snapshot = await get_status_snapshot(_context(None))
    except ValueError as e:
        return f"No project root detected: {e}"
    return render_snapshot(snapshot)


def run() -> None:
    """Configure logging and serve over stdio."""
    from .speckit_logging import setup_logging

    config = StatusConfig.from_env()
    setup_logging(config.log_level, config.log_file)
    logger.info(f"Serving spec-kit status for {config.workspace_root}")
    mcp.run(transport="stdio")
