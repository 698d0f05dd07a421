"""Artifact resolution and classification for spec-kit workspaces.

Maps the static manifest onto a workspace and a matched feature folder,
then reads each artifact to decide its status and collect the markers
that still need adjusting.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Optional

from .fs import FileAccessor
from .manifest import ARTIFACT_MANIFEST, MEMORY_DIR, SPECIFY_DIR
from .models import (
    ARTIFACT_COMPLETE,
    ARTIFACT_MISSING,
    ARTIFACT_OPEN_QUESTIONS,
    ARTIFACT_VALIDATED,
    Adjustment,
    Artifact,
    ArtifactDescriptor,
    ArtifactScan,
    BranchResolution,
    InitializationState,
    TaskProgress,
)
from .parser import (
    detect_open_questions,
    detect_placeholders,
    extract_adjustments,
    has_non_whitespace_content,
    is_checklist_complete,
    parse_task_progress,
)


logger = logging.getLogger("speckit.artifacts")

NOT_INITIALIZED_MESSAGE = "spec-kit not initialized"

_UNREAD = object()


def _join(base: Path, relative_path: str) -> Path:
    return Path(base).joinpath(*relative_path.split("/"))


def memory_root(workspace_root: Path) -> Path:
    """Get the directory holding workspace-wide memory artifacts."""
    return Path(workspace_root) / SPECIFY_DIR / MEMORY_DIR


def build_expected_artifacts(workspace_root: Path, feature_root: Path) -> List[ArtifactDescriptor]:
    """Resolve every manifest entry for a matched feature folder."""
    memory = memory_root(workspace_root)
    descriptors: List[ArtifactDescriptor] = []
    for entry in ARTIFACT_MANIFEST:
        base = memory if entry.source == "memory" else Path(feature_root)
        checklist = (
            _join(feature_root, entry.checklist_relative_path)
            if entry.checklist_relative_path
            else None
        )
        descriptors.append(
            ArtifactDescriptor(
                id=entry.id,
                label=entry.label,
                location=_join(base, entry.relative_path),
                kind=entry.kind,
                step_id=entry.step_id,
                checklist_location=checklist,
            )
        )
    return descriptors


def build_memory_artifacts(workspace_root: Path) -> List[ArtifactDescriptor]:
    """Resolve only memory-sourced entries, used when no feature folder matches."""
    memory = memory_root(workspace_root)
    return [
        ArtifactDescriptor(
            id=entry.id,
            label=entry.label,
            location=_join(memory, entry.relative_path),
            kind=entry.kind,
            step_id=entry.step_id,
        )
        for entry in ARTIFACT_MANIFEST
        if entry.source == "memory"
    ]


def classify_artifact_status(
    exists: bool,
    kind: str,
    text: Optional[str] = None,
    checklist_complete: bool = False,
) -> str:
    """Classify an artifact from its existence, content and checklist state.

    Open questions outrank a complete checklist. Folders are either
    complete or missing.
    """
    if not exists:
        return ARTIFACT_MISSING

    if kind == "folder":
        return ARTIFACT_COMPLETE

    content = text or ""
    if detect_open_questions(content) or detect_placeholders(content):
        return ARTIFACT_OPEN_QUESTIONS

    if checklist_complete:
        return ARTIFACT_VALIDATED

    return ARTIFACT_COMPLETE


async def is_spec_kit_initialized(workspace_root: Path, accessor: FileAccessor) -> bool:
    """Check for the .specify directory at the workspace root."""
    return await accessor.exists(Path(workspace_root) / SPECIFY_DIR)


async def compute_artifact_status(
    descriptor: ArtifactDescriptor,
    accessor: FileAccessor,
    text=_UNREAD,
) -> str:
    """Compute the status of one artifact, reading it unless text is supplied."""
    if descriptor.kind == "folder":
        exists = await accessor.exists(descriptor.location)
        return classify_artifact_status(exists=exists, kind=descriptor.kind)

    if text is _UNREAD:
        text = await accessor.read_text(descriptor.location)
    if text is None:
        return classify_artifact_status(exists=False, kind=descriptor.kind)

    if descriptor.id == "constitution" and not has_non_whitespace_content(text):
        return classify_artifact_status(exists=False, kind=descriptor.kind)

    checklist_complete = False
    if descriptor.checklist_location is not None:
        checklist_text = await accessor.read_text(descriptor.checklist_location)
        checklist_complete = bool(checklist_text and is_checklist_complete(checklist_text))

    return classify_artifact_status(
        exists=True,
        kind=descriptor.kind,
        text=text,
        checklist_complete=checklist_complete,
    )


def compute_artifact_adjustments(descriptor: ArtifactDescriptor, text: Optional[str]) -> List[Adjustment]:
    """Turn marker matches in the artifact's current text into adjustments."""
    if descriptor.kind == "folder" or not text:
        return []

    return [
        Adjustment(
            id=f"{descriptor.id}-{match.line}-{match.column}-{index}",
            label=match.label,
            file_path=str(descriptor.location),
            line=match.line,
            column=match.column,
        )
        for index, match in enumerate(extract_adjustments(text))
    ]


async def build_artifact(descriptor: ArtifactDescriptor, accessor: FileAccessor) -> tuple[Artifact, Optional[str]]:
    """Read and classify one artifact, returning it with the text that was read."""
    text = await accessor.read_text(descriptor.location) if descriptor.kind == "file" else None
    status = await compute_artifact_status(descriptor, accessor, text=text)
    adjustments = compute_artifact_adjustments(descriptor, text)
    artifact = Artifact(
        id=descriptor.id,
        label=descriptor.label,
        location=descriptor.location,
        kind=descriptor.kind,
        step_id=descriptor.step_id,
        status=status,
        adjustment_count=len(adjustments),
        adjustments=adjustments or None,
    )
    return artifact, text


async def scan_artifacts(
    workspace_root: Path,
    resolution: BranchResolution,
    accessor: FileAccessor,
) -> ArtifactScan:
    """Read every expected artifact for the workspace, one at a time."""
    start = time.perf_counter()
    initialized = await is_spec_kit_initialized(workspace_root, accessor)
    initialization_state = None if initialized else InitializationState(
        initialized=False, message=NOT_INITIALIZED_MESSAGE
    )

    feature_folder = resolution.feature_folder
    if feature_folder is not None and resolution.branch_context.is_matched:
        descriptors = build_expected_artifacts(workspace_root, feature_folder.location)
    else:
        descriptors = build_memory_artifacts(workspace_root)

    artifacts: List[Artifact] = []
    task_progress: Optional[TaskProgress] = None
    for descriptor in descriptors:
        artifact, text = await build_artifact(descriptor, accessor)
        if descriptor.id == "tasks" and text:
            task_progress = parse_task_progress(text)
        artifacts.append(artifact)

    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.debug(f"Artifact scan ({len(artifacts)} artifacts) in {elapsed_ms:.1f}ms")

    return ArtifactScan(
        branch_context=resolution.branch_context,
        artifacts=artifacts,
        task_progress=task_progress,
        initialization_state=initialization_state,
    )
