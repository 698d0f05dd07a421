"""Static manifest of the artifacts a spec-kit feature is expected to have.

Changing these entries changes the contract seen by every consumer of a
status snapshot.
"""

from __future__ import annotations

from .models import ArtifactExpectation


SPECIFY_DIR = ".specify"
MEMORY_DIR = "memory"
SPECS_DIR = "specs"

ARTIFACT_MANIFEST = (
    ArtifactExpectation(
        id="constitution",
        label="Constitution",
        kind="file",
        step_id="constitution",
        relative_path="constitution.md",
        source="memory",
    ),
    ArtifactExpectation(
        id="spec",
        label="Spec",
        kind="file",
        step_id="specify",
        relative_path="spec.md",
        source="feature-folder",
        checklist_relative_path="checklists/requirements.md",
    ),
    ArtifactExpectation(
        id="plan",
        label="Plan",
        kind="file",
        step_id="plan",
        relative_path="plan.md",
        source="feature-folder",
    ),
    ArtifactExpectation(
        id="tasks",
        label="Tasks",
        kind="file",
        step_id="tasks",
        relative_path="tasks.md",
        source="feature-folder",
    ),
    ArtifactExpectation(
        id="research",
        label="Research",
        kind="file",
        step_id="analyze",
        relative_path="research.md",
        source="feature-folder",
    ),
    ArtifactExpectation(
        id="data-model",
        label="Data Model",
        kind="file",
        step_id="analyze",
        relative_path="data-model.md",
        source="feature-folder",
    ),
    ArtifactExpectation(
        id="quickstart",
        label="Quickstart",
        kind="file",
        step_id="analyze",
        relative_path="quickstart.md",
        source="feature-folder",
    ),
    ArtifactExpectation(
        id="contracts",
        label="Contracts",
        kind="folder",
        step_id="analyze",
        relative_path="contracts",
        source="feature-folder",
    ),
    ArtifactExpectation(
        id="checklist-requirements",
        label="Checklist (Requirements)",
        kind="file",
        step_id="checklist",
        relative_path="checklists/requirements.md",
        source="feature-folder",
    ),
)
