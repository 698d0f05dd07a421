"""
Integration tests for a feature moving through the spec-kit workflow.

These tests build a real workspace on disk, compute snapshots as artifacts
are written, and check history persistence between computations.
"""

import json
import shutil
import subprocess
import pytest
from pathlib import Path

from speckit_status.branch import GitBranchProvider, StaticBranchProvider
from speckit_status.config import StatusConfig
from speckit_status.history import HistoryStore, sanitize_branch_key
from speckit_status.snapshot import StatusContext, get_status_snapshot, record_workflow_event


FEATURE = "001-user-auth"


class TestStatusLifecycle:
    """End-to-end snapshots over a workspace that fills in over time."""

    @pytest.fixture
    def workspace(self, tmp_path):
        root = tmp_path / "project"
        (root / ".specify" / "memory").mkdir(parents=True)
        (root / "specs" / FEATURE).mkdir(parents=True)
        (root / "specs" / "002-billing").mkdir(parents=True)
        return root

    @pytest.fixture
    def context(self, workspace):
        return StatusContext(
            workspace_roots=[workspace],
            history=HistoryStore(workspace / ".specify" / "state"),
            branch_provider=StaticBranchProvider(FEATURE),
        )

    @staticmethod
    def feature(workspace: Path) -> Path:
        return workspace / "specs" / FEATURE

    @staticmethod
    def steps(snapshot):
        return {step.id: step.status for step in snapshot.workflow}

    @pytest.mark.asyncio
    async def test_uninitialized_workspace(self, tmp_path):
        context = StatusContext(
            workspace_roots=[tmp_path],
            history=HistoryStore(tmp_path / "state"),
            branch_provider=StaticBranchProvider(FEATURE),
        )

        snapshot = await get_status_snapshot(context)

        assert snapshot.initialization_state.initialized is False
        assert snapshot.workflow == []
        assert snapshot.recommendation is None
        assert not (tmp_path / "state").exists()

    @pytest.mark.asyncio
    async def test_workflow_progression(self, workspace):
        """Walk a feature from an empty folder to finished tasks using artifacts alone."""
        feature = self.feature(workspace)
        context = StatusContext(
            workspace_roots=[workspace],
            history=HistoryStore(None),
            branch_provider=StaticBranchProvider(FEATURE),
        )

        snapshot = await get_status_snapshot(context)
        assert snapshot.current_step().id == "constitution"
        assert snapshot.recommendation.artifact_id == "constitution"

        (workspace / ".specify" / "memory" / "constitution.md").write_text("   \n")
        snapshot = await get_status_snapshot(context)
        assert snapshot.recommendation.artifact_id == "constitution"

        (workspace / ".specify" / "memory" / "constitution.md").write_text("# Principles\n- Test first\n")
        (feature / "spec.md").write_text("# Feature: [FEATURE NAME]\n\nLogin via [NEEDS CLARIFICATION: SSO?]\n")
        (feature / "checklists").mkdir()
        (feature / "checklists" / "requirements.md").write_text("- [x] Testable\n- [x] Scoped\n")
        snapshot = await get_status_snapshot(context)
        artifacts = {artifact.id: artifact for artifact in snapshot.artifacts}
        assert artifacts["spec"].status == "open-questions"
        assert [item.label for item in artifacts["spec"].adjustments] == [
            "[FEATURE NAME]",
            "NEEDS CLARIFICATION",
        ]
        assert self.steps(snapshot)["specify"] == "complete"
        assert snapshot.current_step().id == "plan"

        (feature / "spec.md").write_text("# Feature: User auth\n\nNo [NEEDS CLARIFICATION] markers remain\n")
        for name in ("plan.md", "research.md", "data-model.md", "quickstart.md"):
            (feature / name).write_text("# Done\n")
        (feature / "contracts").mkdir()
        (feature / "tasks.md").write_text("- [x] T001 Setup\n- [ ] T002 Login\n- [ ] T003 Logout\n- [ ] T004 Reset\n")
        snapshot = await get_status_snapshot(context)
        artifacts = {artifact.id: artifact for artifact in snapshot.artifacts}
        assert artifacts["spec"].status == "validated"
        assert artifacts["spec"].adjustment_count == 0
        assert snapshot.current_step().id == "implement"
        implement = snapshot.workflow[-1]
        assert implement.progress.text == "Tasks 1/4"
        assert implement.progress.bar == "###-------"
        assert snapshot.recommendation.reason == "Tasks incomplete"

        (feature / "tasks.md").write_text("- [x] T001\n- [x] T002\n- [x] T003\n- [x] T004\n")
        snapshot = await get_status_snapshot(context)
        assert snapshot.recommendation is None
        assert [step.status for step in snapshot.workflow] == ["complete"] * 5 + ["current"]

    @pytest.mark.asyncio
    async def test_history_persisted_per_branch(self, workspace, context):
        await record_workflow_event(context, "constitution", "Constitution ratified")
        await get_status_snapshot(context)

        history_dir = workspace / ".specify" / "state" / "workflow-history"
        branch_key = f"{workspace}:{FEATURE}"
        data = json.loads((history_dir / f"{sanitize_branch_key(branch_key)}.json").read_text(encoding="utf-8"))
        assert data["branchKey"] == branch_key
        assert [event["source"] for event in data["events"]] == ["session-log", "artifact-fallback"]

        index = json.loads((history_dir / "index.json").read_text(encoding="utf-8"))
        assert index[branch_key] == data["lastUpdated"]

        context.branch_provider = StaticBranchProvider("002-billing")
        snapshot = await get_status_snapshot(context)
        assert snapshot.status_source == "artifact-fallback"
        assert snapshot.current_step().id == "constitution"

    @pytest.mark.asyncio
    async def test_heartbeats_alone_drive_event_workflow(self, workspace, context):
        """Once a log exists the workflow follows recorded session steps, not artifacts."""
        (workspace / ".specify" / "memory" / "constitution.md").write_text("# Principles\n")
        first = await get_status_snapshot(context)
        assert first.current_step().id == "specify"

        second = await get_status_snapshot(context)

        assert second.status_source == "artifact-fallback"
        assert second.current_step().id == "constitution"
        assert second.recommendation.artifact_id == "spec"

    @pytest.mark.asyncio
    async def test_session_log_marks_source(self, workspace, context):
        await record_workflow_event(context, "constitution", "Constitution ratified")

        snapshot = await get_status_snapshot(context)

        assert snapshot.status_source == "session-log"
        assert snapshot.current_step().id == "specify"

    @pytest.mark.asyncio
    async def test_config_driven_context(self, workspace, monkeypatch):
        monkeypatch.setenv("SPECKIT_STATUS_STORAGE", "off")
        context = StatusContext.from_config(StatusConfig.from_env(str(workspace)))
        context.branch_provider = StaticBranchProvider(FEATURE)

        snapshot = await get_status_snapshot(context)

        assert snapshot.branch_context.match_status == "matched"
        assert not (workspace / ".specify" / "state").exists()


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
class TestGitBranchIntegration:
    """Branch lookup against a real repository."""

    @pytest.mark.asyncio
    async def test_checked_out_branch_matches_feature(self, tmp_path):
        (tmp_path / ".specify" / "memory").mkdir(parents=True)
        (tmp_path / "specs" / FEATURE).mkdir(parents=True)

        def git(*args):
            subprocess.run(
                ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
                cwd=tmp_path,
                check=True,
                capture_output=True,
            )

        git("init")
        git("checkout", "-b", FEATURE)
        git("commit", "--allow-empty", "-m", "init")

        context = StatusContext(
            workspace_roots=[tmp_path],
            history=HistoryStore(None),
            branch_provider=GitBranchProvider(tmp_path),
        )
        snapshot = await get_status_snapshot(context)

        assert snapshot.branch_context.branch_name == FEATURE
        assert snapshot.branch_context.match_status == "matched"
