"""Unit tests for branch lookup and feature folder matching."""

import subprocess
import pytest
from pathlib import Path
from unittest.mock import patch, MagicMock

from speckit_status.branch import (
    BranchSubscription,
    GitBranchProvider,
    StaticBranchProvider,
    discover_spec_folders,
    get_branch_context,
    resolve_branch_context,
)
from speckit_status.fs import LocalFileAccessor
from speckit_status.models import SpecFolder


class TestResolveBranchContext:
    """Test cases for exact-name branch matching."""

    def test_exact_match(self, tmp_path):
        folder = SpecFolder("001-first", tmp_path / "001-first")
        resolution = resolve_branch_context("001-first", [folder])

        assert resolution.branch_context.match_status == "matched"
        assert resolution.branch_context.feature_folder_name == "001-first"
        assert resolution.feature_folder is folder

    def test_prefix_rejected(self, tmp_path):
        resolution = resolve_branch_context("001-first", [SpecFolder("001-first-extra", tmp_path)])

        assert resolution.branch_context.match_status == "missing"
        assert resolution.feature_folder is None

    def test_duplicate_names_are_ambiguous(self, tmp_path):
        folders = [SpecFolder("001-first", tmp_path / "a"), SpecFolder("001-first", tmp_path / "b")]
        resolution = resolve_branch_context("001-first", folders)

        assert resolution.branch_context.match_status == "ambiguous"
        assert resolution.branch_context.feature_folder_name is None
        assert resolution.feature_folder is None

    def test_no_branch(self, tmp_path):
        resolution = resolve_branch_context(None, [SpecFolder("001-first", tmp_path)])
        assert resolution.branch_context.match_status == "missing"
        assert resolution.branch_context.branch_name is None


class TestDiscoverSpecFolders:
    """Test cases for feature folder discovery."""

    @pytest.mark.asyncio
    async def test_directories_only(self, tmp_path):
        (tmp_path / "specs" / "001-first").mkdir(parents=True)
        (tmp_path / "specs" / "README.md").write_text("x")

        folders = await discover_spec_folders([tmp_path], LocalFileAccessor())

        assert [folder.name for folder in folders] == ["001-first"]
        assert folders[0].mtime > 0

    @pytest.mark.asyncio
    async def test_missing_specs_root(self, tmp_path):
        assert await discover_spec_folders([tmp_path], LocalFileAccessor()) == []


class TestGetBranchContext:
    """Test cases for branch context resolution across workspace roots."""

    @pytest.mark.asyncio
    async def test_no_provider_degrades_to_missing(self, tmp_path):
        resolution = await get_branch_context([tmp_path], None, LocalFileAccessor())

        assert resolution.branch_context.match_status == "missing"
        assert resolution.branch_context.branch_name is None

    @pytest.mark.asyncio
    async def test_ambiguous_across_roots(self, tmp_path):
        roots = [tmp_path / "one", tmp_path / "two"]
        for root in roots:
            (root / "specs" / "001-first").mkdir(parents=True)

        resolution = await get_branch_context(roots, StaticBranchProvider("001-first"), LocalFileAccessor())

        assert resolution.branch_context.match_status == "ambiguous"


class TestGitBranchProvider:
    """Test cases for git-backed branch lookup."""

    @pytest.mark.asyncio
    async def test_reads_branch(self, tmp_path):
        completed = MagicMock(returncode=0, stdout="001-first\n", stderr="")
        with patch("speckit_status.branch.subprocess.run", return_value=completed) as run:
            name = await GitBranchProvider(tmp_path).current_branch_name()

        assert name == "001-first"
        assert run.call_args[0][0] == ["git", "rev-parse", "--abbrev-ref", "HEAD"]

    @pytest.mark.asyncio
    async def test_detached_head(self, tmp_path):
        completed = MagicMock(returncode=0, stdout="HEAD\n", stderr="")
        with patch("speckit_status.branch.subprocess.run", return_value=completed):
            assert await GitBranchProvider(tmp_path).current_branch_name() is None

    @pytest.mark.asyncio
    async def test_git_failure(self, tmp_path):
        with patch("speckit_status.branch.subprocess.run", side_effect=FileNotFoundError("git")):
            assert await GitBranchProvider(tmp_path).current_branch_name() is None

    @pytest.mark.asyncio
    async def test_not_a_repository(self, tmp_path):
        completed = MagicMock(returncode=128, stdout="", stderr="fatal: not a git repository")
        with patch("speckit_status.branch.subprocess.run", return_value=completed):
            assert await GitBranchProvider(tmp_path).subscribe_to_branch_change(lambda: None) is None

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path):
        with patch("speckit_status.branch.subprocess.run", side_effect=subprocess.TimeoutExpired("git", 10)):
            assert await GitBranchProvider(tmp_path).current_branch_name() is None


class TestBranchSubscription:
    """Test cases for branch change notification."""

    @pytest.mark.asyncio
    async def test_static_provider_notifies_on_change(self):
        provider = StaticBranchProvider("main")
        calls = []
        subscription = await provider.subscribe_to_branch_change(lambda: calls.append(1))

        provider.set_branch("main")
        provider.set_branch("001-first")

        assert calls == [1]
        assert subscription.last_branch == "001-first"

    @pytest.mark.asyncio
    async def test_dispose_stops_notifications(self):
        provider = StaticBranchProvider("main")
        calls = []
        subscription = await provider.subscribe_to_branch_change(lambda: calls.append(1))
        subscription.dispose()

        provider.set_branch("001-first")

        assert calls == []

    @pytest.mark.asyncio
    async def test_check_rereads_provider(self):
        provider = StaticBranchProvider("main")
        calls = []
        subscription = BranchSubscription(provider, lambda: calls.append(1), "main")

        provider.branch_name = "001-first"

        assert await subscription.check() is True
        assert await subscription.check() is False
        assert calls == [1]
