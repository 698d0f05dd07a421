"""Branch lookup and branch-to-feature-folder matching."""

from __future__ import annotations

import asyncio
import logging
import subprocess
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Protocol, Sequence

from .fs import FileAccessor
from .manifest import SPECS_DIR
from .models import (
    MATCH_AMBIGUOUS,
    MATCH_MATCHED,
    MATCH_MISSING,
    BranchContext,
    BranchResolution,
    SpecFolder,
)


logger = logging.getLogger("speckit.branch")

GIT_TIMEOUT_SECONDS = 10


class BranchSubscription:
    """Handle for a branch-change subscription.

    ``check()`` is called by whatever push source the host has (a file
    watcher on ``.git/HEAD``, an editor event); the callback only fires
    when the branch name actually changed.
    """

    def __init__(self, provider: "BranchProvider", callback: Callable[[], None], initial: Optional[str]):
        self._provider = provider
        self._callback = callback
        self.last_branch = initial
        self.disposed = False

    async def check(self) -> bool:
        """Re-read the branch and notify when it differs from the last seen one."""
        if self.disposed:
            return False
        branch = await self._provider.current_branch_name()
        return self.notify(branch)

    def notify(self, branch: Optional[str]) -> bool:
        if self.disposed or branch == self.last_branch:
            return False
        self.last_branch = branch
        self._callback()
        return True

    def dispose(self) -> None:
        self.disposed = True


class BranchProvider(Protocol):
    """Source of the current branch name."""

    async def current_branch_name(self, target: Optional[Path] = None) -> Optional[str]:
        ...

    async def subscribe_to_branch_change(self, callback: Callable[[], None]) -> Optional[BranchSubscription]:
        ...


class GitBranchProvider:
    """Reads the checked-out branch with the git command line."""

    def __init__(self, repository_root: Path, git_executable: str = "git"):
        self.repository_root = Path(repository_root)
        self.git_executable = git_executable

    async def current_branch_name(self, target: Optional[Path] = None) -> Optional[str]:
        """Return the branch name, or None for detached HEAD or any git failure."""
        cwd = Path(target) if target else self.repository_root
        if cwd.is_file():
            cwd = cwd.parent
        return await asyncio.to_thread(self._read_branch, cwd)

    async def subscribe_to_branch_change(self, callback: Callable[[], None]) -> Optional[BranchSubscription]:
        initial = await self.current_branch_name()
        if initial is None:
            return None
        return BranchSubscription(self, callback, initial)

    def _read_branch(self, cwd: Path) -> Optional[str]:
        try:
            result = subprocess.run(
                [self.git_executable, "rev-parse", "--abbrev-ref", "HEAD"],
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"git branch lookup failed in {cwd}: {e}")
            return None

        if result.returncode != 0:
            logger.debug(f"git branch lookup failed in {cwd}: {result.stderr.strip()}")
            return None

        name = result.stdout.strip()
        if not name or name == "HEAD":
            return None
        return name


class StaticBranchProvider:
    """Branch provider for hosts that already know the branch name."""

    def __init__(self, branch_name: Optional[str] = None):
        self.branch_name = branch_name
        self._subscriptions: List[BranchSubscription] = []

    async def current_branch_name(self, target: Optional[Path] = None) -> Optional[str]:
        return self.branch_name

    async def subscribe_to_branch_change(self, callback: Callable[[], None]) -> Optional[BranchSubscription]:
        subscription = BranchSubscription(self, callback, self.branch_name)
        self._subscriptions.append(subscription)
        return subscription

    def set_branch(self, branch_name: Optional[str]) -> None:
        """Switch branches and notify live subscribers."""
        self.branch_name = branch_name
        self._subscriptions = [item for item in self._subscriptions if not item.disposed]
        for subscription in self._subscriptions:
            subscription.notify(branch_name)


def resolve_branch_context(branch_name: Optional[str], spec_folders: Sequence[SpecFolder]) -> BranchResolution:
    """Match a branch against feature folders by exact name.

    Prefixes never match. Two folders with the branch's name (from
    different workspace roots) make the match ambiguous.
    """
    matches = [folder for folder in spec_folders if folder.name == branch_name] if branch_name else []

    if len(matches) == 1:
        return BranchResolution(
            branch_context=BranchContext(
                branch_name=branch_name,
                feature_folder_name=matches[0].name,
                match_status=MATCH_MATCHED,
            ),
            feature_folder=matches[0],
        )

    status = MATCH_AMBIGUOUS if len(matches) > 1 else MATCH_MISSING
    return BranchResolution(
        branch_context=BranchContext(
            branch_name=branch_name,
            feature_folder_name=None,
            match_status=status,
        ),
        feature_folder=None,
    )


async def discover_spec_folders(workspace_roots: Iterable[Path], accessor: FileAccessor) -> List[SpecFolder]:
    """List feature folders under the specs directory of every workspace root."""
    folders: List[SpecFolder] = []
    for root in workspace_roots:
        specs_root = Path(root) / SPECS_DIR
        entries = await accessor.list_children(specs_root)
        if entries is None:
            continue
        for name, is_directory in entries:
            if not is_directory:
                continue
            location = specs_root / name
            mtime = await accessor.modified_time(location)
            folders.append(SpecFolder(name=name, location=location, mtime=mtime or 0.0))
    return folders


async def get_branch_context(
    workspace_roots: Sequence[Path],
    provider: Optional[BranchProvider],
    accessor: FileAccessor,
) -> BranchResolution:
    """Resolve the branch context for a set of workspace roots."""
    if not workspace_roots or provider is None:
        return BranchResolution(branch_context=BranchContext())

    branch_name = await provider.current_branch_name()
    spec_folders = await discover_spec_folders(workspace_roots, accessor)
    resolution = resolve_branch_context(branch_name, spec_folders)
    logger.debug(
        f"Branch {branch_name!r} resolved as {resolution.branch_context.match_status} "
        f"against {len(spec_folders)} feature folders"
    )
    return resolution
