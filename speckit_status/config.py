"""Environment-driven configuration for the status engine."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .manifest import SPECIFY_DIR


PROJECT_ROOT_ENV = "SPECKIT_PROJECT_ROOT"
STORAGE_ENV = "SPECKIT_STATUS_STORAGE"
LOG_LEVEL_ENV = "SPECKIT_LOG_LEVEL"
LOG_FILE_ENV = "SPECKIT_LOG_FILE"

PROJECT_MARKER_DIRECTORIES = (SPECIFY_DIR,)
DEFAULT_STATE_DIR = "state"
DISABLED_VALUES = {"off", "none", "disabled", "false", "0"}


def _candidate_bases(start: Path) -> List[Path]:
    start = start.resolve()
    return [start, *start.parents]


def locate_workspace_root(start: Optional[Path] = None) -> Optional[Path]:
    """Find the nearest directory holding a spec-kit marker directory."""
    for base in _candidate_bases(start or Path.cwd()):
        for marker in PROJECT_MARKER_DIRECTORIES:
            if (base / marker).is_dir():
                return base
    return None


def resolve_root(root: Optional[str] = None) -> Path:
    """Resolve the workspace root from an argument, the environment, or the cwd."""
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv(PROJECT_ROOT_ENV)
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable {PROJECT_ROOT_ENV} points to '{env_root}', which does not exist."
            )
        return env_path

    return locate_workspace_root() or Path.cwd().resolve()


def _parse_log_level(value: str) -> int:
    level = logging.getLevelName(value.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {value}")
    return level


@dataclass(slots=True)
class StatusConfig:
    """Settings for computing snapshots of one workspace."""

    workspace_root: Path
    storage_root: Optional[Path]
    log_level: int = logging.INFO
    log_file: Optional[Path] = None

    @property
    def history_enabled(self) -> bool:
        return self.storage_root is not None

    @classmethod
    def from_env(cls, root: Optional[str] = None) -> "StatusConfig":
        """Build configuration from arguments and SPECKIT_* environment variables."""
        workspace_root = resolve_root(root)

        storage_value = os.getenv(STORAGE_ENV)
        if storage_value is None or not storage_value.strip():
            storage_root: Optional[Path] = workspace_root / SPECIFY_DIR / DEFAULT_STATE_DIR
        elif storage_value.strip().lower() in DISABLED_VALUES:
            storage_root = None
        else:
            storage_root = Path(storage_value).expanduser().resolve()

        log_file_value = os.getenv(LOG_FILE_ENV)
        return cls(
            workspace_root=workspace_root,
            storage_root=storage_root,
            log_level=_parse_log_level(os.getenv(LOG_LEVEL_ENV, "INFO")),
            log_file=Path(log_file_value).expanduser() if log_file_value else None,
        )
