"""Per-branch append-only workflow history.

Each (workspace root, branch) pair owns one JSON log file. Appends drop
heartbeat duplicates, keep the log sorted by timestamp, and reads never
raise: a file that is unreadable, malformed or belongs to another branch
is treated as no history at all.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from datetime import timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote

from .models import (
    SOURCE_SESSION_LOG,
    WORKFLOW_STEP_IDS,
    WorkflowHistoryEvent,
    WorkflowHistoryLog,
    parse_timestamp,
    utc_timestamp,
)
from .speckit_logging import log_error_with_context, log_history_append


logger = logging.getLogger("speckit.history")

HISTORY_DIRECTORY = "workflow-history"
HISTORY_INDEX_FILE = "index.json"
DUPLICATE_WINDOW = timedelta(seconds=60)


def build_branch_key(branch_name: Optional[str], workspace_root: Optional[Path]) -> Optional[str]:
    """Key a history log by workspace root and branch name."""
    if not branch_name or not workspace_root:
        return None
    return f"{workspace_root}:{branch_name}"


def sanitize_branch_key(branch_key: str) -> str:
    """Make a branch key safe to use as a file name."""
    return quote(branch_key, safe="!~*'()").replace("%", "_")


def generate_event_id() -> str:
    """Generate a unique event ID."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}"


def should_append_event(existing: List[WorkflowHistoryEvent], candidate: WorkflowHistoryEvent) -> bool:
    """Decide whether a candidate is new or a repeat of the last event.

    A repeat has the same type, step and source as the last event and
    arrives no more than the duplicate window after it.
    """
    if not existing:
        return True

    last = existing[-1]
    if (last.type, last.step_id, last.source) != (candidate.type, candidate.step_id, candidate.source):
        return True

    last_time = parse_timestamp(last.timestamp)
    next_time = parse_timestamp(candidate.timestamp)
    if last_time is None or next_time is None:
        return True
    return next_time - last_time > DUPLICATE_WINDOW


def create_session_event(
    branch_key: str,
    step_id: str,
    label: str,
    event_type: str = "manual",
    timestamp: Optional[str] = None,
) -> WorkflowHistoryEvent:
    """Build a session-log event recording a human action on a step."""
    if step_id not in WORKFLOW_STEP_IDS:
        raise ValueError(f"Unknown workflow step: {step_id}")
    event = WorkflowHistoryEvent(
        id=generate_event_id(),
        branch_key=branch_key,
        type=event_type,
        step_id=step_id,
        label=label,
        timestamp=timestamp or utc_timestamp(),
        source=SOURCE_SESSION_LOG,
    )
    issues = event.validate()
    if issues:
        raise ValueError(issues[0])
    return event


class HistoryStore:
    """JSON-file persistence for workflow history logs.

    With no storage root, history is unavailable: reads return None and
    appends are no-ops.
    """

    def __init__(self, storage_root: Optional[Path | str]):
        self.storage_root = Path(storage_root).expanduser() if storage_root else None

    @property
    def available(self) -> bool:
        return self.storage_root is not None

    @property
    def history_dir(self) -> Optional[Path]:
        if self.storage_root is None:
            return None
        return self.storage_root / HISTORY_DIRECTORY

    def history_path(self, branch_key: str) -> Optional[Path]:
        """Get the log file path for a branch key."""
        if self.history_dir is None:
            return None
        return self.history_dir / f"{sanitize_branch_key(branch_key)}.json"

    async def read(self, branch_key: str) -> Optional[WorkflowHistoryLog]:
        """Load a branch's log, or None when there is no usable history."""
        path = self.history_path(branch_key)
        if path is None:
            return None
        return await asyncio.to_thread(self._read, path, branch_key)

    async def append(
        self,
        branch_key: str,
        events: Iterable[WorkflowHistoryEvent],
    ) -> Optional[WorkflowHistoryLog]:
        """Merge events into a branch's log and persist it.

        Returns the updated log, or None when history is unavailable, there
        is nothing to append, or the write failed.
        """
        candidates = list(events)
        if self.storage_root is None or not candidates:
            return None

        existing = await self.read(branch_key) or WorkflowHistoryLog(branch_key=branch_key, events=[])

        next_events = list(existing.events)
        suppressed = 0
        for event in candidates:
            if should_append_event(next_events, event):
                next_events.append(event)
            else:
                suppressed += 1

        next_events.sort(key=lambda item: item.timestamp)
        updated = WorkflowHistoryLog(branch_key=branch_key, events=next_events, last_updated=utc_timestamp())

        try:
            await asyncio.to_thread(self._write, updated)
        except OSError as e:
            log_error_with_context(e, {"operation": "append_history", "branch_key": branch_key})
            return None

        log_history_append(branch_key, appended=len(candidates) - suppressed, suppressed=suppressed)
        return updated

    async def last_updated_index(self) -> Dict[str, str]:
        """Map each known branch key to the time its log last changed."""
        if self.history_dir is None:
            return {}
        return await asyncio.to_thread(self._read_index)

    # ------------------------------------------------------------------
    # Blocking helpers
    # ------------------------------------------------------------------

    def _read(self, path: Path, branch_key: str) -> Optional[WorkflowHistoryLog]:
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable history file {path}: {e}")
            return None

        if not isinstance(data, dict) or data.get("branchKey") != branch_key:
            logger.warning(f"Ignoring history file {path}: branch key mismatch")
            return None
        if not isinstance(data.get("events"), list):
            logger.warning(f"Ignoring history file {path}: events is not a list")
            return None

        try:
            log = WorkflowHistoryLog.from_dict(data)
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring malformed history file {path}: {e}")
            return None

        issues = [issue for event in log.events for issue in event.validate()]
        if not isinstance(log.last_updated, str):
            issues.append("lastUpdated must be a string")
        if issues:
            logger.warning(f"Ignoring malformed history file {path}: {issues[0]}")
            return None
        return log

    def _write(self, log: WorkflowHistoryLog) -> None:
        path = self.history_path(log.branch_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(log.to_dict(), indent=2), encoding="utf-8")

        index = self._read_index()
        index[log.branch_key] = log.last_updated
        (path.parent / HISTORY_INDEX_FILE).write_text(json.dumps(index, indent=2), encoding="utf-8")

    def _read_index(self) -> Dict[str, str]:
        path = self.history_dir / HISTORY_INDEX_FILE
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): str(value) for key, value in data.items()}
