"""Text analysis for spec-kit markdown artifacts.

Detects open-question markers, template placeholders and checklist
completion, and locates every marker occurrence for navigation.
"""

from __future__ import annotations

import math
import re
from typing import List, Optional

from .models import AdjustmentMatch, ChecklistStatus, TaskProgress


ADJUSTMENT_MARKERS = (
    ("NEEDS CLARIFICATION", re.compile(r"\bNEEDS CLARIFICATION\b", re.IGNORECASE | re.ASCII)),
    ("TODO", re.compile(r"\bTODO\b", re.IGNORECASE | re.ASCII)),
    ("TBD", re.compile(r"\bTBD\b", re.IGNORECASE | re.ASCII)),
    ("TKTK", re.compile(r"\bTKTK\b", re.IGNORECASE | re.ASCII)),
)

PLACEHOLDER_TOKENS = (
    "[FEATURE NAME]",
    "[DATE]",
    "[###-feature-name]",
)

NEEDS_CLARIFICATION_LABEL = "NEEDS CLARIFICATION"
NEEDS_CLARIFICATION_LINE = re.compile(r"\[NEEDS CLARIFICATION:", re.IGNORECASE)
NEEDS_CLARIFICATION_EXCLUSION = re.compile(r"No \[NEEDS CLARIFICATION\] markers remain", re.IGNORECASE)

_CHECKLIST_PATTERN = re.compile(r"- \[( |x|X)\]")
_LINE_SPLIT = re.compile(r"\r?\n")

PROGRESS_BAR_WIDTH = 10


def _split_lines(text: str) -> List[str]:
    return _LINE_SPLIT.split(text)


def has_non_whitespace_content(text: Optional[str]) -> bool:
    """Check whether text holds anything other than whitespace."""
    return bool(text and text.strip())


def detect_open_questions(text: str) -> bool:
    """Check whether any line carries an open-question marker.

    A line announcing that no clarification markers remain is skipped
    entirely, so the completion notice is not read as an open item.
    """
    for line in _split_lines(text):
        if NEEDS_CLARIFICATION_EXCLUSION.search(line):
            continue
        for _, pattern in ADJUSTMENT_MARKERS:
            if pattern.search(line):
                return True
    return False


def detect_placeholders(text: str) -> bool:
    """Check for unfilled template tokens or inline clarification requests."""
    if any(token in text for token in PLACEHOLDER_TOKENS):
        return True
    return NEEDS_CLARIFICATION_LINE.search(text) is not None


def extract_adjustments(text: str) -> List[AdjustmentMatch]:
    """Locate every marker and placeholder occurrence with 1-based positions.

    Within a line, marker hits come first (in marker order), then
    placeholder hits (in token order). Results are not merged by column.
    """
    adjustments: List[AdjustmentMatch] = []

    for index, line in enumerate(_split_lines(text)):
        line_number = index + 1

        for label, pattern in ADJUSTMENT_MARKERS:
            if label == NEEDS_CLARIFICATION_LABEL and NEEDS_CLARIFICATION_EXCLUSION.search(line):
                continue
            for match in pattern.finditer(line):
                adjustments.append(AdjustmentMatch(label=label, line=line_number, column=match.start() + 1))

        for token in PLACEHOLDER_TOKENS:
            found = line.find(token)
            while found != -1:
                adjustments.append(AdjustmentMatch(label=token, line=line_number, column=found + 1))
                found = line.find(token, found + len(token))

    return adjustments


def parse_checklist(text: str) -> ChecklistStatus:
    """Count checklist boxes and how many of them are ticked."""
    total = 0
    checked = 0
    for match in _CHECKLIST_PATTERN.finditer(text):
        total += 1
        if match.group(1).lower() == "x":
            checked += 1
    return ChecklistStatus(total=total, checked=checked)


def is_checklist_complete(text: str) -> bool:
    """An empty checklist is never complete."""
    status = parse_checklist(text)
    return status.total > 0 and status.checked == status.total


def render_progress_bar(ratio: float, width: int = PROGRESS_BAR_WIDTH) -> str:
    # half-up rounding, so 0.25 of 10 slots fills 3
    filled = min(width, max(0, math.floor(ratio * width + 0.5)))
    return "#" * filled + "-" * (width - filled)


def parse_task_progress(text: str) -> TaskProgress:
    """Summarize a tasks checklist as progress counts, text and bar."""
    status = parse_checklist(text)
    ratio = 0.0 if status.total == 0 else status.checked / status.total
    return TaskProgress(
        completed=status.checked,
        total=status.total,
        ratio=ratio,
        text=f"Tasks {status.checked}/{status.total}",
        bar=render_progress_bar(ratio),
    )
