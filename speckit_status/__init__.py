"""spec-kit status - workflow status engine for spec-driven features."""

# No imports at package level to avoid circular import issues
# Import modules directly where needed

__all__ = [
    "StatusSnapshot",
    "StatusContext",
    "StatusConfig",
    "HistoryStore",
    "get_status_snapshot",
    "record_workflow_event",
]
