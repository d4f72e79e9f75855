"""Sync run request and report models."""

from legacy_sync.reporting.report import (
    SyncMode,
    SyncReport,
    SyncRequest,
    generate_json,
    generate_markdown,
    write_report,
)

__all__ = [
    "SyncMode",
    "SyncReport",
    "SyncRequest",
    "generate_json",
    "generate_markdown",
    "write_report",
]
