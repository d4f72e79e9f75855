"""Sync run request and report.

``SyncRequest`` mirrors the trigger payload ``{mode, sinceDate?}`` and
``SyncReport`` is the response shape handed back to the trigger, with
camelCase keys. Reports can also be written to disk as JSON or Markdown.
"""

import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from legacy_sync.resources import ENTITY_REGISTRY, get_migration_order
from legacy_sync.utils.logging import get_logger

logger = get_logger(__name__)


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class SyncRequest(BaseModel):
    """Trigger payload for one sync run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    mode: SyncMode = SyncMode.INCREMENTAL
    since_date: datetime | None = Field(
        default=None, description="Explicit lower bound for an incremental run"
    )


class SyncReport(BaseModel):
    """Outcome of a sync run.

    ``error_count`` is the true number of errors; ``errors`` may be capped
    for display.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    sync_mode: SyncMode
    synced_at: datetime
    companies: int = 0
    users: int = 0
    clients: int = 0
    sub_clients: int = 0
    task_types: int = 0
    projects: int = 0
    calendar_events: int = 0
    project_tasks: int = 0
    ops_contacts: int = 0
    pipeline_refs_updated: int = 0
    error_count: int = 0
    errors: list[str] = Field(default_factory=list)

    def entity_counts(self) -> dict[str, int]:
        """Migrated counts keyed by report key, in migration order."""
        dumped = self.model_dump(by_alias=True)
        return {
            ENTITY_REGISTRY[name].report_key: dumped[ENTITY_REGISTRY[name].report_key]
            for name in get_migration_order()
        }

    @property
    def migrated_total(self) -> int:
        return sum(self.entity_counts().values())

    def to_dict(self) -> dict[str, Any]:
        """Serialize with camelCase keys and ISO timestamps."""
        return self.model_dump(mode="json", by_alias=True)


def generate_json(report: SyncReport) -> str:
    return json.dumps(report.to_dict(), indent=2)


def generate_markdown(report: SyncReport, run_id: str | None = None) -> str:
    """Render a report as Markdown for operators."""
    lines = [
        "# Legacy Sync Report",
        "",
    ]
    if run_id:
        lines.append(f"**Run ID:** `{run_id}`  ")
    lines.extend(
        [
            f"**Mode:** {report.sync_mode.value}  ",
            f"**Synced at:** {report.synced_at.strftime('%Y-%m-%d %H:%M:%S UTC')}  ",
            f"**Errors:** {report.error_count}  ",
            "",
            "## Migrated Records",
            "",
            "| Entity | Migrated |",
            "|--------|----------|",
        ]
    )
    for key, count in report.entity_counts().items():
        lines.append(f"| {key} | {count:,} |")
    lines.append(f"| pipelineRefsUpdated | {report.pipeline_refs_updated:,} |")
    lines.append("")

    if report.errors:
        lines.extend(["## Errors", ""])
        lines.extend(f"- {error}" for error in report.errors)
        if report.error_count > len(report.errors):
            lines.append(f"- ... and {report.error_count - len(report.errors)} more")
        lines.append("")

    return "\n".join(lines)


def write_report(
    report: SyncReport,
    output_dir: str | Path,
    formats: tuple[str, ...] = ("json", "markdown"),
    run_id: str | None = None,
) -> list[Path]:
    """
    Write a report to ``output_dir``.

    Args:
        report: Report to write
        output_dir: Directory for the report files (created if missing)
        formats: Any of ``json`` and ``markdown``
        run_id: Optional run id used in file names

    Returns:
        Paths of the written files

    Raises:
        ValueError: If a format is not supported
    """
    renderers = {
        "json": ("json", generate_json),
        "markdown": ("md", lambda r: generate_markdown(r, run_id)),
    }
    unknown = [fmt for fmt in formats if fmt not in renderers]
    if unknown:
        raise ValueError(f"Unsupported report format(s): {', '.join(unknown)}")

    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    stem = f"sync_report_{report.synced_at.strftime('%Y%m%dT%H%M%SZ')}"
    if run_id:
        stem = f"{stem}_{run_id[:8]}"

    written = []
    for fmt in formats:
        suffix, render = renderers[fmt]
        path = directory / f"{stem}.{suffix}"
        path.write_text(render(report))
        written.append(path)
        logger.info("report_saved", format=fmt, path=str(path))

    return written
