"""
Sync run commands.

This module provides commands for running a sync, inspecting the sync
state of a tenant scope and recovering from interrupted runs.
"""

import asyncio
import json
from pathlib import Path

import click

from legacy_sync.cli.context import SyncContext
from legacy_sync.cli.decorators import confirm_action, handle_errors, pass_context
from legacy_sync.cli.utils import (
    create_progress_bar,
    echo_info,
    echo_success,
    echo_warning,
    format_count,
    format_timestamp,
    print_table,
)
from legacy_sync.migration.coordinator import run_sync
from legacy_sync.migration.resolver import IdentifierResolver
from legacy_sync.normalize import parse_legacy_date
from legacy_sync.reporting.report import SyncMode, SyncReport, SyncRequest, write_report
from legacy_sync.resources import get_info, get_migration_order
from legacy_sync.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="sync")
def sync() -> None:
    """Sync run commands.

    Run full or incremental syncs and manage the watermark and run lock.
    """
    pass


def _parse_since(value: str | None):
    if value is None:
        return None
    try:
        return parse_legacy_date(value)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--since") from e


@sync.command(name="run")
@click.option(
    "--mode",
    type=click.Choice([mode.value for mode in SyncMode]),
    default=SyncMode.INCREMENTAL.value,
    show_default=True,
    help="Full resync or changes since the watermark",
)
@click.option(
    "--since",
    help="ISO-8601 lower bound for an incremental run (overrides the watermark)",
)
@click.option(
    "--report-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for JSON/Markdown reports (defaults to sync.report_dir)",
)
@click.option("--no-report", is_flag=True, help="Do not write report files")
@click.option("--progress/--no-progress", default=True, help="Show live progress")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@pass_context
@handle_errors
def run(
    ctx: SyncContext,
    mode: str,
    since: str | None,
    report_dir: Path | None,
    no_report: bool,
    progress: bool,
    as_json: bool,
) -> None:
    """Run a sync from the legacy platform.

    A run that completes exits 0 even when some records failed; those are
    listed in the report. A run that aborts exits non-zero and leaves the
    watermark where it was.

    Examples:

        # Incremental run from the stored watermark
        legacy-sync sync run --config config.yaml

        # Full resync
        legacy-sync sync run --mode full --config config.yaml

        # Incremental run from an explicit date
        legacy-sync sync run --since 2024-05-01T00:00:00Z --config config.yaml
    """
    since_date = _parse_since(since)
    if since_date is not None and mode == SyncMode.FULL.value:
        raise click.BadParameter("only applies to incremental runs", param_hint="--since")

    config = ctx.config
    request = SyncRequest(mode=SyncMode(mode), since_date=since_date)

    if progress and not as_json:
        with create_progress_bar() as bar:
            tasks: dict[str, int] = {}

            def on_progress(entity_type: str, migrated: int, failed: int) -> None:
                if entity_type not in tasks:
                    tasks[entity_type] = bar.add_task(entity_type, total=None, failed=0)
                bar.update(tasks[entity_type], completed=migrated + failed, failed=failed)

            report = asyncio.run(run_sync(config, request, progress_callback=on_progress))
    else:
        report = asyncio.run(run_sync(config, request))

    output_dir = report_dir or config.sync.report_dir
    written = [] if no_report or not output_dir else write_report(report, output_dir)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    _display_report(report)
    for path in written:
        echo_info(f"Report written: {path}")


def _display_report(report: SyncReport) -> None:
    rows = [[key, format_count(count)] for key, count in report.entity_counts().items()]
    rows.append(["pipelineRefsUpdated", format_count(report.pipeline_refs_updated)])
    print_table(f"Sync Report ({report.sync_mode.value})", ["Entity", "Migrated"], rows)

    if report.error_count:
        echo_warning(
            f"{format_count(report.migrated_total)} migrated, "
            f"{format_count(report.error_count)} errors"
        )
        for error in report.errors:
            click.echo(f"  - {error}")
        hidden = report.error_count - len(report.errors)
        if hidden > 0:
            click.echo(f"  ... and {hidden} more (see log file)")
    else:
        echo_success(f"{format_count(report.migrated_total)} migrated, no errors")


@sync.command(name="status")
@click.option("--runs", default=5, show_default=True, help="Number of recent runs to show")
@pass_context
@handle_errors
def status(ctx: SyncContext, runs: int) -> None:
    """Show the watermark, run lock, identifier mappings and recent runs.

    Examples:

        legacy-sync sync status --config config.yaml
    """
    state = ctx.sync_state

    click.echo(f"Tenant scope: {state.tenant_scope}")
    click.echo(f"Watermark:    {format_timestamp(state.get_watermark())}")
    holder = state.lock_holder()
    if holder:
        echo_warning(
            f"Run {holder['run_id']} in progress since {format_timestamp(holder['acquired_at'])}"
        )
    click.echo()

    resolver = IdentifierResolver(state.database_url)
    mapping_rows = []
    for entity_type in get_migration_order():
        mapping_rows.append(
            [
                get_info(entity_type).report_key,
                format_count(resolver.count(entity_type, confirmed_only=True)),
                format_count(resolver.count(entity_type)),
            ]
        )
    print_table("Identifier Mappings", ["Entity", "Written", "Known"], mapping_rows)

    recent = state.recent_runs(limit=runs)
    if not recent:
        echo_info("No sync runs recorded yet")
        return

    run_rows = [
        [
            run["run_id"][:8],
            run["mode"],
            run["status"],
            format_timestamp(run["started_at"]),
            format_timestamp(run["completed_at"]),
            format_count(sum(run["counts"].values())),
            format_count(run["error_count"]),
        ]
        for run in recent
    ]
    print_table(
        "Recent Runs",
        ["Run", "Mode", "Status", "Started", "Completed", "Migrated", "Errors"],
        run_rows,
    )


@sync.command(name="unlock")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@pass_context
@handle_errors
@confirm_action("Release the run lock? Only do this if no sync process is running.")
def unlock(ctx: SyncContext, yes: bool) -> None:
    """Release the run lock left behind by a run whose process died."""
    run_id = ctx.sync_state.force_unlock()
    if run_id is None:
        echo_info("No run lock held")
    else:
        echo_success(f"Released run lock held by {run_id}")


@sync.command(name="reset-watermark")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@pass_context
@handle_errors
@confirm_action("Clear the watermark? The next incremental run uses the fallback window.")
def reset_watermark(ctx: SyncContext, yes: bool) -> None:
    """Forget the watermark so the next incremental run uses the fallback window."""
    if ctx.sync_state.clear_watermark():
        echo_success("Watermark cleared")
    else:
        echo_info("No watermark stored")
