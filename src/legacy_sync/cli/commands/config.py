"""
Configuration management commands.

This module provides commands for validating and exporting
sync configuration.
"""

import asyncio
from pathlib import Path

import click
from sqlalchemy.engine import make_url

from legacy_sync.cli.context import SyncContext
from legacy_sync.cli.decorators import handle_errors, pass_context
from legacy_sync.cli.utils import echo_error, echo_info, echo_success, echo_warning, print_table
from legacy_sync.client.legacy_client import LegacyPlatformClient
from legacy_sync.config import SyncSettings, save_config_to_yaml
from legacy_sync.migration.database import is_sqlite, validate_database_connection
from legacy_sync.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="config")
def config() -> None:
    """Configuration management commands.

    Validate and export sync configuration.
    """
    pass


@config.command(name="validate")
@click.option(
    "--check-connectivity",
    is_flag=True,
    help="Test connectivity to the legacy platform and the relational store",
)
@pass_context
@handle_errors
def validate(ctx: SyncContext, check_connectivity: bool) -> None:
    """Validate sync configuration.

    Settings come from the --config file or, without one, from
    LEGACY_SYNC_* environment variables. With --check-connectivity the
    API token is tried against the platform and the database is opened.

    Examples:

        # Basic validation
        legacy-sync config validate --config config.yaml

        # Validate and test connectivity
        legacy-sync config validate --config config.yaml --check-connectivity
    """
    source = ctx.config_path or "environment"
    echo_info(f"Validating configuration: {source}")

    config = ctx.config

    click.echo()
    _display_config_summary(config)

    click.echo()
    echo_info("Validating settings...")
    _validate_settings(config)

    if check_connectivity:
        click.echo()
        echo_info("Testing connectivity...")
        _test_connectivity(config)

    click.echo()
    echo_success("Configuration is valid!")


def _display_config_summary(config: SyncSettings) -> None:
    """Display configuration summary."""
    rows = [
        ["Legacy API URL", config.legacy.url],
        ["Database", make_url(config.state.database_url).render_as_string(hide_password=True)],
        ["Tenant Scope", config.sync.tenant_scope],
        ["Page Size", config.performance.page_size],
        ["Max Concurrent Upserts", config.performance.max_concurrent],
        ["Rate Limit (req/s)", config.performance.rate_limit],
        ["Fallback Window (days)", config.sync.incremental_fallback_days],
        ["Include Soft-Deleted", config.sync.include_soft_deleted],
        ["Report Directory", config.sync.report_dir or "-"],
    ]

    print_table("Configuration Summary", ["Setting", "Value"], rows)


def _validate_settings(config: SyncSettings) -> None:
    """Warn about settings that are valid but likely unintended."""
    if config.performance.retry_backoff_min > config.performance.retry_backoff_max:
        echo_error("retry_backoff_min is greater than retry_backoff_max")
        raise click.ClickException("Invalid retry backoff window")

    if not config.legacy.verify_ssl:
        echo_warning("SSL verification is disabled for the legacy platform")

    if config.performance.rate_limit == 0:
        echo_warning("Rate limiting is disabled; the platform may throttle requests")

    if is_sqlite(config.state.database_url):
        if "://" not in config.state.db_path:
            db_dir = Path(config.state.db_path).parent
            if not db_dir.exists():
                echo_info(f"Database directory is created on first run: {db_dir}")
        if config.performance.max_concurrent > 1:
            echo_info("SQLite store: record upserts run one at a time")

    echo_success("All settings are valid")


def _test_connectivity(config: SyncSettings) -> None:
    """Test connectivity to the legacy platform and the relational store."""

    async def check_platform() -> None:
        async with LegacyPlatformClient.from_config(config) as client:
            await client.verify_access()

    echo_info("Testing legacy platform connection...")
    asyncio.run(check_platform())
    echo_success(f"Legacy platform accessible: {config.legacy.url}")

    echo_info("Testing database connection...")
    if not validate_database_connection(config.state.database_url):
        echo_error("Database connection failed")
        raise click.ClickException("Cannot connect to the configured database")
    echo_success("Database accessible")


@config.command(name="export")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@pass_context
@handle_errors
def export(ctx: SyncContext, output: Path) -> None:
    """Write the effective configuration to a YAML file.

    The API token is replaced with a ${LEGACY_SYNC_TOKEN} reference.

    Examples:

        legacy-sync config export effective.yaml
    """
    save_config_to_yaml(ctx.config, output)
    echo_success(f"Configuration written to {output}")
