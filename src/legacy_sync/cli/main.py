"""
Main CLI entry point for Legacy Sync.

This module provides the command-line interface for syncing a legacy
no-code platform's data into the relational store.
"""

import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from legacy_sync import __version__
from legacy_sync.cli.commands import config as config_commands
from legacy_sync.cli.commands import sync as sync_commands
from legacy_sync.cli.commands import workflow as workflow_commands
from legacy_sync.cli.context import SyncContext
from legacy_sync.utils.logging import configure_logging, get_logger

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="legacy-sync")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (defaults to LEGACY_SYNC_* environment variables)",
    envvar="LEGACY_SYNC_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set console logging level (overrides logging.level)",
    envvar="LEGACY_SYNC_LOG_LEVEL",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Log file path (overrides logging.file)",
    envvar="LEGACY_SYNC_LOG_FILE",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    log_level: str | None,
    log_file: Path | None,
) -> None:
    """Legacy Sync - Sync a legacy no-code platform into a relational store.

    Companies, users, clients, projects, tasks and the rest are pulled
    from the platform's data API in dependency order, assigned stable
    identifiers and upserted, so a sync can be re-run at any time.

    Examples:

        # Validate configuration
        legacy-sync config validate --config config.yaml

        # Incremental sync from the stored watermark
        legacy-sync sync run --config config.yaml

        # Full resync
        legacy-sync sync run --mode full --config config.yaml

        # Show watermark, lock and recent runs
        legacy-sync sync status --config config.yaml
    """
    configure_logging(level=log_level or "WARNING", log_file=str(log_file) if log_file else None)

    ctx.obj = SyncContext(
        config_path=config,
        log_level=log_level.upper() if log_level else None,
        log_file=log_file,
    )

    logger.debug(
        "CLI initialized",
        config=str(config) if config else None,
        log_level=log_level,
    )


# Register command groups
cli.add_command(config_commands.config)
cli.add_command(sync_commands.sync)

# Register standalone commands
cli.add_command(workflow_commands.workflow)


def main() -> int:
    """Main entry point for CLI."""
    try:
        result = cli(standalone_mode=False)
        return result if isinstance(result, int) else 0
    except click.exceptions.Exit as e:
        return e.exit_code
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except Exception as e:
        logger.error("Unexpected error", error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
