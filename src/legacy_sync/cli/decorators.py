"""
Decorators for CLI commands.

This module provides decorators for error handling, context passing,
and confirmation prompts.
"""

import functools
from collections.abc import Callable

import click

from legacy_sync.cli.context import SyncContext
from legacy_sync.client.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    RunInProgressError,
    StateError,
    SyncRunFailedError,
)
from legacy_sync.utils.logging import get_logger

logger = get_logger(__name__)

EXIT_ERROR = 1
EXIT_CONFIG = 2
EXIT_AUTH = 3
EXIT_STATE = 5
EXIT_RUN_IN_PROGRESS = 6


def pass_context(f: Callable) -> Callable:
    """
    Decorator to pass SyncContext to command function.

    Usage:
        @click.command()
        @pass_context
        def my_command(ctx: SyncContext):
            print(ctx.config)
    """

    @click.pass_context
    @functools.wraps(f)
    def wrapper(click_ctx: click.Context, *args, **kwargs):
        sync_ctx: SyncContext = click_ctx.obj
        return f(sync_ctx, *args, **kwargs)

    return wrapper


def exit_code_for(error: BaseException) -> int:
    """Map an exception to the CLI exit code.

    A failed run is classified by the systemic error that caused it.
    """
    if isinstance(error, SyncRunFailedError) and error.__cause__ is not None:
        return exit_code_for(error.__cause__)
    if isinstance(error, ConfigurationError):
        return EXIT_CONFIG
    if isinstance(error, (AuthenticationError, AuthorizationError)):
        return EXIT_AUTH
    if isinstance(error, StateError):
        return EXIT_STATE
    if isinstance(error, RunInProgressError):
        return EXIT_RUN_IN_PROGRESS
    return EXIT_ERROR


def handle_errors(f: Callable) -> Callable:
    """
    Decorator to handle common errors in CLI commands.

    Exit codes:
        0: Success (a completed run may still report record errors)
        1: General error
        2: Configuration error
        3: Authentication error
        5: State error
        6: Another run is in progress
    """

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)

        except (click.exceptions.Exit, click.ClickException):
            raise

        except ConfigurationError as e:
            logger.error("Configuration error", error=str(e))
            click.echo(f"Configuration Error: {e}", err=True)
            click.echo(
                "\nPlease check your configuration file and ensure all required fields are set.",
                err=True,
            )
            raise click.exceptions.Exit(EXIT_CONFIG) from e

        except RunInProgressError as e:
            logger.warning("Run in progress", error=str(e))
            click.echo(f"Run In Progress: {e}", err=True)
            click.echo(
                "\nWait for it to finish, or run 'legacy-sync sync unlock' if its process died.",
                err=True,
            )
            raise click.exceptions.Exit(EXIT_RUN_IN_PROGRESS) from e

        except SyncRunFailedError as e:
            logger.error("Sync run failed", reason=e.reason)
            click.echo(f"Sync run failed: {e.reason}", err=True)
            click.echo(
                "\nThe watermark was not advanced; the next run covers this window.", err=True
            )
            raise click.exceptions.Exit(exit_code_for(e)) from e

        except (AuthenticationError, AuthorizationError) as e:
            logger.error("Authentication error", error=str(e))
            click.echo(f"Authentication Error: {e}", err=True)
            click.echo("\nPlease verify the API token in your configuration.", err=True)
            raise click.exceptions.Exit(EXIT_AUTH) from e

        except StateError as e:
            logger.error("State error", error=str(e))
            click.echo(f"State Error: {e}", err=True)
            click.echo(
                "\nThere was an error accessing sync state. "
                "The database may be unavailable or inaccessible.",
                err=True,
            )
            raise click.exceptions.Exit(EXIT_STATE) from e

        except Exception as e:
            logger.error("Unexpected error", error=str(e), exc_info=True)
            click.echo(f"Unexpected Error: {e}", err=True)
            click.echo(
                "\nAn unexpected error occurred. Please check the logs for details.",
                err=True,
            )
            raise click.exceptions.Exit(EXIT_ERROR) from e

    return wrapper


def confirm_action(
    message: str = "Do you want to continue?",
    abort_message: str = "Operation cancelled.",
) -> Callable:
    """
    Decorator to prompt for confirmation before executing a command.

    The prompt is skipped when the command was given ``--yes``.
    """

    def decorator(f: Callable) -> Callable:
        @functools.wraps(f)
        def wrapper(*args, **kwargs):
            ctx = click.get_current_context()
            if ctx.params.get("yes", False):
                return f(*args, **kwargs)

            if not click.confirm(message):
                click.echo(abort_message)
                raise click.exceptions.Exit(0)

            return f(*args, **kwargs)

        return wrapper

    return decorator
