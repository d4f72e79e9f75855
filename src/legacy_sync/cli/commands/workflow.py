"""
Backend workflow command.

This module provides a command for invoking a named backend workflow on
the legacy platform, used by operators to trigger platform-side jobs.
"""

import asyncio
import json
from typing import Any

import click

from legacy_sync.cli.context import SyncContext
from legacy_sync.cli.decorators import handle_errors, pass_context
from legacy_sync.client.legacy_client import LegacyPlatformClient
from legacy_sync.config import SyncSettings
from legacy_sync.utils.logging import get_logger

logger = get_logger(__name__)


async def invoke(config: SyncSettings, name: str, payload: dict[str, Any]) -> dict[str, Any]:
    async with LegacyPlatformClient.from_config(config) as client:
        return await client.invoke_workflow(name, payload)


@click.command(name="workflow")
@click.argument("name")
@click.option("--data", default="{}", show_default=True, help="JSON object sent as the payload")
@pass_context
@handle_errors
def workflow(ctx: SyncContext, name: str, data: str) -> None:
    """Invoke a backend workflow and print its response as JSON.

    Examples:

        legacy-sync workflow recalculate_totals --data '{"project": "1700000000000x1"}'
    """
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"invalid JSON: {e}", param_hint="--data") from e
    if not isinstance(payload, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--data")

    response = asyncio.run(invoke(ctx.config, name, payload))
    click.echo(json.dumps(response, indent=2, default=str))
