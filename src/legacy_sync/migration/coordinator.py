"""Sync coordinator for orchestrating a full or incremental run.

This module provides the coordinator that drives one run through its
phases: plan the change window, migrate every entity type in dependency
order, reconcile pipeline cross-references, then persist the report and
the watermark.
"""

import asyncio
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from enum import Enum

import httpx

from legacy_sync.client.exceptions import SyncRunFailedError
from legacy_sync.client.legacy_client import LegacyPlatformClient
from legacy_sync.config import SyncSettings
from legacy_sync.migration.cross_reference import CrossReferenceUpdater
from legacy_sync.migration.migrators import create_migrator
from legacy_sync.migration.resolver import IdentifierResolver
from legacy_sync.migration.state import SyncState, as_utc
from legacy_sync.reporting.report import SyncMode, SyncReport, SyncRequest
from legacy_sync.resources import get_info, get_migration_order
from legacy_sync.utils.logging import get_logger

logger = get_logger(__name__)


class RunPhase(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    RUNNING = "running"
    RECONCILING = "reconciling"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncCoordinator:
    """Coordinates one sync run at a time for a tenant scope.

    Entity types run strictly one after another: a type's foreign keys can
    only resolve once every type it depends on has finished its pass.
    Per-record errors are collected into the report; anything else that
    escapes a pass fails the run without advancing the watermark.
    """

    def __init__(
        self,
        config: SyncSettings,
        client: LegacyPlatformClient,
        state: SyncState,
        progress_callback: Callable[[str, int, int], None] | None = None,
    ):
        """Initialize sync coordinator.

        Args:
            config: Sync settings
            client: Legacy platform client
            state: Sync state for the tenant scope
            progress_callback: Optional per-record progress callback passed to migrators
        """
        self.config = config
        self.client = client
        self.state = state
        self.progress_callback = progress_callback
        self.resolver = IdentifierResolver(state.database_url)
        self.phase = RunPhase.IDLE
        self.current_entity_type: str | None = None
        self.run_id: str | None = None

        logger.info(
            "sync_coordinator_initialized",
            base_url=config.legacy.url,
            tenant_scope=state.tenant_scope,
        )

    def plan(self, request: SyncRequest, started_at: datetime) -> datetime | None:
        """
        Choose the lower bound on modification time for this run.

        Full runs have none. Incremental runs use the requested date, else
        the stored watermark, else the fallback window before ``started_at``.
        """
        if request.mode is SyncMode.FULL:
            return None
        if request.since_date is not None:
            return as_utc(request.since_date)

        watermark = self.state.get_watermark()
        if watermark is not None:
            return watermark

        fallback = started_at - timedelta(days=self.config.sync.incremental_fallback_days)
        logger.info(
            "watermark_missing_using_fallback",
            fallback_days=self.config.sync.incremental_fallback_days,
            since=fallback.isoformat(),
        )
        return fallback

    async def run(self, request: SyncRequest | None = None) -> SyncReport:
        """
        Execute one sync run.

        Args:
            request: Trigger payload (defaults to an incremental run)

        Returns:
            SyncReport of a completed run (which may still list record errors)

        Raises:
            RunInProgressError: If another run holds the tenant's lock
            SyncRunFailedError: If the run aborted on a systemic error
        """
        request = request or SyncRequest()
        run_id = str(uuid.uuid4())
        started_at = datetime.now(UTC)
        counts: dict[str, int] = {}
        errors: list[str] = []
        pipeline_refs_updated = 0

        self.state.acquire_lock(run_id)
        self.run_id = run_id
        try:
            self.phase = RunPhase.PLANNING
            since = self.plan(request, started_at)
            self.state.start_run(run_id, request.mode.value, since, started_at)
            await self.client.verify_access()

            self.phase = RunPhase.RUNNING
            for entity_type in get_migration_order():
                self.current_entity_type = entity_type
                migrator = create_migrator(
                    entity_type,
                    self.client,
                    self.resolver,
                    self.config.performance,
                    self.config.sync,
                    self.progress_callback,
                )
                result = await migrator.migrate(request.mode.value, since)
                counts[get_info(entity_type).report_key] = result.migrated_count
                errors.extend(result.errors)
            self.current_entity_type = None

            self.phase = RunPhase.RECONCILING
            updater = CrossReferenceUpdater(self.resolver)
            pipeline_refs_updated = await asyncio.to_thread(updater.reconcile)

            report = self._build_report(request.mode, counts, errors, pipeline_refs_updated)
            self.state.finish_run(run_id, report)
            # Run start, not completion: records modified mid-run are picked up next time
            self.state.set_watermark(started_at, run_id)
            self.phase = RunPhase.COMPLETED

            logger.info(
                "sync_run_completed",
                run_id=run_id,
                mode=request.mode.value,
                migrated=report.migrated_total,
                error_count=report.error_count,
                pipeline_refs_updated=pipeline_refs_updated,
            )
            return report

        except Exception as e:
            self.phase = RunPhase.FAILED
            reason = str(e) or type(e).__name__
            report = self._build_report(request.mode, counts, errors, pipeline_refs_updated)
            logger.error(
                "sync_run_failed",
                run_id=run_id,
                entity_type=self.current_entity_type,
                reason=reason,
                error_type=type(e).__name__,
            )
            try:
                self.state.fail_run(run_id, reason, report)
            except Exception as state_error:
                logger.error("sync_run_failure_not_recorded", run_id=run_id, error=str(state_error))
            raise SyncRunFailedError(reason, report) from e

        finally:
            try:
                self.state.release_lock(run_id)
            except Exception as e:
                logger.error("run_lock_release_failed", run_id=run_id, error=str(e))

    def _build_report(
        self,
        mode: SyncMode,
        counts: dict[str, int],
        errors: list[str],
        pipeline_refs_updated: int,
    ) -> SyncReport:
        return SyncReport.model_validate(
            {
                "syncMode": mode,
                "syncedAt": datetime.now(UTC),
                **counts,
                "pipelineRefsUpdated": pipeline_refs_updated,
                "errorCount": len(errors),
                "errors": errors[: self.config.sync.max_reported_errors],
            }
        )


async def run_sync(
    config: SyncSettings,
    request: SyncRequest | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    progress_callback: Callable[[str, int, int], None] | None = None,
) -> SyncReport:
    """
    Open a client and the sync state from settings and execute one run.

    Args:
        config: Sync settings
        request: Trigger payload (defaults to an incremental run)
        transport: Optional httpx transport (used to substitute a mock platform)
        progress_callback: Optional per-record progress callback

    Returns:
        SyncReport of the completed run
    """
    state = SyncState(config.state, tenant_scope=config.sync.tenant_scope)
    async with LegacyPlatformClient.from_config(config, transport=transport) as client:
        coordinator = SyncCoordinator(config, client, state, progress_callback)
        return await coordinator.run(request)
