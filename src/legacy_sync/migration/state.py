"""
Sync run state management.

This module provides the SyncState class, which owns the durable
per-tenant state of the sync subsystem: the incremental watermark, the
run-level lock and the run history.
"""

import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, select

from legacy_sync.client.exceptions import (
    ConfigurationError,
    ConstraintViolationError,
    RunInProgressError,
    StateError,
)
from legacy_sync.config import StateConfig
from legacy_sync.migration.database import get_session, init_database
from legacy_sync.migration.models import SyncLock, SyncRun, SyncWatermark
from legacy_sync.utils.logging import get_logger

if TYPE_CHECKING:
    from legacy_sync.reporting.report import SyncReport

logger = get_logger(__name__)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None:
        return None
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


class SyncState:
    """
    Manages durable sync state for one tenant scope.

    The watermark is only read and written by the coordinator. The lock is a
    row in ``sync_locks`` keyed by tenant scope, so a second run for the same
    scope fails on the primary key instead of racing the first.

    Usage:
        state = SyncState(config.state, tenant_scope="default")
        state.acquire_lock(run_id)
        try:
            since = state.get_watermark()
            ...
        finally:
            state.release_lock(run_id)
    """

    def __init__(self, config: StateConfig, tenant_scope: str = "default"):
        """
        Initialize sync state manager.

        Args:
            config: State configuration
            tenant_scope: Scope the watermark and lock apply to

        Raises:
            StateError: If the database cannot be initialized
        """
        self.config = config
        self.tenant_scope = tenant_scope
        self.database_url = config.database_url
        self._lock = threading.RLock()

        if "://" not in config.db_path:
            Path(config.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            init_database(
                self.database_url,
                pool_size=config.db_pool_size,
                max_overflow=config.db_max_overflow,
                pool_timeout=config.db_pool_timeout,
                pool_recycle=config.db_pool_recycle,
            )
        except ConfigurationError as e:
            raise StateError(f"Failed to initialize sync state: {e}") from e

        logger.info(
            "Sync state initialized", tenant_scope=tenant_scope, database_path=config.db_path
        )

    # Watermark

    def get_watermark(self) -> datetime | None:
        """Return the start time of the last successful run, if any."""
        with self._lock, get_session(self.database_url) as session:
            row = session.get(SyncWatermark, self.tenant_scope)
            return as_utc(row.watermark) if row else None

    def set_watermark(self, watermark: datetime, run_id: str | None = None) -> None:
        """
        Store the watermark for the next incremental run.

        Args:
            watermark: Start time of the run that just succeeded
            run_id: Run that produced the watermark
        """
        with self._lock, get_session(self.database_url) as session:
            row = session.get(SyncWatermark, self.tenant_scope)
            if row is None:
                session.add(
                    SyncWatermark(
                        tenant_scope=self.tenant_scope, watermark=watermark, run_id=run_id
                    )
                )
            else:
                row.watermark = watermark
                row.run_id = run_id

        logger.info(
            "Watermark updated",
            tenant_scope=self.tenant_scope,
            watermark=watermark.isoformat(),
            run_id=run_id,
        )

    def clear_watermark(self) -> bool:
        """Remove the watermark so the next incremental run uses the fallback window.

        Returns:
            True if a watermark was removed
        """
        with self._lock, get_session(self.database_url) as session:
            result = session.execute(
                delete(SyncWatermark).where(SyncWatermark.tenant_scope == self.tenant_scope)
            )
            removed = result.rowcount > 0

        logger.warning("Watermark cleared", tenant_scope=self.tenant_scope, removed=removed)
        return removed

    # Run lock

    def acquire_lock(self, run_id: str) -> None:
        """
        Take the run lock for this tenant scope.

        Raises:
            RunInProgressError: If another run holds the lock
        """
        with self._lock:
            try:
                with get_session(self.database_url) as session:
                    session.add(SyncLock(tenant_scope=self.tenant_scope, run_id=run_id))
            except ConstraintViolationError as e:
                holder = self.lock_holder()
                raise RunInProgressError(
                    self.tenant_scope, holder["run_id"] if holder else None
                ) from e

        logger.debug("Run lock acquired", tenant_scope=self.tenant_scope, run_id=run_id)

    def release_lock(self, run_id: str) -> None:
        """Release the run lock if ``run_id`` holds it."""
        with self._lock, get_session(self.database_url) as session:
            session.execute(
                delete(SyncLock).where(
                    SyncLock.tenant_scope == self.tenant_scope, SyncLock.run_id == run_id
                )
            )

        logger.debug("Run lock released", tenant_scope=self.tenant_scope, run_id=run_id)

    def lock_holder(self) -> dict[str, Any] | None:
        """Return ``{"run_id", "acquired_at"}`` of the current lock holder, if any."""
        with self._lock, get_session(self.database_url) as session:
            row = session.get(SyncLock, self.tenant_scope)
            if row is None:
                return None
            return {"run_id": row.run_id, "acquired_at": as_utc(row.acquired_at)}

    def force_unlock(self) -> str | None:
        """
        Remove the run lock regardless of holder.

        Only for recovering from a process that died mid-run. The abandoned
        run is marked failed so the history stays truthful.

        Returns:
            Run ID of the removed holder, or None if the scope was not locked
        """
        holder = self.lock_holder()
        if holder is None:
            return None

        with self._lock, get_session(self.database_url) as session:
            session.execute(delete(SyncLock).where(SyncLock.tenant_scope == self.tenant_scope))
            run = session.get(SyncRun, holder["run_id"])
            if run is not None and run.status == "running":
                run.status = "failed"
                run.completed_at = datetime.now(UTC)
                run.failure_reason = "lock released by operator"

        logger.warning(
            "Run lock force-released", tenant_scope=self.tenant_scope, run_id=holder["run_id"]
        )
        return holder["run_id"]

    # Run history

    def start_run(
        self,
        run_id: str,
        mode: str,
        since: datetime | None,
        started_at: datetime,
    ) -> None:
        """Record a run entering the Running phase."""
        with self._lock, get_session(self.database_url) as session:
            session.add(
                SyncRun(
                    id=run_id,
                    tenant_scope=self.tenant_scope,
                    mode=mode,
                    since=since,
                    started_at=started_at,
                    status="running",
                )
            )

        logger.info(
            "Sync run started",
            run_id=run_id,
            mode=mode,
            since=since.isoformat() if since else None,
        )

    def finish_run(self, run_id: str, report: "SyncReport") -> None:
        """Record a successful run with its report."""
        self._close_run(run_id, "completed", report)
        logger.info(
            "Sync run completed",
            run_id=run_id,
            error_count=report.error_count,
            pipeline_refs_updated=report.pipeline_refs_updated,
        )

    def fail_run(self, run_id: str, reason: str, report: "SyncReport | None" = None) -> None:
        """Record a run that aborted on a systemic error."""
        self._close_run(run_id, "failed", report, failure_reason=reason)
        logger.error("Sync run failed", run_id=run_id, reason=reason)

    def _close_run(
        self,
        run_id: str,
        status: str,
        report: "SyncReport | None",
        failure_reason: str | None = None,
    ) -> None:
        with self._lock, get_session(self.database_url) as session:
            run = session.get(SyncRun, run_id)
            if run is None:
                raise StateError(f"Unknown sync run: {run_id}")
            run.status = status
            run.completed_at = datetime.now(UTC)
            run.failure_reason = failure_reason
            if report is not None:
                run.counts = report.entity_counts()
                run.error_count = report.error_count
                run.errors = list(report.errors)

    def recent_runs(self, limit: int = 10) -> list[dict[str, Any]]:
        """
        Get the most recent runs for this tenant scope, newest first.

        Args:
            limit: Maximum number of runs to return

        Returns:
            List of run dictionaries
        """
        with self._lock, get_session(self.database_url) as session:
            rows = session.scalars(
                select(SyncRun)
                .where(SyncRun.tenant_scope == self.tenant_scope)
                .order_by(SyncRun.started_at.desc())
                .limit(limit)
            ).all()

            return [
                {
                    "run_id": run.id,
                    "mode": run.mode,
                    "status": run.status,
                    "since": as_utc(run.since),
                    "started_at": as_utc(run.started_at),
                    "completed_at": as_utc(run.completed_at),
                    "counts": run.counts or {},
                    "error_count": run.error_count,
                    "failure_reason": run.failure_reason,
                }
                for run in rows
            ]
