"""
SQLAlchemy models for sync state owned by Legacy Sync.

Identifier mappings and the sync watermark are the durable state of the
subsystem; run history and the run lock support the operator surface.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class IdentifierMapping(Base):
    """
    Maps a legacy identifier to the internal UUID of its entity.

    The unique constraint on (entity_type, legacy_id) makes first-sight
    resolution safe under concurrent writers: the losing insert fails and
    the caller re-reads the winner's row.
    """

    __tablename__ = "identifier_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(
        String(50), nullable=False, comment="Entity type name (e.g. projects)"
    )
    legacy_id: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="Identifier on the legacy platform"
    )
    internal_id: Mapped[str] = mapped_column(
        String(36), nullable=False, unique=True, comment="Internal UUID"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Set when the entity row was last written; NULL means minted but never written",
    )

    __table_args__ = (
        UniqueConstraint("entity_type", "legacy_id", name="uq_mapping_entity_legacy"),
    )

    def __repr__(self) -> str:
        return (
            f"<IdentifierMapping(entity_type='{self.entity_type}', "
            f"legacy_id='{self.legacy_id}', internal_id='{self.internal_id}')>"
        )


class SyncWatermark(Base):
    """Start time of the last successful run, per tenant scope."""

    __tablename__ = "sync_watermarks"

    tenant_scope: Mapped[str] = mapped_column(String(100), primary_key=True)
    watermark: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    run_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class SyncLock(Base):
    """Presence of a row means a run is in flight for the tenant scope."""

    __tablename__ = "sync_locks"

    tenant_scope: Mapped[str] = mapped_column(String(100), primary_key=True)
    run_id: Mapped[str] = mapped_column(String(36), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class SyncRun(Base):
    """History of sync runs."""

    __tablename__ = "sync_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_scope: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    mode: Mapped[str] = mapped_column(String(20), nullable=False, comment="full or incremental")
    since: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="running", comment="running, completed or failed"
    )
    counts: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[list | None] = mapped_column(JSON, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
