"""
Identifier resolution between legacy ids and internal UUIDs.

The unique constraint on ``(entity_type, legacy_id)`` is the only
coordination between concurrent callers: when two workers see the same
legacy id for the first time, one insert wins and the other re-reads it.
"""

import uuid
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from legacy_sync.client.exceptions import ConstraintViolationError, StateError
from legacy_sync.migration.database import get_session
from legacy_sync.migration.models import IdentifierMapping
from legacy_sync.normalize import is_uuid_shaped
from legacy_sync.utils.logging import get_logger

logger = get_logger(__name__)


class IdentifierResolver:
    """Maps legacy identifiers to stable internal UUIDs.

    A mapping is minted on first sight and never changes afterwards. It is
    *confirmed* once the entity row it identifies has been written
    (``last_synced_at`` set in the upsert transaction); references to other
    entities only resolve through confirmed mappings.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url

    def _find(
        self, session: Session, entity_type: str, legacy_id: str, confirmed_only: bool = False
    ) -> str | None:
        stmt = select(IdentifierMapping.internal_id).where(
            IdentifierMapping.entity_type == entity_type,
            IdentifierMapping.legacy_id == legacy_id,
        )
        if confirmed_only:
            stmt = stmt.where(IdentifierMapping.last_synced_at.is_not(None))
        return session.execute(stmt).scalar_one_or_none()

    def resolve(self, entity_type: str, legacy_id: str) -> str:
        """Return the internal UUID for a legacy id, minting one on first sight.

        Args:
            entity_type: Entity type name (e.g. ``projects``)
            legacy_id: Legacy identifier

        Returns:
            Internal UUID string

        Raises:
            StateError: If storage is unavailable
        """
        with get_session(self.database_url) as session:
            existing = self._find(session, entity_type, legacy_id)
        if existing:
            return existing

        internal_id = str(uuid.uuid4())
        try:
            with get_session(self.database_url) as session:
                session.add(
                    IdentifierMapping(
                        entity_type=entity_type, legacy_id=legacy_id, internal_id=internal_id
                    )
                )
        except ConstraintViolationError:
            # Another writer inserted the same pair first; its id wins
            with get_session(self.database_url) as session:
                winner = self._find(session, entity_type, legacy_id)
            if winner is None:
                raise StateError(
                    f"Identifier mapping for {entity_type}/{legacy_id} vanished after conflict"
                ) from None
            logger.debug(
                "identifier_conflict_resolved", entity_type=entity_type, legacy_id=legacy_id
            )
            return winner

        logger.debug(
            "identifier_minted",
            entity_type=entity_type,
            legacy_id=legacy_id,
            internal_id=internal_id,
        )
        return internal_id

    def lookup(self, entity_type: str, legacy_id: str, confirmed_only: bool = True) -> str | None:
        """Read-only lookup; never mints a mapping."""
        with get_session(self.database_url) as session:
            return self._find(session, entity_type, legacy_id, confirmed_only=confirmed_only)

    def lookup_many(
        self, entity_type: str, legacy_ids: Iterable[str], confirmed_only: bool = True
    ) -> dict[str, str]:
        """Read-only lookup of several legacy ids.

        Returns:
            Dictionary of legacy id -> internal UUID for the ids that resolve
        """
        wanted = {legacy_id for legacy_id in legacy_ids if legacy_id}
        if not wanted:
            return {}

        stmt = select(IdentifierMapping.legacy_id, IdentifierMapping.internal_id).where(
            IdentifierMapping.entity_type == entity_type,
            IdentifierMapping.legacy_id.in_(wanted),
        )
        if confirmed_only:
            stmt = stmt.where(IdentifierMapping.last_synced_at.is_not(None))

        with get_session(self.database_url) as session:
            return {legacy_id: internal_id for legacy_id, internal_id in session.execute(stmt)}

    @staticmethod
    def is_uuid_shaped(value: object) -> bool:
        return is_uuid_shaped(value)

    @staticmethod
    def resolve_if_uuid_shaped(value: object) -> str | None:
        """Return ``value`` unchanged if it already is an internal UUID, else None."""
        return value if isinstance(value, str) and is_uuid_shaped(value) else None

    def resolve_reference(self, entity_type: str, value: str | None) -> str | None:
        """Resolve a foreign-key value that may be a legacy id or already a UUID.

        Returns:
            The internal UUID, or None when the value is empty or its entity
            has not been written yet
        """
        if not value:
            return None
        already_internal = self.resolve_if_uuid_shaped(value)
        if already_internal:
            return already_internal
        return self.lookup(entity_type, value)

    def confirm(self, session: Session, entity_type: str, legacy_id: str) -> None:
        """Mark a mapping as written, inside the caller's upsert transaction."""
        result = session.execute(
            update(IdentifierMapping)
            .where(
                IdentifierMapping.entity_type == entity_type,
                IdentifierMapping.legacy_id == legacy_id,
            )
            .values(last_synced_at=datetime.now(UTC))
        )
        if result.rowcount == 0:
            raise StateError(f"No identifier mapping to confirm for {entity_type}/{legacy_id}")

    def count(self, entity_type: str | None = None, confirmed_only: bool = False) -> int:
        """Count identifier mappings, optionally for one entity type."""
        stmt = select(func.count()).select_from(IdentifierMapping)
        if entity_type:
            stmt = stmt.where(IdentifierMapping.entity_type == entity_type)
        if confirmed_only:
            stmt = stmt.where(IdentifierMapping.last_synced_at.is_not(None))
        with get_session(self.database_url) as session:
            return session.execute(stmt).scalar_one()
