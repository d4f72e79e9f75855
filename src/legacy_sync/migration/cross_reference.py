"""
Rewriting of legacy identifiers left in pipeline records.

Opportunities, estimates, invoices and the other pipeline tables were
created while the legacy platform still owned the core entities, so some
of their foreign-key columns hold legacy ids instead of internal UUIDs.
"""

from collections import defaultdict
from collections.abc import Iterable

from sqlalchemy import select

from legacy_sync.migration.database import get_session
from legacy_sync.migration.entities import PIPELINE_MODELS
from legacy_sync.migration.resolver import IdentifierResolver
from legacy_sync.normalize import is_uuid_shaped
from legacy_sync.resources import CROSS_REFERENCES, CrossReference
from legacy_sync.utils.logging import get_logger

logger = get_logger(__name__)


class CrossReferenceUpdater:
    """Rewrites legacy ids in pipeline columns to internal UUIDs.

    Resolution is read-only: a legacy id whose entity was never written is
    left untouched. Values that already look like UUIDs are skipped, which
    makes a second ``reconcile`` a no-op.
    """

    def __init__(
        self,
        resolver: IdentifierResolver,
        references: Iterable[CrossReference] = CROSS_REFERENCES,
    ):
        self.resolver = resolver
        self.database_url = resolver.database_url
        self.by_table: dict[str, list[CrossReference]] = defaultdict(list)
        for reference in references:
            self.by_table[reference.table].append(reference)

    def reconcile(self) -> int:
        """
        Rewrite every resolvable legacy id in the pipeline tables.

        Returns:
            Number of rows updated (a row counts once however many of its
            columns changed)

        Raises:
            StateError: If storage is unavailable
        """
        total = 0
        for table, references in self.by_table.items():
            updated = self._reconcile_table(table, references)
            if updated:
                logger.info("pipeline_refs_updated", table=table, rows=updated)
            total += updated

        logger.info("cross_reference_reconciled", rows_updated=total)
        return total

    def _reconcile_table(self, table: str, references: list[CrossReference]) -> int:
        model = PIPELINE_MODELS[table]
        columns = [getattr(model, reference.column) for reference in references]

        with get_session(self.database_url) as session:
            rows = session.execute(select(model.id, *columns)).all()

        pending: dict[str, set[str]] = defaultdict(set)
        for row in rows:
            for reference, value in zip(references, row[1:], strict=True):
                if value and not is_uuid_shaped(value):
                    pending[reference.entity_type].add(value)

        if not pending:
            return 0

        resolved = {
            entity_type: self.resolver.lookup_many(entity_type, legacy_ids)
            for entity_type, legacy_ids in pending.items()
        }

        changes: dict[str, dict[str, str]] = {}
        for row in rows:
            for reference, value in zip(references, row[1:], strict=True):
                internal_id = resolved.get(reference.entity_type, {}).get(value)
                if internal_id:
                    changes.setdefault(row[0], {})[reference.column] = internal_id

        if not changes:
            return 0

        with get_session(self.database_url) as session:
            for row_id, values in changes.items():
                record = session.get(model, row_id)
                for column, internal_id in values.items():
                    setattr(record, column, internal_id)

        return len(changes)
