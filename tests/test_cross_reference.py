"""Tests for rewriting legacy ids in pipeline tables."""

import uuid

from legacy_sync.migration.cross_reference import CrossReferenceUpdater
from legacy_sync.migration.database import get_session
from legacy_sync.migration.entities import Estimate, LineItem, Opportunity
from legacy_sync.resources import CrossReference


def _written(resolver, entity_type: str, legacy_id: str) -> str:
    internal_id = resolver.resolve(entity_type, legacy_id)
    with get_session(resolver.database_url) as session:
        resolver.confirm(session, entity_type, legacy_id)
    return internal_id


def _add(database_url, *rows):
    with get_session(database_url) as session:
        session.add_all(rows)


def _get(database_url, model, row_id):
    with get_session(database_url) as session:
        return session.get(model, row_id)


def _row_id() -> str:
    return str(uuid.uuid4())


class TestCrossReferenceUpdater:
    """Tests for CrossReferenceUpdater.reconcile."""

    def test_rewrites_resolvable_ids(self, resolver, database_url):
        client_id = _written(resolver, "clients", "cl1")
        project_id = _written(resolver, "projects", "p1")
        opportunity = _row_id()
        _add(database_url, Opportunity(id=opportunity, client_id="cl1", project_id="p1"))

        updated = CrossReferenceUpdater(resolver).reconcile()

        row = _get(database_url, Opportunity, opportunity)
        assert (row.client_id, row.project_id) == (client_id, project_id)
        # two columns, one row
        assert updated == 1

    def test_second_pass_is_noop(self, resolver, database_url):
        _written(resolver, "clients", "cl1")
        _add(database_url, Estimate(id=_row_id(), client_id="cl1"))
        updater = CrossReferenceUpdater(resolver)

        assert updater.reconcile() == 1
        assert updater.reconcile() == 0

    def test_unwritten_entities_left_alone(self, resolver, database_url):
        resolver.resolve("clients", "cl1")  # minted, never written
        estimate = _row_id()
        _add(database_url, Estimate(id=estimate, client_id="cl1", project_id="p404"))

        assert CrossReferenceUpdater(resolver).reconcile() == 0
        row = _get(database_url, Estimate, estimate)
        assert (row.client_id, row.project_id) == ("cl1", "p404")

    def test_uuid_values_not_looked_up(self, resolver, database_url):
        existing = str(uuid.uuid4())
        _add(database_url, LineItem(id=_row_id(), task_type_id=existing))

        assert CrossReferenceUpdater(resolver).reconcile() == 0

    def test_counts_rows_across_tables(self, resolver, database_url):
        task_type_id = _written(resolver, "task_types", "tt1")
        _written(resolver, "companies", "c1")
        line_items = [LineItem(id=_row_id(), task_type_id="tt1") for _ in range(3)]
        _add(database_url, *line_items, Opportunity(id=_row_id(), company_id="c1"))

        assert CrossReferenceUpdater(resolver).reconcile() == 4
        assert _get(database_url, LineItem, line_items[0].id).task_type_id == task_type_id

    def test_limited_references(self, resolver, database_url):
        _written(resolver, "clients", "cl1")
        _add(database_url, Estimate(id=_row_id(), client_id="cl1"))
        only_opportunities = [CrossReference("opportunities", "client_id", "clients")]

        assert CrossReferenceUpdater(resolver, only_opportunities).reconcile() == 0
