"""Tests for the entity type registry and search constraints."""

import json
from dataclasses import replace
from datetime import UTC, datetime

import pytest

from legacy_sync.client.constraints import (
    Constraint,
    ConstraintType,
    build_constraints,
    equals,
    modified_since,
    not_deleted,
)
from legacy_sync.client.exceptions import ConfigurationError
from legacy_sync.migration.entities import ENTITY_MODELS
from legacy_sync.resources import (
    CROSS_REFERENCES,
    ENTITY_REGISTRY,
    get_info,
    get_migration_order,
)

# =============================================================================
# REGISTRY TESTS
# =============================================================================


class TestMigrationOrder:
    """Tests for dependency ordering."""

    def test_default_order(self):
        assert get_migration_order() == [
            "companies",
            "users",
            "clients",
            "sub_clients",
            "task_types",
            "projects",
            "calendar_events",
            "tasks",
            "ops_contacts",
        ]

    def test_dependencies_come_first(self):
        order = get_migration_order()
        for name, info in ENTITY_REGISTRY.items():
            for dependency in info.depends_on:
                assert order.index(dependency) < order.index(name)

    def test_cycle_is_rejected(self):
        registry = dict(ENTITY_REGISTRY)
        registry["companies"] = replace(registry["companies"], depends_on=("tasks",))
        with pytest.raises(ConfigurationError, match="Circular"):
            get_migration_order(registry)

    def test_unknown_dependency_is_rejected(self):
        registry = {"clients": ENTITY_REGISTRY["clients"]}
        with pytest.raises(ConfigurationError, match="unknown type"):
            get_migration_order(registry)

    def test_undeclared_reference_target_is_rejected(self):
        registry = dict(ENTITY_REGISTRY)
        registry["clients"] = replace(registry["clients"], depends_on=())
        with pytest.raises(ConfigurationError, match="not declared"):
            get_migration_order(registry)


class TestRegistryConsistency:
    """Every registry entry must line up with its record model and table."""

    @pytest.mark.parametrize("name", list(ENTITY_REGISTRY))
    def test_fields_exist_on_record_model(self, name):
        info = get_info(name)
        model_fields = set(info.record_model.model_fields)
        assert set(info.fields) <= model_fields
        assert set(info.references) <= model_fields

    @pytest.mark.parametrize("name", list(ENTITY_REGISTRY))
    def test_record_fields_are_table_columns(self, name):
        info = get_info(name)
        columns = set(ENTITY_MODELS[info.table].__table__.columns.keys())
        assert set(info.record_model.model_fields) <= columns

    def test_api_paths(self):
        assert get_info("sub_clients").api_path == "sub client"
        assert get_info("calendar_events").api_path == "calendarevent"

    def test_ops_contacts_always_full(self):
        info = get_info("ops_contacts")
        assert info.incremental is False
        assert info.deleted_field is None

    def test_cross_references_target_registered_types(self):
        for reference in CROSS_REFERENCES:
            assert reference.entity_type in ENTITY_REGISTRY


# =============================================================================
# CONSTRAINT TESTS
# =============================================================================


class TestConstraints:
    """Tests for constraint construction and serialization."""

    def test_unary_constraint_has_no_value(self):
        assert not_deleted().to_dict() == {"key": "deletedAt", "constraint_type": "is_empty"}

    def test_unary_constraint_rejects_value(self):
        with pytest.raises(ValueError):
            Constraint("deletedAt", ConstraintType.IS_EMPTY, "x")

    def test_binary_constraint_requires_value(self):
        with pytest.raises(ValueError):
            Constraint("name", ConstraintType.EQUALS)

    def test_modified_since_includes_the_bound(self):
        since = datetime(2024, 5, 1, 0, 0, tzinfo=UTC)
        assert modified_since(since).to_dict() == {
            "key": "Modified Date",
            "constraint_type": "greater than",
            "value": "2024-04-30T23:59:59.999Z",
        }

    def test_build_constraints(self):
        encoded = build_constraints([equals("status", "Completed"), not_deleted()])
        assert json.loads(encoded) == [
            {"key": "status", "constraint_type": "equals", "value": "Completed"},
            {"key": "deletedAt", "constraint_type": "is_empty"},
        ]

    def test_build_constraints_empty(self):
        assert build_constraints([]) is None
        assert build_constraints(None) is None
