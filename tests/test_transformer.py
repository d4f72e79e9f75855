"""Tests for mapping legacy records onto record models."""

from datetime import UTC, datetime

import pytest

from legacy_sync.client.exceptions import DependencyError, RecordError
from legacy_sync.migration.database import get_session
from legacy_sync.migration.transformer import RecordTransformer
from legacy_sync.records import ProjectRecord, UserRecord
from legacy_sync.resources import get_info


def _written(resolver, entity_type: str, legacy_id: str) -> str:
    """Mint and confirm a mapping as if the entity row had been written."""
    internal_id = resolver.resolve(entity_type, legacy_id)
    with get_session(resolver.database_url) as session:
        resolver.confirm(session, entity_type, legacy_id)
    return internal_id


class TestFieldMapping:
    """Tests for field mapping and normalization."""

    def test_user_fields(self, resolver):
        company_id = _written(resolver, "companies", "c1")
        transformer = RecordTransformer(get_info("users"), resolver)

        transformed = transformer.transform(
            {
                "_id": "u1",
                "nameFirst": "Ada",
                "company": {"unique_id": "c1"},
                "employeeType": "Office Crew",
                "authentication": {"email": {"email": "ada@acme.test"}},
                "email": "fallback@acme.test",
                "phone": 5551234567,
            }
        )
        user = transformer.validate(transformed)

        assert isinstance(user, UserRecord)
        assert user.legacy_id == "u1"
        assert user.company_id == company_id
        assert user.email == "ada@acme.test"
        assert user.role == "officeCrew"
        assert user.phone == "5551234567"
        assert user.last_name == ""

    def test_alias_used_when_primary_blank(self, resolver):
        transformer = RecordTransformer(get_info("users"), resolver)
        transformed = transformer.transform(
            {"_id": "u1", "authentication": {"email": {"email": ""}}, "email": "b@acme.test"}
        )
        assert transformed.values["email"] == "b@acme.test"

    def test_task_type_accepts_id_alias_and_display_casing(self, resolver):
        transformer = RecordTransformer(get_info("task_types"), resolver)
        transformed = transformer.transform({"id": "tt1", "Display": "Gutter Clean"})

        assert transformed.legacy_id == "tt1"
        assert transformed.values["display"] == "Gutter Clean"
        assert transformed.values["color"] == "#417394"

    def test_defaults_fill_missing_values(self, resolver):
        _written(resolver, "companies", "c1")
        transformer = RecordTransformer(get_info("projects"), resolver)

        project = transformer.validate(
            transformer.transform({"_id": "p1", "company": "c1", "projectName": ""})
        )

        assert isinstance(project, ProjectRecord)
        assert project.title == "Untitled Project"
        assert project.status == "rfq"
        assert project.all_day is False

    def test_soft_delete_timestamp(self, resolver):
        transformer = RecordTransformer(get_info("ops_contacts"), resolver)
        transformer_users = RecordTransformer(get_info("users"), resolver)

        deleted = transformer_users.transform(
            {"_id": "u1", "deletedAt": "2024-03-01T00:00:00.000Z"}
        )
        contact = transformer.transform({"_id": "o1", "deletedAt": "2024-03-01T00:00:00.000Z"})

        assert deleted.values["deleted_at"] == datetime(2024, 3, 1, tzinfo=UTC)
        # ops contacts carry no soft-delete field
        assert "deleted_at" not in contact.values

    def test_internal_id_is_stable(self, resolver):
        transformer = RecordTransformer(get_info("ops_contacts"), resolver)
        first = transformer.transform({"_id": "o1"}).values["id"]
        assert transformer.transform({"_id": "o1", "name": "Renamed"}).values["id"] == first


class TestReferences:
    """Tests for foreign-key resolution during transform."""

    def test_missing_required_reference(self, resolver):
        transformer = RecordTransformer(get_info("clients"), resolver)
        with pytest.raises(RecordError, match="missing parentCompany") as exc_info:
            transformer.transform({"_id": "cl1", "name": "Jane"})
        assert not isinstance(exc_info.value, DependencyError)

    def test_unwritten_required_reference(self, resolver):
        resolver.resolve("companies", "c1")  # minted but never written
        transformer = RecordTransformer(get_info("clients"), resolver)

        with pytest.raises(DependencyError) as exc_info:
            transformer.transform({"_id": "cl1", "parentCompany": "c1"})

        assert str(exc_info.value).startswith("clients/cl1:")

    def test_unwritten_optional_reference_is_null(self, resolver):
        _written(resolver, "companies", "c1")
        transformer = RecordTransformer(get_info("projects"), resolver)

        transformed = transformer.transform({"_id": "p1", "company": "c1", "client": "cl404"})

        assert transformed.values["client_id"] is None

    def test_many_reference_drops_unresolved(self, resolver):
        company_id = _written(resolver, "companies", "c1")
        user_id = _written(resolver, "users", "u1")
        transformer = RecordTransformer(get_info("calendar_events"), resolver)

        transformed = transformer.transform(
            {"_id": "e1", "companyId": company_id, "teamMembers": ["u1", "u404", ""]}
        )

        assert transformed.values["company_id"] == company_id
        assert transformed.values["team_member_ids"] == [user_id]


class TestErrors:
    """Tests for per-record failures."""

    def test_record_without_id(self, resolver):
        transformer = RecordTransformer(get_info("ops_contacts"), resolver)
        with pytest.raises(RecordError, match="no legacy id"):
            transformer.transform({"name": "Nobody"})

    def test_invalid_date(self, resolver):
        _written(resolver, "companies", "c1")
        transformer = RecordTransformer(get_info("projects"), resolver)
        with pytest.raises(RecordError, match="invalid startDate"):
            transformer.transform({"_id": "p1", "company": "c1", "startDate": "soon"})

    def test_validation_error_lists_fields(self, resolver):
        transformer = RecordTransformer(get_info("ops_contacts"), resolver)
        transformed = transformer.transform({"_id": "o1"})
        transformed.values["unexpected"] = 1

        with pytest.raises(RecordError, match="unexpected"):
            transformer.validate(transformed)
