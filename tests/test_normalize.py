"""Tests for legacy value normalization."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from legacy_sync import normalize as n


class TestTaskStatus:
    """Tests for normalize_task_status."""

    def test_scheduled_becomes_booked(self):
        assert n.normalize_task_status("Scheduled") == "Booked"

    @pytest.mark.parametrize("status", ["scheduled", "SCHEDULED", " Scheduled", "Completed", None])
    def test_other_values_unchanged(self, status):
        assert n.normalize_task_status(status) == status


class TestEmployeeTypeToRole:
    """Tests for employee_type_to_role."""

    @pytest.mark.parametrize(
        ("employee_type", "role"),
        [("Office Crew", "officeCrew"), ("Field Crew", "fieldCrew"), ("Admin", "admin")],
    )
    def test_known_types(self, employee_type, role):
        assert n.employee_type_to_role(employee_type) == role

    @pytest.mark.parametrize("employee_type", [None, "", "admin", "Office crew", "Manager", 3])
    def test_everything_else_is_field_crew(self, employee_type):
        assert n.employee_type_to_role(employee_type) == "fieldCrew"


class TestJobStatus:
    """Tests for job_status_to_enum."""

    def test_known_status(self):
        assert n.job_status_to_enum("In Progress") == "inProgress"

    def test_unknown_defaults_to_rfq(self):
        assert n.job_status_to_enum("Paused") == "rfq"
        assert n.job_status_to_enum(None) == "rfq"


class TestEntityPath:
    """Tests for entity_path."""

    def test_lowercases_and_keeps_spaces(self):
        assert n.entity_path("Sub Client") == "sub client"
        assert n.entity_path("TaskType") == "tasktype"


class TestReferences:
    """Tests for reference extraction."""

    def test_plain_string(self):
        assert n.resolve_reference("1700000000000x1") == "1700000000000x1"

    def test_object_with_unique_id(self):
        assert n.resolve_reference({"unique_id": "1700000000000x1"}) == "1700000000000x1"

    def test_blank_values(self):
        assert n.resolve_reference("") is None
        assert n.resolve_reference({}) is None
        assert n.resolve_reference(None) is None

    def test_list_drops_blanks(self):
        refs = ["a", "", None, {"unique_id": "b"}, {"name": "no id"}]
        assert n.resolve_references(refs) == ["a", "b"]

    def test_single_value_becomes_list(self):
        assert n.resolve_references("a") == ["a"]


class TestDates:
    """Tests for date parsing."""

    def test_iso_with_z(self):
        assert n.parse_legacy_date("2024-05-01T12:30:00.000Z") == datetime(
            2024, 5, 1, 12, 30, tzinfo=UTC
        )

    def test_naive_iso_is_utc(self):
        assert n.parse_legacy_date("2024-05-01T12:30:00").tzinfo == UTC

    def test_offset_converted_to_utc(self):
        parsed = n.parse_legacy_date("2024-05-01T10:00:00+02:00")

        assert parsed.tzinfo == UTC
        assert parsed.hour == 8
        assert parsed == datetime(2024, 5, 1, 8, 0, tzinfo=UTC)

    def test_aware_datetime_converted_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        parsed = n.parse_legacy_date(datetime(2024, 5, 1, 10, 0, tzinfo=plus_two))
        assert (parsed.tzinfo, parsed.hour) == (UTC, 8)

    def test_epoch_milliseconds(self):
        assert n.parse_legacy_date(1714566600000) == datetime(2024, 5, 1, 12, 30, tzinfo=UTC)

    def test_epoch_seconds(self):
        assert n.parse_legacy_date(1714566600) == datetime(2024, 5, 1, 12, 30, tzinfo=UTC)

    def test_blank_is_none(self):
        assert n.parse_legacy_date("") is None
        assert n.parse_legacy_date(None) is None

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            n.parse_legacy_date("next tuesday")

    def test_flexible_numeric_string(self):
        assert n.parse_flexible_date("1714566600") == datetime(2024, 5, 1, 12, 30, tzinfo=UTC)

    def test_flexible_iso(self):
        assert n.parse_flexible_date("2024-05-01T12:30:00Z") == datetime(
            2024, 5, 1, 12, 30, tzinfo=UTC
        )


class TestScalars:
    """Tests for scalar normalizers."""

    def test_phone_number_rendered_as_integer(self):
        assert n.normalize_phone(5551234567) == "5551234567"
        assert n.normalize_phone(5551234567.0) == "5551234567"
        assert n.normalize_phone("(555) 123-4567") == "(555) 123-4567"
        assert n.normalize_phone("") is None

    def test_color(self):
        assert n.normalize_color("ff0000") == "#ff0000"
        assert n.normalize_color("#00ff00") == "#00ff00"
        assert n.normalize_color("") == n.DEFAULT_COLOR
        assert n.normalize_color(None) == n.DEFAULT_COLOR

    def test_duration(self):
        assert n.normalize_duration(2.6) == 3
        assert n.normalize_duration(0) == 1
        assert n.normalize_duration(None) == 1
        assert n.normalize_duration("abc") == 1

    def test_subscription_values(self):
        assert n.normalize_subscription_status("Active") == "active"
        assert n.normalize_subscription_status("unknown") is None
        assert n.normalize_subscription_plan(" Starter ") == "starter"
        assert n.normalize_subscription_period("Monthly") == "Monthly"
        assert n.normalize_subscription_period("monthly") is None

    def test_address_parts(self):
        address = {"address": "1 Main St", "lat": 40.1, "lng": -74.2}
        assert n.address_text(address) == "1 Main St"
        assert n.address_lat(address) == 40.1
        assert n.address_lng(address) == -74.2
        assert n.address_lat("1 Main St") is None

    def test_image_url(self):
        assert n.image_url("//cdn.test/a.png") == "https://cdn.test/a.png"
        assert n.image_url({"url": "https://cdn.test/b.png"}) == "https://cdn.test/b.png"
        assert n.image_url("") is None

    def test_industries(self):
        assert n.industries("Roofing") == ["Roofing"]
        assert n.industries(["Roofing", ""]) == ["Roofing"]
        assert n.industries(None) == []

    def test_stripped_text(self):
        assert n.stripped_text("  Roof day ") == "Roof day"
        assert n.stripped_text("   ") is None

    def test_uuid_shape(self):
        assert n.is_uuid_shaped("0b4f4b1e-4a3e-4c1d-9f5e-2d9b8c7a6f50")
        assert not n.is_uuid_shaped("1700000000000x100")
        assert not n.is_uuid_shaped(None)
