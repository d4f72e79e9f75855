"""Tests for sync reports."""

import json
from datetime import UTC, datetime

import pytest

from legacy_sync.reporting import (
    SyncMode,
    SyncReport,
    generate_json,
    generate_markdown,
    write_report,
)

SYNCED_AT = datetime(2024, 5, 1, 12, 30, 5, tzinfo=UTC)


@pytest.fixture
def report():
    return SyncReport(
        sync_mode=SyncMode.INCREMENTAL,
        synced_at=SYNCED_AT,
        companies=1,
        users=3,
        project_tasks=1200,
        pipeline_refs_updated=4,
        error_count=3,
        errors=["clients/cl1: missing parentCompany", "users/u9: invalid createdDate"],
    )


class TestSyncReport:
    """Tests for the report model."""

    def test_entity_counts_in_migration_order(self, report):
        counts = report.entity_counts()

        assert list(counts) == [
            "companies",
            "users",
            "clients",
            "subClients",
            "taskTypes",
            "projects",
            "calendarEvents",
            "projectTasks",
            "opsContacts",
        ]
        assert counts["projectTasks"] == 1200

    def test_migrated_total_excludes_pipeline_refs(self, report):
        assert report.migrated_total == 1204

    def test_accepts_camel_case_keys(self):
        parsed = SyncReport.model_validate(
            {"syncMode": "full", "syncedAt": "2024-05-01T12:30:05Z", "subClients": 2}
        )
        assert parsed.sub_clients == 2
        assert parsed.errors == []


# =============================================================================
# Rendering
# =============================================================================


class TestGenerateJson:
    """Tests for generate_json."""

    def test_camel_case_payload(self, report):
        data = json.loads(generate_json(report))

        assert data["syncMode"] == "incremental"
        assert data["syncedAt"].startswith("2024-05-01T12:30:05")
        assert data["pipelineRefsUpdated"] == 4
        assert data["errorCount"] == 3
        assert "sub_clients" not in data


class TestGenerateMarkdown:
    """Tests for generate_markdown."""

    def test_table_and_errors(self, report):
        markdown = generate_markdown(report, run_id="abc123")

        assert markdown.startswith("# Legacy Sync Report")
        assert "**Run ID:** `abc123`" in markdown
        assert "| projectTasks | 1,200 |" in markdown
        assert "| pipelineRefsUpdated | 4 |" in markdown
        assert "- clients/cl1: missing parentCompany" in markdown
        assert "- ... and 1 more" in markdown

    def test_no_error_section_without_errors(self):
        clean = SyncReport(sync_mode=SyncMode.FULL, synced_at=SYNCED_AT)
        assert "## Errors" not in generate_markdown(clean)


class TestWriteReport:
    """Tests for write_report."""

    def test_writes_both_formats(self, report, tmp_path):
        paths = write_report(report, tmp_path / "reports", run_id="0123456789abcdef")

        assert [path.name for path in paths] == [
            "sync_report_20240501T123005Z_01234567.json",
            "sync_report_20240501T123005Z_01234567.md",
        ]
        assert json.loads(paths[0].read_text())["companies"] == 1
        assert paths[1].read_text().startswith("# Legacy Sync Report")

    def test_single_format(self, report, tmp_path):
        [path] = write_report(report, tmp_path, formats=("json",))
        assert path.name == "sync_report_20240501T123005Z.json"

    def test_unknown_format(self, report, tmp_path):
        with pytest.raises(ValueError, match="html"):
            write_report(report, tmp_path, formats=("json", "html"))
        assert list(tmp_path.iterdir()) == []
