"""Tests for the sync coordinator."""

import json
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select

from legacy_sync.client.exceptions import (
    AuthenticationError,
    RunInProgressError,
    SyncRunFailedError,
)
from legacy_sync.migration.coordinator import RunPhase, SyncCoordinator, run_sync
from legacy_sync.migration.database import get_session
from legacy_sync.migration.entities import ENTITY_MODELS, Client, Opportunity
from legacy_sync.migration.state import SyncState
from legacy_sync.reporting.report import SyncMode, SyncRequest

from .conftest import make_settings

FULL = SyncRequest(mode=SyncMode.FULL)
INCREMENTAL = SyncRequest(mode=SyncMode.INCREMENTAL)


@pytest.fixture
def coordinator(settings, client, state):
    return SyncCoordinator(settings, client, state)


def table_counts(database_url):
    with get_session(database_url) as session:
        return {
            table: session.execute(select(func.count()).select_from(model)).scalar_one()
            for table, model in ENTITY_MODELS.items()
        }


def ids(database_url, model):
    with get_session(database_url) as session:
        return dict(session.execute(select(model.legacy_id, model.id)).all())


class TestFullRun:
    """Tests for full runs."""

    async def test_report(self, seeded_platform, coordinator, state):
        report = await coordinator.run(FULL)

        assert report.sync_mode is SyncMode.FULL
        assert report.entity_counts() == {
            "companies": 1,
            "users": 2,
            "clients": 1,
            "subClients": 1,
            "taskTypes": 1,
            "projects": 1,
            "calendarEvents": 1,
            "projectTasks": 1,
            "opsContacts": 1,
        }
        assert report.error_count == 0
        assert report.errors == []
        assert coordinator.phase is RunPhase.COMPLETED

        assert state.lock_holder() is None
        [run] = state.recent_runs()
        assert run["status"] == "completed"
        assert run["counts"]["users"] == 2

    async def test_watermark_is_run_start(self, seeded_platform, coordinator, state):
        report = await coordinator.run(FULL)

        [run] = state.recent_runs()
        assert state.get_watermark() == run["started_at"]
        assert run["started_at"] < run["completed_at"]
        assert state.get_watermark() < report.synced_at

    async def test_rerun_is_idempotent(self, seeded_platform, coordinator, database_url):
        await coordinator.run(FULL)
        counts = table_counts(database_url)
        mapping_count = coordinator.resolver.count()
        first_ids = {table: ids(database_url, model) for table, model in ENTITY_MODELS.items()}

        await coordinator.run(FULL)

        assert table_counts(database_url) == counts
        assert coordinator.resolver.count() == mapping_count
        assert {
            table: ids(database_url, model) for table, model in ENTITY_MODELS.items()
        } == first_ids

    async def test_report_serializes_camel_case(self, seeded_platform, coordinator):
        report = await coordinator.run(FULL)
        data = json.loads(json.dumps(report.to_dict()))

        assert data["syncMode"] == "full"
        assert data["projectTasks"] == 1
        assert data["pipelineRefsUpdated"] == 0
        assert "syncedAt" in data


class TestIncrementalRun:
    """Tests for incremental runs and the watermark."""

    async def test_only_changed_records(self, seeded_platform, coordinator, state):
        await coordinator.run(FULL)
        changed_at = (datetime.now(UTC) + timedelta(minutes=5)).isoformat()
        seeded_platform.modify(
            "Project", "1700000000000x600", projectName="Renamed", **{"Modified Date": changed_at}
        )

        report = await coordinator.run(INCREMENTAL)

        assert report.projects == 1
        assert report.companies == 0
        assert report.project_tasks == 0
        # ops contacts are always fetched in full
        assert report.ops_contacts == 1

        sent = json.loads(seeded_platform.list_requests("Project")[-1].url.params["constraints"])
        assert sent[0]["constraint_type"] == "greater than"

    async def test_since_date_overrides_watermark(self, seeded_platform, coordinator, state):
        state.set_watermark(datetime.now(UTC))

        report = await coordinator.run(
            SyncRequest(mode=SyncMode.INCREMENTAL, since_date=datetime(2023, 12, 31, tzinfo=UTC))
        )

        assert report.companies == 1
        assert report.project_tasks == 1

    async def test_plan(self, coordinator, state):
        started = datetime(2024, 5, 8, tzinfo=UTC)

        assert coordinator.plan(FULL, started) is None
        assert coordinator.plan(INCREMENTAL, started) == started - timedelta(days=7)

        state.set_watermark(datetime(2024, 5, 1, tzinfo=UTC))
        assert coordinator.plan(INCREMENTAL, started) == datetime(2024, 5, 1, tzinfo=UTC)

    def test_request_accepts_trigger_payload(self):
        request = SyncRequest.model_validate({"mode": "incremental", "sinceDate": "2024-05-01"})
        assert request.mode is SyncMode.INCREMENTAL
        assert request.since_date.date().isoformat() == "2024-05-01"
        assert SyncRequest().mode is SyncMode.INCREMENTAL


class TestFailures:
    """Tests for runs that abort or record errors."""

    async def test_systemic_error_fails_run(self, seeded_platform, coordinator, state):
        previous = datetime(2024, 1, 1, tzinfo=UTC)
        state.set_watermark(previous)
        seeded_platform.fail("Project", 401)

        with pytest.raises(SyncRunFailedError) as exc_info:
            await coordinator.run(FULL)

        error = exc_info.value
        assert isinstance(error.__cause__, AuthenticationError)
        assert error.report.companies == 1
        assert error.report.projects == 0
        assert coordinator.phase is RunPhase.FAILED
        assert state.get_watermark() == previous
        assert state.lock_holder() is None
        [run] = state.recent_runs()
        assert run["status"] == "failed"
        assert run["failure_reason"]

    async def test_preflight_rejects_token(self, seeded_platform, coordinator, state):
        seeded_platform.token = "rotated"

        with pytest.raises(SyncRunFailedError) as exc_info:
            await coordinator.run(FULL)

        assert isinstance(exc_info.value.__cause__, AuthenticationError)
        assert exc_info.value.report.migrated_total == 0
        assert state.get_watermark() is None

    async def test_run_in_progress(self, seeded_platform, coordinator, state, database_url):
        state.acquire_lock("other-run")

        with pytest.raises(RunInProgressError):
            await coordinator.run(FULL)

        assert state.lock_holder()["run_id"] == "other-run"
        assert state.recent_runs() == []
        assert table_counts(database_url)["companies"] == 0

    async def test_record_errors_do_not_fail_run(self, platform, tmp_path, client):
        settings = make_settings(tmp_path, max_reported_errors=2)
        state = SyncState(settings.state)
        platform.add("Company", {"_id": "c1"})
        platform.add("Client", *({"_id": f"cl{i}"} for i in range(5)))

        report = await SyncCoordinator(settings, client, state).run(FULL)

        assert report.error_count == 5
        assert len(report.errors) == 2
        assert state.get_watermark() is not None


class TestReconciliation:
    """Pipeline references are rewritten after the entity passes."""

    async def test_pipeline_refs_updated(self, seeded_platform, coordinator, database_url):
        with get_session(database_url) as session:
            session.add(
                Opportunity(
                    id="00000000-0000-4000-8000-000000000001",
                    client_id="1700000000000x300",
                    project_id="1700000000000x600",
                    title="Re-roof",
                )
            )

        report = await coordinator.run(FULL)

        assert report.pipeline_refs_updated == 1
        with get_session(database_url) as session:
            opportunity = session.get(Opportunity, "00000000-0000-4000-8000-000000000001")
            written_client = session.scalars(select(Client)).one()
        assert opportunity.client_id == written_client.id

        second = await coordinator.run(FULL)
        assert second.pipeline_refs_updated == 0


class TestRunSync:
    """Tests for the run_sync entry point."""

    async def test_run_sync_with_transport(self, seeded_platform, settings):
        progress = []

        report = await run_sync(
            settings,
            FULL,
            transport=seeded_platform.transport(),
            progress_callback=lambda *args: progress.append(args),
        )

        assert report.migrated_total == 10
        assert {entity_type for entity_type, _, _ in progress} == {
            "companies",
            "users",
            "clients",
            "sub_clients",
            "task_types",
            "projects",
            "calendar_events",
            "tasks",
            "ops_contacts",
        }
