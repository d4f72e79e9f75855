"""Pytest configuration and fixtures.

Provides fixtures for:
- An in-process fake of the legacy platform's data and workflow APIs
- Settings pointing at a throwaway SQLite database
- A client, sync state and identifier resolver wired to both
"""

import json
import uuid
from collections import defaultdict
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from legacy_sync.client.legacy_client import LegacyPlatformClient
from legacy_sync.config import SyncSettings
from legacy_sync.migration.resolver import IdentifierResolver
from legacy_sync.migration.state import SyncState
from legacy_sync.normalize import entity_path, parse_legacy_date

BASE_URL = "https://legacy.test/api/1.1"
API_PREFIX = "/api/1.1/"
TOKEN = "test-token"
DEFAULT_MODIFIED = "2024-01-01T00:00:00.000Z"


# ---------------------------------------------------------------------------
# Fake legacy platform
# ---------------------------------------------------------------------------


class FakeLegacyPlatform:
    """In-memory legacy platform served through ``httpx.MockTransport``.

    Records are stored per API path (``"sub client"``, ``"task"``...). List
    requests honour ``cursor``, ``limit`` and the constraint types the sync
    uses; ``fail`` makes every request for a path return an error status.
    """

    def __init__(self, token: str = TOKEN):
        self.token = token
        self.records: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.workflows: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {}
        self.failures: dict[str, int] = {}
        self.requests: list[httpx.Request] = []

    # Data setup

    def add(self, legacy_type: str, *records: dict[str, Any]) -> None:
        for record in records:
            self.records[entity_path(legacy_type)].append(
                {"Modified Date": DEFAULT_MODIFIED, **record}
            )

    def modify(self, legacy_type: str, legacy_id: str, **changes: Any) -> None:
        for record in self.records[entity_path(legacy_type)]:
            if record["_id"] == legacy_id:
                record.update(changes)
                return
        raise KeyError(legacy_id)

    def fail(self, legacy_type: str, status_code: int) -> None:
        self.failures[entity_path(legacy_type)] = status_code

    def list_requests(self, legacy_type: str) -> list[httpx.Request]:
        path = f"{API_PREFIX}obj/{entity_path(legacy_type)}"
        return [r for r in self.requests if r.method == "GET" and r.url.path == path]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # Request handling

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.headers.get("Authorization") != f"Bearer {self.token}":
            return httpx.Response(401, json={"body": {"message": "Invalid token"}})

        path = request.url.path.removeprefix(API_PREFIX)
        kind, _, rest = path.partition("/")
        if kind == "wf":
            return self._workflow(request, rest)
        if kind != "obj":
            return httpx.Response(404, json={"message": "Unknown endpoint"})

        type_path, _, record_id = rest.partition("/")
        if type_path in self.failures:
            return httpx.Response(
                self.failures[type_path], json={"body": {"message": "Injected failure"}}
            )

        if request.method == "GET" and not record_id:
            return self._list(request, type_path)
        if request.method == "GET":
            record = self._find(type_path, record_id)
            if record is None:
                return httpx.Response(404, json={"body": {"message": "Missing object"}})
            return httpx.Response(200, json={"response": record})
        if request.method == "POST":
            new_id = f"{uuid.uuid4().int % 10**13}x{uuid.uuid4().int % 10**18}"
            self.records[type_path].append({"_id": new_id, **json.loads(request.content)})
            return httpx.Response(201, json={"status": "success", "id": new_id})
        if request.method == "PATCH":
            record = self._find(type_path, record_id)
            if record is None:
                return httpx.Response(404, json={"body": {"message": "Missing object"}})
            record.update(json.loads(request.content))
            return httpx.Response(204)
        if request.method == "DELETE":
            record = self._find(type_path, record_id)
            if record is None:
                return httpx.Response(404, json={"body": {"message": "Missing object"}})
            self.records[type_path].remove(record)
            return httpx.Response(204)
        return httpx.Response(405)

    def _find(self, type_path: str, record_id: str) -> dict[str, Any] | None:
        return next((r for r in self.records[type_path] if r.get("_id") == record_id), None)

    def _list(self, request: httpx.Request, type_path: str) -> httpx.Response:
        cursor = int(request.url.params.get("cursor", 0))
        limit = int(request.url.params.get("limit", 100))
        constraints = json.loads(request.url.params.get("constraints", "[]"))

        matching = [r for r in self.records[type_path] if _matches(r, constraints)]
        results = matching[cursor : cursor + limit]
        remaining = max(0, len(matching) - cursor - len(results))
        return httpx.Response(
            200,
            json={
                "response": {
                    "cursor": cursor,
                    "results": results,
                    "count": len(results),
                    "remaining": remaining,
                }
            },
        )

    def _workflow(self, request: httpx.Request, name: str) -> httpx.Response:
        workflow = self.workflows.get(name)
        if workflow is None:
            return httpx.Response(404, json={"body": {"message": f"Workflow {name} not found"}})
        payload = json.loads(request.content) if request.content else {}
        return httpx.Response(200, json={"status": "success", "response": workflow(payload)})


def _matches(record: dict[str, Any], constraints: list[dict[str, Any]]) -> bool:
    for constraint in constraints:
        value = record.get(constraint["key"])
        kind = constraint["constraint_type"]
        if kind == "is_empty" and value not in (None, ""):
            return False
        if kind == "equals" and value != constraint["value"]:
            return False
        if kind == "greater than":
            if value is None or parse_legacy_date(value) <= parse_legacy_date(constraint["value"]):
                return False
    return True


def seed_platform(platform: FakeLegacyPlatform) -> None:
    """One company with two users, a client, a project and its schedule."""
    platform.add(
        "Company",
        {
            "_id": "1700000000000x100",
            "companyName": "Acme Roofing",
            "phone": 5551234567,
            "industry": "Roofing",
            "admin": ["1700000000000x200"],
            "seatedEmployees": ["1700000000000x200", "1700000000000x201"],
            "accountHolder": "1700000000000x200",
            "taskTypes": ["1700000000000x500"],
            "subscriptionStatus": "Active",
            "trialEndDate": "1704067200",
        },
    )
    platform.add(
        "User",
        {
            "_id": "1700000000000x200",
            "nameFirst": "Ada",
            "nameLast": "Lovelace",
            "company": "1700000000000x100",
            "employeeType": "Admin",
            "authentication": {"email": {"email": "ada@acme.test"}},
        },
        {
            "_id": "1700000000000x201",
            "nameFirst": "Bob",
            "company": {"unique_id": "1700000000000x100"},
            "employeeType": "Field Crew",
            "email": "bob@acme.test",
        },
    )
    platform.add(
        "Client",
        {"_id": "1700000000000x300", "name": "Jane Client", "parentCompany": "1700000000000x100"},
    )
    platform.add(
        "Sub Client",
        {"_id": "1700000000000x400", "name": "Site Manager", "parentClient": "1700000000000x300"},
    )
    platform.add(
        "TaskType",
        {"_id": "1700000000000x500", "display": "Roof Repair", "color": "ff0000"},
    )
    platform.add(
        "Project",
        {
            "_id": "1700000000000x600",
            "projectName": "Main Street",
            "company": "1700000000000x100",
            "client": "1700000000000x300",
            "status": "In Progress",
            "address": {"address": "1 Main St", "lat": 40.1, "lng": -74.2},
        },
    )
    platform.add(
        "calendarevent",
        {
            "_id": "1700000000000x700",
            "title": "  Roof day ",
            "companyId": "1700000000000x100",
            "projectId": "1700000000000x600",
            "teamMembers": ["1700000000000x201"],
            "startDate": "2024-02-01T08:00:00.000Z",
            "duration": 1.6,
        },
    )
    platform.add(
        "Task",
        {
            "_id": "1700000000000x800",
            "projectId": "1700000000000x600",
            "type": "1700000000000x500",
            "calendarEventId": "1700000000000x700",
            "teamMembers": ["1700000000000x201", "1700000000000x200"],
            "status": "Scheduled",
            "taskIndex": 0,
        },
    )
    platform.add(
        "opscontact",
        {"_id": "1700000000000x900", "name": "Support Desk", "email": "support@ops.test"},
    )


# ---------------------------------------------------------------------------
# Settings and state fixtures
# ---------------------------------------------------------------------------


def make_settings(tmp_path: Path, **sync_overrides: Any) -> SyncSettings:
    return SyncSettings(
        legacy={"url": BASE_URL, "token": TOKEN},
        performance={
            "page_size": 2,
            "rate_limit": 0,
            "retry_attempts": 2,
            "retry_backoff_min": 0,
            "retry_backoff_max": 0,
        },
        state={"db_path": str(tmp_path / "sync.db")},
        sync={"report_dir": None, **sync_overrides},
        logging={"file": None},
    )


@pytest.fixture
def settings(tmp_path: Path) -> SyncSettings:
    """Settings against the fake platform and a per-test SQLite file."""
    return make_settings(tmp_path)


@pytest.fixture
def database_url(settings: SyncSettings) -> str:
    return settings.state.database_url


@pytest.fixture
def platform() -> FakeLegacyPlatform:
    return FakeLegacyPlatform()


@pytest.fixture
def seeded_platform(platform: FakeLegacyPlatform) -> FakeLegacyPlatform:
    seed_platform(platform)
    return platform


@pytest.fixture
async def client(
    settings: SyncSettings, platform: FakeLegacyPlatform
) -> AsyncGenerator[LegacyPlatformClient, None]:
    async with LegacyPlatformClient.from_config(settings, transport=platform.transport()) as c:
        yield c


@pytest.fixture
def state(settings: SyncSettings) -> SyncState:
    return SyncState(settings.state, tenant_scope=settings.sync.tenant_scope)


@pytest.fixture
def resolver(state: SyncState) -> IdentifierResolver:
    return IdentifierResolver(state.database_url)
