"""Legacy platform data and workflow API client.

Reads and writes records through ``/obj/{type}`` and invokes named backend
workflows through ``/wf/{name}``. Every call is retried on transient
failures; once the retry budget is spent the typed error reaches the caller.
"""

from collections.abc import AsyncIterator
from typing import Any

import httpx

from legacy_sync.client.base_client import BaseAPIClient
from legacy_sync.client.constraints import Constraint, build_constraints
from legacy_sync.client.exceptions import APIError
from legacy_sync.config import SyncSettings
from legacy_sync.normalize import entity_path
from legacy_sync.utils.logging import get_logger
from legacy_sync.utils.retry import build_retrying

logger = get_logger(__name__)

# Largest page the data API serves
MAX_PAGE_SIZE = 100


class LegacyPlatformClient(BaseAPIClient):
    """Client for the legacy platform's data and workflow APIs."""

    def __init__(
        self,
        base_url: str,
        token: str,
        page_size: int = MAX_PAGE_SIZE,
        retry_attempts: int = 3,
        retry_backoff_min: float = 2,
        retry_backoff_max: float = 8,
        **kwargs: Any,
    ):
        """Initialize the legacy platform client.

        Args:
            base_url: Data API base URL (ending in the API version, e.g. ``/api/1.1``)
            token: API bearer token
            page_size: Records requested per list page
            retry_attempts: Total attempts for a retryable request
            retry_backoff_min: Minimum backoff in seconds
            retry_backoff_max: Maximum backoff in seconds
            **kwargs: Passed through to BaseAPIClient
        """
        super().__init__(base_url, token, **kwargs)
        self.page_size = min(page_size, MAX_PAGE_SIZE)
        self.retry_attempts = retry_attempts
        self.retry_backoff_min = retry_backoff_min
        self.retry_backoff_max = retry_backoff_max

    @classmethod
    def from_config(
        cls, config: SyncSettings, transport: httpx.AsyncBaseTransport | None = None
    ) -> "LegacyPlatformClient":
        """Create a client from loaded settings."""
        return cls(
            base_url=config.legacy.url,
            token=config.legacy.token,
            verify_ssl=config.legacy.verify_ssl,
            timeout=config.legacy.timeout,
            page_size=config.performance.page_size,
            rate_limit=config.performance.rate_limit,
            retry_attempts=config.performance.retry_attempts,
            retry_backoff_min=config.performance.retry_backoff_min,
            retry_backoff_max=config.performance.retry_backoff_max,
            max_connections=config.performance.http_max_connections,
            max_keepalive_connections=config.performance.http_max_keepalive_connections,
            log_payloads=config.logging.log_payloads,
            max_payload_size=config.logging.max_payload_size,
            transport=transport,
        )

    async def _call(self, method: str, endpoint: str, **kwargs: Any) -> dict[str, Any]:
        retrying = build_retrying(
            max_attempts=self.retry_attempts,
            min_wait=self.retry_backoff_min,
            max_wait=self.retry_backoff_max,
        )
        async for attempt in retrying:
            with attempt:
                return await self.request(method, endpoint, **kwargs)
        raise AssertionError("unreachable: retrying re-raises on exhaustion")

    @staticmethod
    def _object_endpoint(legacy_type: str, record_id: str | None = None) -> str:
        endpoint = f"obj/{entity_path(legacy_type)}"
        return f"{endpoint}/{record_id}" if record_id else endpoint

    async def list_page(
        self,
        legacy_type: str,
        constraints: list[Constraint] | None = None,
        cursor: int = 0,
        limit: int | None = None,
    ) -> tuple[list[dict[str, Any]], int | None]:
        """Fetch one page of records.

        Args:
            legacy_type: Legacy type name (e.g. ``"Sub Client"``)
            constraints: Optional search constraints
            cursor: Offset of the first record
            limit: Page size (defaults to the client's page size)

        Returns:
            Tuple of (records, next cursor). The cursor is None once the
            platform returns a short page or reports nothing remaining.
        """
        limit = min(limit or self.page_size, MAX_PAGE_SIZE)
        params: dict[str, Any] = {"cursor": cursor, "limit": limit}
        encoded = build_constraints(constraints)
        if encoded:
            params["constraints"] = encoded

        data = await self._call("GET", self._object_endpoint(legacy_type), params=params)

        response = data.get("response")
        if not isinstance(response, dict) or not isinstance(response.get("results", []), list):
            raise APIError(f"Malformed list response for {legacy_type}: {data!r:.200}")

        results: list[dict[str, Any]] = response.get("results") or []
        remaining = response.get("remaining")

        exhausted = len(results) < limit or (remaining is not None and remaining <= 0)
        next_cursor = None if exhausted else cursor + len(results)

        logger.debug(
            "page_fetched",
            legacy_type=legacy_type,
            cursor=cursor,
            count=len(results),
            remaining=remaining,
        )
        return results, next_cursor

    async def list_all(
        self,
        legacy_type: str,
        constraints: list[Constraint] | None = None,
    ) -> AsyncIterator[list[dict[str, Any]]]:
        """Yield successive pages until the platform reports the end."""
        cursor: int | None = 0
        while cursor is not None:
            records, cursor = await self.list_page(legacy_type, constraints, cursor)
            if records:
                yield records

    async def get_by_id(self, legacy_type: str, record_id: str) -> dict[str, Any]:
        """Fetch one record.

        Raises:
            NotFoundError: If the record does not exist
        """
        data = await self._call("GET", self._object_endpoint(legacy_type, record_id))
        return data.get("response") or {}

    async def create(self, legacy_type: str, fields: dict[str, Any]) -> str:
        """Create a record and return its new legacy id."""
        data = await self._call("POST", self._object_endpoint(legacy_type), json_data=fields)
        record_id = data.get("id")
        if not record_id:
            raise APIError(f"Create {legacy_type} returned no id: {data!r:.200}")
        logger.info("legacy_record_created", legacy_type=legacy_type, legacy_id=record_id)
        return record_id

    async def update(self, legacy_type: str, record_id: str, fields: dict[str, Any]) -> None:
        """Modify fields on an existing record."""
        await self._call(
            "PATCH", self._object_endpoint(legacy_type, record_id), json_data=fields
        )
        logger.info("legacy_record_updated", legacy_type=legacy_type, legacy_id=record_id)

    async def delete_record(self, legacy_type: str, record_id: str) -> None:
        """Hard-delete a record on the legacy platform."""
        await self._call("DELETE", self._object_endpoint(legacy_type, record_id))
        logger.info("legacy_record_deleted", legacy_type=legacy_type, legacy_id=record_id)

    async def invoke_workflow(
        self, name: str, payload: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Invoke a named backend workflow and return its response object."""
        data = await self._call("POST", f"wf/{name}", json_data=payload or {})
        logger.info("workflow_invoked", workflow=name)
        response = data.get("response")
        return response if isinstance(response, dict) else data

    async def verify_access(self, legacy_type: str = "User") -> None:
        """Preflight: read one record so an unusable token fails before any write.

        Raises:
            AuthenticationError: If the token is rejected
            AuthorizationError: If the token cannot read ``legacy_type``
        """
        await self.list_page(legacy_type, limit=1)
        logger.info("legacy_access_verified", base_url=self.base_url)
