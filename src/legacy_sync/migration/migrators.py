"""
Entity migrators.

This module provides a base migrator that implements the per-record
algorithm (fetch, map, resolve, upsert) for any registered entity type,
and the subclasses that add derived foreign keys and post-pass steps for
the types that need them.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import select, update

from legacy_sync.client.constraints import Constraint, modified_since, not_deleted
from legacy_sync.client.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConstraintViolationError,
    DependencyError,
    LegacySyncError,
    RecordError,
    StateError,
)
from legacy_sync.client.legacy_client import LegacyPlatformClient
from legacy_sync.config import PerformanceConfig, SyncBehaviorConfig
from legacy_sync.migration.database import get_session, is_sqlite
from legacy_sync.migration.entities import (
    ENTITY_MODELS,
    Client,
    Company,
    Project,
    ProjectTask,
    User,
)
from legacy_sync.migration.resolver import IdentifierResolver
from legacy_sync.migration.transformer import RecordTransformer, TransformedRecord
from legacy_sync.resources import EntityTypeInfo, get_info
from legacy_sync.utils.logging import get_logger, log_entity_progress

logger = get_logger(__name__)

# Errors that make every further write unsafe; they abort the run
SYSTEMIC_ERRORS = (AuthenticationError, AuthorizationError, StateError)


@dataclass
class MigratorResult:
    """Outcome of one entity type's pass."""

    entity_type: str
    migrated_count: int = 0
    errors: list[str] = field(default_factory=list)


class EntityMigrator:
    """Migrates the records of one entity type.

    Records within a page are processed concurrently, bounded by
    ``max_concurrent`` (a pool of one on SQLite, which serializes writers).
    A record that fails is reported and skipped; only systemic errors
    escape ``migrate``.
    """

    def __init__(
        self,
        info: EntityTypeInfo,
        client: LegacyPlatformClient,
        resolver: IdentifierResolver,
        performance_config: PerformanceConfig,
        sync_config: SyncBehaviorConfig,
        progress_callback: Callable[[str, int, int], None] | None = None,
    ):
        """Initialize entity migrator.

        Args:
            info: Registry entry of the entity type
            client: Legacy platform client
            resolver: Identifier resolver
            performance_config: Performance configuration
            sync_config: Sync behaviour configuration
            progress_callback: Optional callback called with
                (entity_type, migrated, failed) after each record
        """
        self.info = info
        self.client = client
        self.resolver = resolver
        self.sync_config = sync_config
        self.progress_callback = progress_callback
        self.database_url = resolver.database_url
        self.model = ENTITY_MODELS[info.table]
        self.transformer = RecordTransformer(info, resolver)
        self.max_concurrent = (
            1 if is_sqlite(self.database_url) else max(1, performance_config.max_concurrent)
        )

    def build_constraints(self, since: datetime | None) -> list[Constraint]:
        """Constraints for this pass's list requests."""
        constraints: list[Constraint] = []
        if since is not None and self.info.incremental:
            constraints.append(modified_since(since, self.sync_config.modified_field))
        if not self.sync_config.include_soft_deleted and self.info.deleted_field:
            constraints.append(not_deleted(self.info.deleted_field))
        return constraints

    async def migrate(self, mode: str, since: datetime | None = None) -> MigratorResult:
        """
        Run this entity type's pass.

        Args:
            mode: ``full`` or ``incremental``
            since: Lower bound on modification time (incremental only)

        Returns:
            MigratorResult with the migrated count and per-record errors

        Raises:
            AuthenticationError: If the platform rejects the token
            AuthorizationError: If the token cannot read this type
            StateError: If storage is unavailable
        """
        result = MigratorResult(entity_type=self.info.name)
        constraints = self.build_constraints(since if mode == "incremental" else None)
        semaphore = asyncio.Semaphore(self.max_concurrent)
        fetched = 0

        logger.info(
            "entity_pass_started",
            entity_type=self.info.name,
            mode=mode,
            since=since.isoformat() if since and mode == "incremental" else None,
        )

        await asyncio.to_thread(self.before_pass)

        try:
            async for page in self.client.list_all(self.info.legacy_type, constraints):
                fetched += len(page)
                outcomes = await asyncio.gather(
                    *(self._process(record, semaphore, result) for record in page),
                    return_exceptions=True,
                )
                for outcome in outcomes:
                    if isinstance(outcome, BaseException):
                        raise outcome
        except SYSTEMIC_ERRORS:
            raise
        except LegacySyncError as e:
            # Retries are spent; the rest of this type is skipped, not the run
            result.errors.append(f"{self.info.name}/*: fetch failed: {e}")
            logger.error("entity_fetch_failed", entity_type=self.info.name, error=str(e))

        await asyncio.to_thread(self.after_pass)

        log_entity_progress(
            logger,
            self.info.name,
            migrated=result.migrated_count,
            failed=len(result.errors),
            fetched=fetched,
        )
        return result

    async def _process(
        self, record: dict[str, Any], semaphore: asyncio.Semaphore, result: MigratorResult
    ) -> None:
        async with semaphore:
            try:
                await asyncio.to_thread(self.migrate_record, record)
            except SYSTEMIC_ERRORS:
                raise
            except RecordError as e:
                result.errors.append(str(e))
                logger.warning(
                    "record_failed",
                    entity_type=self.info.name,
                    legacy_id=e.legacy_id,
                    error=e.message,
                )
            except Exception as e:
                legacy_id = self.transformer.legacy_id_of(record)
                result.errors.append(f"{self.info.name}/{legacy_id or '?'}: {e}")
                logger.error(
                    "record_failed_unexpectedly",
                    entity_type=self.info.name,
                    legacy_id=legacy_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                result.migrated_count += 1

            if self.progress_callback:
                self.progress_callback(self.info.name, result.migrated_count, len(result.errors))

    def migrate_record(self, record: dict[str, Any]) -> str:
        """
        Map, resolve and upsert one legacy record.

        The entity row and the confirmation of its identifier mapping are
        written in one transaction.

        Returns:
            Internal UUID of the written record

        Raises:
            RecordError: If the record cannot be migrated
            StateError: If storage is unavailable
        """
        transformed = self.transformer.transform(record)
        self.derive(transformed)
        entity = self.transformer.validate(transformed)

        try:
            with get_session(self.database_url) as session:
                # Full-column upsert: every record attribute is written, absent ones as NULL
                session.merge(self.model(**entity.model_dump()))
                self.resolver.confirm(session, self.info.name, transformed.legacy_id)
        except ConstraintViolationError as e:
            raise RecordError(self.info.name, transformed.legacy_id, str(e)) from e

        return entity.id

    def derive(self, transformed: TransformedRecord) -> None:
        """Fill attributes computed from already-written rows (no-op by default)."""

    def before_pass(self) -> None:
        """Hook run before the first page is fetched."""

    def after_pass(self) -> None:
        """Hook run after the last record of the pass."""


class UserMigrator(EntityMigrator):
    """Users, plus the company fields that reference users."""

    def after_pass(self) -> None:
        """
        Resolve company admin, seat and account-holder references.

        Companies are written before users, so their user references are
        captured as legacy ids and resolved here. ``users.is_company_admin``
        follows the resolved admin lists.
        """
        with get_session(self.database_url) as session:
            companies = [
                (
                    company.id,
                    list(company.admin_legacy_ids or []),
                    list(company.seated_employee_legacy_ids or []),
                    company.account_holder_legacy_id,
                )
                for company in session.scalars(select(Company))
            ]

        wanted: set[str] = set()
        for _, admins, seated, holder in companies:
            wanted.update(admins, seated)
            if holder:
                wanted.add(holder)
        user_ids = self.resolver.lookup_many("users", wanted)

        def resolve(legacy_id: str | None) -> str | None:
            return user_ids.get(legacy_id) if legacy_id else None

        def resolve_all(legacy_ids: list[str]) -> list[str]:
            resolved = (resolve(legacy_id) for legacy_id in legacy_ids)
            return list(dict.fromkeys(user_id for user_id in resolved if user_id))

        admin_ids: set[str] = set()
        updated = 0
        with get_session(self.database_url) as session:
            for company_id, admins, seated, holder in companies:
                company = session.get(Company, company_id)
                values = {
                    "admin_ids": resolve_all(admins),
                    "seated_employee_ids": resolve_all(seated),
                    "account_holder_id": resolve(holder),
                }
                admin_ids.update(values["admin_ids"])
                if any(getattr(company, key) != value for key, value in values.items()):
                    for key, value in values.items():
                        setattr(company, key, value)
                    updated += 1

            session.execute(
                update(User).where(User.id.in_(admin_ids)).values(is_company_admin=True)
            )
            session.execute(
                update(User)
                .where(User.id.not_in(admin_ids), User.is_company_admin.is_(True))
                .values(is_company_admin=False)
            )

        logger.info("company_user_refs_resolved", companies=len(companies), updated=updated)


class SubClientMigrator(EntityMigrator):
    """Sub-clients inherit the company of their parent client."""

    def derive(self, transformed: TransformedRecord) -> None:
        client_id = transformed.values.get("client_id")
        with get_session(self.database_url) as session:
            client = session.get(Client, client_id) if client_id else None
            company_id = client.company_id if client else None
        if company_id is None:
            raise DependencyError(
                self.info.name, transformed.legacy_id, f"client {client_id} has no company"
            )
        transformed.values["company_id"] = company_id


class TaskTypeMigrator(EntityMigrator):
    """Task types carry no company field; ownership comes from the company's list."""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._owner_by_legacy_id: dict[str, str] = {}
        self._only_company_id: str | None = None

    def before_pass(self) -> None:
        with get_session(self.database_url) as session:
            rows = session.execute(select(Company.id, Company.task_type_legacy_ids)).all()

        self._owner_by_legacy_id = {}
        for company_id, legacy_ids in rows:
            for legacy_id in legacy_ids or []:
                self._owner_by_legacy_id.setdefault(legacy_id, company_id)
        self._only_company_id = rows[0][0] if len(rows) == 1 else None

    def derive(self, transformed: TransformedRecord) -> None:
        company_id = self._owner_by_legacy_id.get(transformed.legacy_id) or self._only_company_id
        if company_id is None:
            raise RecordError(self.info.name, transformed.legacy_id, "no company to assign to")
        transformed.values["company_id"] = company_id


class TaskMigrator(EntityMigrator):
    """Tasks, plus project team membership recomputed from them."""

    def derive(self, transformed: TransformedRecord) -> None:
        if transformed.values.get("company_id"):
            return
        project_id = transformed.values.get("project_id")
        with get_session(self.database_url) as session:
            project = session.get(Project, project_id) if project_id else None
            company_id = project.company_id if project else None
        if company_id is None:
            raise DependencyError(
                self.info.name, transformed.legacy_id, "company could not be determined"
            )
        transformed.values["company_id"] = company_id

    def after_pass(self) -> None:
        """Set each project's team to the union of its live tasks' team members."""
        members: dict[str, list[str]] = {}
        with get_session(self.database_url) as session:
            tasks = session.execute(
                select(ProjectTask.project_id, ProjectTask.team_member_ids)
                .where(ProjectTask.deleted_at.is_(None))
                .order_by(ProjectTask.project_id, ProjectTask.display_order, ProjectTask.id)
            ).all()
            for project_id, team in tasks:
                bucket = members.setdefault(project_id, [])
                bucket.extend(user_id for user_id in team or [] if user_id not in bucket)

            updated = 0
            for project in session.scalars(select(Project)):
                team = members.get(project.id, [])
                if list(project.team_member_ids or []) != team:
                    project.team_member_ids = team
                    updated += 1

        logger.info("project_teams_recomputed", projects_updated=updated)


_MIGRATORS: dict[str, type[EntityMigrator]] = {
    "users": UserMigrator,
    "sub_clients": SubClientMigrator,
    "task_types": TaskTypeMigrator,
    "tasks": TaskMigrator,
}


def create_migrator(
    entity_type: str,
    client: LegacyPlatformClient,
    resolver: IdentifierResolver,
    performance_config: PerformanceConfig,
    sync_config: SyncBehaviorConfig,
    progress_callback: Callable[[str, int, int], None] | None = None,
) -> EntityMigrator:
    """Create the migrator for an entity type.

    Raises:
        KeyError: If entity_type is not in the registry
    """
    migrator_class = _MIGRATORS.get(entity_type, EntityMigrator)
    return migrator_class(
        get_info(entity_type),
        client,
        resolver,
        performance_config,
        sync_config,
        progress_callback,
    )
