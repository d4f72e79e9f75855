"""Field mapping registry - single source of truth for legacy entity types.

For every entity type this module declares where its records live on the
legacy platform, which legacy field feeds each internal attribute (including
known aliases and casing quirks), how the value is normalized, and which
attributes are foreign keys into other entity types. Migrators, the
orchestrator and the CLI all read from here instead of hardcoding names.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from legacy_sync import normalize as n
from legacy_sync.client.exceptions import ConfigurationError
from legacy_sync.records import (
    CalendarEventRecord,
    ClientRecord,
    CompanyRecord,
    OpsContactRecord,
    ProjectRecord,
    SubClientRecord,
    TaskRecord,
    TaskTypeRecord,
    UserRecord,
)


@dataclass(frozen=True)
class FieldSpec:
    """Where an internal attribute comes from on a legacy record.

    ``legacy_name`` and ``aliases`` may be dotted paths into nested objects.
    The first candidate holding a value wins; ``normalize`` is then applied
    and ``default`` fills in when the result is still None.
    """

    legacy_name: str
    aliases: tuple[str, ...] = ()
    normalize: Callable[[Any], Any] | None = None
    default: Any = None
    blank_as_missing: bool = False  # treat "" like an absent value

    @property
    def candidates(self) -> tuple[str, ...]:
        return (self.legacy_name, *self.aliases)


@dataclass(frozen=True)
class ReferenceSpec:
    """A foreign-key attribute holding legacy id(s) of another entity type."""

    legacy_name: str
    entity_type: str
    required: bool = False
    many: bool = False  # unresolved ids are dropped from the list


@dataclass(frozen=True)
class EntityTypeInfo:
    """Metadata for a migrated entity type."""

    name: str
    legacy_type: str  # type name on the legacy platform
    table: str
    report_key: str  # counter name in the run report
    migration_order: int  # tie-breaker between independent types
    record_model: type[BaseModel]
    depends_on: tuple[str, ...] = ()
    fields: Mapping[str, FieldSpec] = field(default_factory=dict)
    references: Mapping[str, ReferenceSpec] = field(default_factory=dict)
    id_fields: tuple[str, ...] = ("_id",)
    deleted_field: str | None = "deletedAt"
    incremental: bool = True  # False: always fetched in full

    @property
    def api_path(self) -> str:
        return n.entity_path(self.legacy_type)


def _date(legacy_name: str) -> FieldSpec:
    return FieldSpec(legacy_name, normalize=n.parse_legacy_date)


def _flexible_date(legacy_name: str) -> FieldSpec:
    return FieldSpec(legacy_name, normalize=n.parse_flexible_date)


def _flag(legacy_name: str) -> FieldSpec:
    return FieldSpec(legacy_name, default=False)


ENTITY_REGISTRY: dict[str, EntityTypeInfo] = {
    "companies": EntityTypeInfo(
        name="companies",
        legacy_type="Company",
        table="companies",
        report_key="companies",
        migration_order=10,
        record_model=CompanyRecord,
        fields={
            "name": FieldSpec("companyName", default="Unknown Company"),
            "external_id": FieldSpec("companyId"),
            "description": FieldSpec("companyDescription"),
            "phone": FieldSpec("phone", normalize=n.normalize_phone),
            "email": FieldSpec("officeEmail"),
            "website": FieldSpec("website"),
            "address": FieldSpec("location", normalize=n.address_text),
            "latitude": FieldSpec("location", normalize=n.address_lat),
            "longitude": FieldSpec("location", normalize=n.address_lng),
            "open_hour": FieldSpec("openHour"),
            "close_hour": FieldSpec("closeHour"),
            "logo_url": FieldSpec("logo", aliases=("logoURL",), normalize=n.image_url),
            "default_project_color": FieldSpec("defaultProjectColor", default="#9CA3AF"),
            "industries": FieldSpec("industry", normalize=n.industries),
            "company_size": FieldSpec("companySize"),
            "company_age": FieldSpec("companyAge"),
            "referral_method": FieldSpec("referralMethod"),
            "max_seats": FieldSpec("maxSeats", default=10),
            "subscription_status": FieldSpec(
                "subscriptionStatus", normalize=n.normalize_subscription_status
            ),
            "subscription_plan": FieldSpec(
                "subscriptionPlan", normalize=n.normalize_subscription_plan
            ),
            "subscription_period": FieldSpec(
                "subscriptionPeriod", normalize=n.normalize_subscription_period
            ),
            "subscription_end": _flexible_date("subscriptionEnd"),
            "trial_start_date": _flexible_date("trialStartDate"),
            "trial_end_date": _flexible_date("trialEndDate"),
            "seat_grace_start_date": _flexible_date("seatGraceStartDate"),
            "has_priority_support": _flag("hasPrioritySupport"),
            "data_setup_purchased": _flag("dataSetupPurchased"),
            "data_setup_completed": _flag("dataSetupCompleted"),
            "data_setup_scheduled": _flexible_date("dataSetupScheduledDate"),
            "stripe_customer_id": FieldSpec("stripeCustomerId"),
            # Users are migrated after companies; these are resolved by the user pass
            "admin_legacy_ids": FieldSpec("admin", normalize=n.resolve_references),
            "seated_employee_legacy_ids": FieldSpec(
                "seatedEmployees", normalize=n.resolve_references
            ),
            "account_holder_legacy_id": FieldSpec("accountHolder", normalize=n.resolve_reference),
            "task_type_legacy_ids": FieldSpec("taskTypes", normalize=n.resolve_references),
        },
    ),
    "users": EntityTypeInfo(
        name="users",
        legacy_type="User",
        table="users",
        report_key="users",
        migration_order=20,
        record_model=UserRecord,
        depends_on=("companies",),
        fields={
            "first_name": FieldSpec("nameFirst", default=""),
            "last_name": FieldSpec("nameLast", default=""),
            "email": FieldSpec(
                "authentication.email.email", aliases=("email",), blank_as_missing=True
            ),
            "phone": FieldSpec("phone", normalize=n.normalize_phone),
            "home_address": FieldSpec("homeAddress", normalize=n.address_text),
            "profile_image_url": FieldSpec(
                "avatar", aliases=("profileImageURL",), normalize=n.image_url
            ),
            "user_color": FieldSpec("userColor"),
            "role": FieldSpec("employeeType", normalize=n.employee_type_to_role),
            "user_type": FieldSpec("userType"),
            "has_completed_onboarding": _flag("hasCompletedAppOnboarding"),
            "has_completed_tutorial": _flag("hasCompletedAppTutorial"),
            "dev_permission": _flag("devPermission"),
            "stripe_customer_id": FieldSpec("stripeCustomerId"),
            "device_token": FieldSpec("deviceToken"),
        },
        references={
            "company_id": ReferenceSpec("company", "companies"),
        },
    ),
    "clients": EntityTypeInfo(
        name="clients",
        legacy_type="Client",
        table="clients",
        report_key="clients",
        migration_order=30,
        record_model=ClientRecord,
        depends_on=("companies",),
        fields={
            "name": FieldSpec("name", default="Unknown Client"),
            "email": FieldSpec("emailAddress"),
            "phone_number": FieldSpec("phoneNumber", normalize=n.normalize_phone),
            "notes": FieldSpec("notes"),
            "address": FieldSpec("address", normalize=n.address_text),
            "latitude": FieldSpec("address", normalize=n.address_lat),
            "longitude": FieldSpec("address", normalize=n.address_lng),
            "profile_image_url": FieldSpec("avatar", normalize=n.image_url),
        },
        references={
            "company_id": ReferenceSpec("parentCompany", "companies", required=True),
        },
    ),
    "sub_clients": EntityTypeInfo(
        name="sub_clients",
        legacy_type="Sub Client",
        table="sub_clients",
        report_key="subClients",
        migration_order=40,
        record_model=SubClientRecord,
        depends_on=("clients",),
        fields={
            "name": FieldSpec("name", default="Unknown"),
            "title": FieldSpec("title"),
            "email": FieldSpec("emailAddress"),
            "phone_number": FieldSpec("phoneNumber", normalize=n.normalize_phone),
            "address": FieldSpec("address", normalize=n.address_text),
        },
        references={
            "client_id": ReferenceSpec("parentClient", "clients", required=True),
        },
    ),
    "task_types": EntityTypeInfo(
        name="task_types",
        legacy_type="TaskType",
        table="task_types",
        report_key="taskTypes",
        migration_order=50,
        record_model=TaskTypeRecord,
        depends_on=("companies",),
        id_fields=("_id", "id"),
        fields={
            "display": FieldSpec(
                "display", aliases=("Display",), default="Untitled", blank_as_missing=True
            ),
            "color": FieldSpec("color", normalize=n.normalize_color),
            "is_default": _flag("isDefault"),
        },
    ),
    "projects": EntityTypeInfo(
        name="projects",
        legacy_type="Project",
        table="projects",
        report_key="projects",
        migration_order=60,
        record_model=ProjectRecord,
        depends_on=("companies", "clients"),
        fields={
            "title": FieldSpec("projectName", default="Untitled Project", blank_as_missing=True),
            "address": FieldSpec("address", normalize=n.address_text),
            "latitude": FieldSpec("address", normalize=n.address_lat),
            "longitude": FieldSpec("address", normalize=n.address_lng),
            "status": FieldSpec("status", normalize=n.job_status_to_enum),
            "notes": FieldSpec("teamNotes"),
            "description": FieldSpec("description"),
            "all_day": _flag("allDay"),
            "project_images": FieldSpec("projectImages", normalize=n.as_list),
            "start_date": _date("startDate"),
            "end_date": _date("completion"),
            "duration": FieldSpec("duration"),
        },
        references={
            "company_id": ReferenceSpec("company", "companies", required=True),
            "client_id": ReferenceSpec("client", "clients"),
        },
    ),
    "calendar_events": EntityTypeInfo(
        name="calendar_events",
        legacy_type="calendarevent",
        table="calendar_events",
        report_key="calendarEvents",
        migration_order=70,
        record_model=CalendarEventRecord,
        depends_on=("companies", "projects", "users"),
        fields={
            "title": FieldSpec("title", normalize=n.stripped_text, default="Untitled Event"),
            "color": FieldSpec("color", normalize=n.normalize_color),
            "start_date": _date("startDate"),
            "end_date": _date("endDate"),
            "duration": FieldSpec("duration", normalize=n.normalize_duration),
        },
        references={
            # lowercase "Id" suffixes are the legacy spelling
            "company_id": ReferenceSpec("companyId", "companies", required=True),
            "project_id": ReferenceSpec("projectId", "projects"),
            "team_member_ids": ReferenceSpec("teamMembers", "users", many=True),
        },
    ),
    "tasks": EntityTypeInfo(
        name="tasks",
        legacy_type="Task",
        table="project_tasks",
        report_key="projectTasks",
        migration_order=80,
        record_model=TaskRecord,
        depends_on=("companies", "projects", "task_types", "calendar_events", "users"),
        fields={
            "status": FieldSpec(
                "status",
                normalize=n.normalize_task_status,
                default=n.DEFAULT_TASK_STATUS,
                blank_as_missing=True,
            ),
            "task_color": FieldSpec("taskColor", normalize=n.normalize_color),
            "task_notes": FieldSpec("taskNotes"),
            "display_order": FieldSpec("taskIndex", default=0),
        },
        references={
            # company falls back to the project's company when unresolved
            "company_id": ReferenceSpec("companyId", "companies"),
            "project_id": ReferenceSpec("projectId", "projects", required=True),
            "task_type_id": ReferenceSpec("type", "task_types"),
            "calendar_event_id": ReferenceSpec("calendarEventId", "calendar_events"),
            "team_member_ids": ReferenceSpec("teamMembers", "users", many=True),
        },
    ),
    "ops_contacts": EntityTypeInfo(
        name="ops_contacts",
        legacy_type="opscontact",
        table="ops_contacts",
        report_key="opsContacts",
        migration_order=90,
        record_model=OpsContactRecord,
        deleted_field=None,
        incremental=False,
        fields={
            "name": FieldSpec("name", default="Unknown"),
            "email": FieldSpec("email", default=""),
            "phone": FieldSpec("phone", normalize=n.normalize_phone),
            "display": FieldSpec("display"),
            "role": FieldSpec("role", default="General Support"),
        },
    ),
}


def get_info(entity_type: str) -> EntityTypeInfo:
    """Get full metadata for an entity type.

    Raises:
        KeyError: If entity type is not in registry
    """
    return ENTITY_REGISTRY[entity_type]


def get_migration_order(registry: Mapping[str, EntityTypeInfo] | None = None) -> list[str]:
    """Get entity types in dependency order.

    Types are topologically sorted on ``depends_on``; among types whose
    dependencies are all satisfied the lowest ``migration_order`` goes first.

    Args:
        registry: Registry to order (defaults to ENTITY_REGISTRY)

    Returns:
        List of entity type names, dependencies first

    Raises:
        ConfigurationError: If a dependency is unknown or the graph has a cycle
    """
    registry = ENTITY_REGISTRY if registry is None else registry

    for info in registry.values():
        for dependency in info.depends_on:
            if dependency not in registry:
                raise ConfigurationError(f"{info.name} depends on unknown type '{dependency}'")
        for attr, ref in info.references.items():
            if ref.entity_type not in info.depends_on:
                raise ConfigurationError(
                    f"{info.name}.{attr} references {ref.entity_type} "
                    f"which is not declared in depends_on"
                )

    remaining = {name: set(info.depends_on) for name, info in registry.items()}
    ordered: list[str] = []

    while remaining:
        ready = [name for name, deps in remaining.items() if not deps]
        if not ready:
            raise ConfigurationError(
                f"Circular dependency between entity types: {sorted(remaining)}"
            )
        chosen = min(ready, key=lambda name: registry[name].migration_order)
        ordered.append(chosen)
        del remaining[chosen]
        for deps in remaining.values():
            deps.discard(chosen)

    return ordered


@dataclass(frozen=True)
class CrossReference:
    """A pipeline column that may still hold a legacy id of ``entity_type``."""

    table: str
    column: str
    entity_type: str


# Pipeline records created before the migration stored legacy ids directly
CROSS_REFERENCES: tuple[CrossReference, ...] = (
    CrossReference("opportunities", "company_id", "companies"),
    CrossReference("opportunities", "client_id", "clients"),
    CrossReference("opportunities", "project_id", "projects"),
    CrossReference("estimates", "client_id", "clients"),
    CrossReference("estimates", "project_id", "projects"),
    CrossReference("invoices", "client_id", "clients"),
    CrossReference("invoices", "project_id", "projects"),
    CrossReference("site_visits", "client_id", "clients"),
    CrossReference("site_visits", "project_id", "projects"),
    CrossReference("line_items", "task_type_id", "task_types"),
    CrossReference("task_templates", "task_type_id", "task_types"),
    CrossReference("products", "task_type_id", "task_types"),
)
