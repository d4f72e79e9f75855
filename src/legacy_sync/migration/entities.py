"""
SQLAlchemy models for the shared relational schema.

Entity tables are written by the migrators; pipeline tables belong to other
parts of the product and are only touched by the cross-reference updater.
In production the schema already exists; ``init_database`` creates it for
local runs and tests.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from legacy_sync.migration.models import Base


class EntityMixin:
    """Columns common to every migrated entity table."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    legacy_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True, comment="Identifier on the legacy platform"
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class Company(EntityMixin, Base):
    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(String(50))
    email: Mapped[str | None] = mapped_column(String(255))
    website: Mapped[str | None] = mapped_column(String(255))
    address: Mapped[str | None] = mapped_column(Text)
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    open_hour: Mapped[str | None] = mapped_column(String(20))
    close_hour: Mapped[str | None] = mapped_column(String(20))
    logo_url: Mapped[str | None] = mapped_column(Text)
    default_project_color: Mapped[str] = mapped_column(String(20), nullable=False)
    industries: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    company_size: Mapped[str | None] = mapped_column(String(50))
    company_age: Mapped[str | None] = mapped_column(String(50))
    referral_method: Mapped[str | None] = mapped_column(String(100))
    max_seats: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    subscription_status: Mapped[str | None] = mapped_column(String(20))
    subscription_plan: Mapped[str | None] = mapped_column(String(20))
    subscription_period: Mapped[str | None] = mapped_column(String(20))
    subscription_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    trial_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    trial_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    seat_grace_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    has_priority_support: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    data_setup_purchased: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    data_setup_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    data_setup_scheduled: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255))
    admin_legacy_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    seated_employee_legacy_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    account_holder_legacy_id: Mapped[str | None] = mapped_column(String(255))
    task_type_legacy_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    admin_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    seated_employee_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    account_holder_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", use_alter=True, name="fk_companies_account_holder")
    )


class User(EntityMixin, Base):
    __tablename__ = "users"

    company_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("companies.id"), index=True
    )
    first_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), index=True)
    phone: Mapped[str | None] = mapped_column(String(50))
    home_address: Mapped[str | None] = mapped_column(Text)
    profile_image_url: Mapped[str | None] = mapped_column(Text)
    user_color: Mapped[str | None] = mapped_column(String(20))
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="fieldCrew")
    user_type: Mapped[str | None] = mapped_column(String(50))
    is_company_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_completed_onboarding: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_completed_tutorial: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    dev_permission: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255))
    device_token: Mapped[str | None] = mapped_column(Text)


class Client(EntityMixin, Base):
    __tablename__ = "clients"

    company_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("companies.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    phone_number: Mapped[str | None] = mapped_column(String(50))
    notes: Mapped[str | None] = mapped_column(Text)
    address: Mapped[str | None] = mapped_column(Text)
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    profile_image_url: Mapped[str | None] = mapped_column(Text)


class SubClient(EntityMixin, Base):
    __tablename__ = "sub_clients"

    client_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("clients.id"), nullable=False, index=True
    )
    company_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("companies.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(255))
    phone_number: Mapped[str | None] = mapped_column(String(50))
    address: Mapped[str | None] = mapped_column(Text)


class TaskType(EntityMixin, Base):
    __tablename__ = "task_types"

    company_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("companies.id"), nullable=False, index=True
    )
    display: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[str] = mapped_column(String(20), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Project(EntityMixin, Base):
    __tablename__ = "projects"

    company_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("companies.id"), nullable=False, index=True
    )
    client_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("clients.id"), index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(Text)
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="rfq")
    notes: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    all_day: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    project_images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    duration: Mapped[int | None] = mapped_column(Integer)
    team_member_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)


class CalendarEvent(EntityMixin, Base):
    __tablename__ = "calendar_events"

    company_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("companies.id"), nullable=False, index=True
    )
    project_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("projects.id"), index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[str] = mapped_column(String(20), nullable=False)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    team_member_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)


class ProjectTask(EntityMixin, Base):
    __tablename__ = "project_tasks"

    company_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("companies.id"), nullable=False, index=True
    )
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id"), nullable=False, index=True
    )
    task_type_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("task_types.id"))
    calendar_event_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("calendar_events.id")
    )
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="Booked")
    task_color: Mapped[str] = mapped_column(String(20), nullable=False)
    task_notes: Mapped[str | None] = mapped_column(Text)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    team_member_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)


class OpsContact(EntityMixin, Base):
    __tablename__ = "ops_contacts"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    phone: Mapped[str | None] = mapped_column(String(50))
    display: Mapped[str | None] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(100), nullable=False, default="General Support")


# Pipeline tables. Their reference columns predate the migration and may
# still hold legacy identifiers, so they are plain strings without FKs.


class PipelineMixin:
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class Opportunity(PipelineMixin, Base):
    __tablename__ = "opportunities"

    company_id: Mapped[str | None] = mapped_column(String(255))
    client_id: Mapped[str | None] = mapped_column(String(255))
    project_id: Mapped[str | None] = mapped_column(String(255))
    title: Mapped[str | None] = mapped_column(String(255))
    stage: Mapped[str | None] = mapped_column(String(50))


class Estimate(PipelineMixin, Base):
    __tablename__ = "estimates"

    client_id: Mapped[str | None] = mapped_column(String(255))
    project_id: Mapped[str | None] = mapped_column(String(255))
    estimate_number: Mapped[str | None] = mapped_column(String(50))
    total: Mapped[float | None] = mapped_column(Numeric(12, 2))


class Invoice(PipelineMixin, Base):
    __tablename__ = "invoices"

    client_id: Mapped[str | None] = mapped_column(String(255))
    project_id: Mapped[str | None] = mapped_column(String(255))
    invoice_number: Mapped[str | None] = mapped_column(String(50))
    total: Mapped[float | None] = mapped_column(Numeric(12, 2))


class SiteVisit(PipelineMixin, Base):
    __tablename__ = "site_visits"

    client_id: Mapped[str | None] = mapped_column(String(255))
    project_id: Mapped[str | None] = mapped_column(String(255))
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class LineItem(PipelineMixin, Base):
    __tablename__ = "line_items"

    task_type_id: Mapped[str | None] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)


class TaskTemplate(PipelineMixin, Base):
    __tablename__ = "task_templates"

    task_type_id: Mapped[str | None] = mapped_column(String(255))
    title: Mapped[str | None] = mapped_column(String(255))


class Product(PipelineMixin, Base):
    __tablename__ = "products"

    task_type_id: Mapped[str | None] = mapped_column(String(255))
    name: Mapped[str | None] = mapped_column(String(255))


# Entity table name -> ORM model
ENTITY_MODELS: dict[str, type[Base]] = {
    model.__tablename__: model
    for model in (
        Company,
        User,
        Client,
        SubClient,
        TaskType,
        Project,
        CalendarEvent,
        ProjectTask,
        OpsContact,
    )
}

PIPELINE_MODELS: dict[str, type[Base]] = {
    model.__tablename__: model
    for model in (Opportunity, Estimate, Invoice, SiteVisit, LineItem, TaskTemplate, Product)
}
