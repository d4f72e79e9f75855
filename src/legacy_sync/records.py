"""Typed internal entity records.

Every legacy record is converted into one of these models before it is
written. Validation failures surface as per-record errors.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class EntityRecord(BaseModel):
    """Fields shared by every migrated entity."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="Internal UUID, assigned once on first sight")
    legacy_id: str = Field(..., description="Identifier on the legacy platform")
    deleted_at: datetime | None = Field(default=None, description="Soft-delete timestamp")


class CompanyRecord(EntityRecord):
    name: str
    external_id: str | None = None
    description: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    open_hour: str | None = None
    close_hour: str | None = None
    logo_url: str | None = None
    default_project_color: str = "#9CA3AF"
    industries: list[str] = Field(default_factory=list)
    company_size: str | None = None
    company_age: str | None = None
    referral_method: str | None = None
    max_seats: int = 10
    subscription_status: str | None = None
    subscription_plan: str | None = None
    subscription_period: str | None = None
    subscription_end: datetime | None = None
    trial_start_date: datetime | None = None
    trial_end_date: datetime | None = None
    seat_grace_start_date: datetime | None = None
    has_priority_support: bool = False
    data_setup_purchased: bool = False
    data_setup_completed: bool = False
    data_setup_scheduled: datetime | None = None
    stripe_customer_id: str | None = None
    # Legacy user ids held until the user pass has run
    admin_legacy_ids: list[str] = Field(default_factory=list)
    seated_employee_legacy_ids: list[str] = Field(default_factory=list)
    account_holder_legacy_id: str | None = None
    task_type_legacy_ids: list[str] = Field(default_factory=list)
    # Resolved by the post-user pass
    admin_ids: list[str] = Field(default_factory=list)
    seated_employee_ids: list[str] = Field(default_factory=list)
    account_holder_id: str | None = None


class UserRecord(EntityRecord):
    company_id: str | None = None
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    phone: str | None = None
    home_address: str | None = None
    profile_image_url: str | None = None
    user_color: str | None = None
    role: str = "fieldCrew"
    user_type: str | None = None
    is_company_admin: bool = False
    has_completed_onboarding: bool = False
    has_completed_tutorial: bool = False
    dev_permission: bool = False
    stripe_customer_id: str | None = None
    device_token: str | None = None


class ClientRecord(EntityRecord):
    company_id: str
    name: str
    email: str | None = None
    phone_number: str | None = None
    notes: str | None = None
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    profile_image_url: str | None = None


class SubClientRecord(EntityRecord):
    client_id: str
    company_id: str
    name: str
    title: str | None = None
    email: str | None = None
    phone_number: str | None = None
    address: str | None = None


class TaskTypeRecord(EntityRecord):
    company_id: str
    display: str
    color: str
    is_default: bool = False


class ProjectRecord(EntityRecord):
    company_id: str
    client_id: str | None = None
    title: str
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    status: str = "rfq"
    notes: str | None = None
    description: str | None = None
    all_day: bool = False
    project_images: list[str] = Field(default_factory=list)
    start_date: datetime | None = None
    end_date: datetime | None = None
    duration: int | None = None
    # Recomputed from tasks after the task pass
    team_member_ids: list[str] = Field(default_factory=list)


class CalendarEventRecord(EntityRecord):
    company_id: str
    project_id: str | None = None
    title: str
    color: str
    start_date: datetime | None = None
    end_date: datetime | None = None
    duration: int = 1
    team_member_ids: list[str] = Field(default_factory=list)


class TaskRecord(EntityRecord):
    company_id: str
    project_id: str
    task_type_id: str | None = None
    calendar_event_id: str | None = None
    status: str = "Booked"
    task_color: str
    task_notes: str | None = None
    display_order: int = 0
    team_member_ids: list[str] = Field(default_factory=list)


class OpsContactRecord(EntityRecord):
    name: str
    email: str = ""
    phone: str | None = None
    display: str | None = None
    role: str = "General Support"
