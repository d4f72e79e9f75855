"""Value normalization for legacy platform records.

Pure functions that turn loosely-typed legacy values into the shapes the
relational store expects. Several rules encode historical inconsistencies of
the legacy platform and are intentionally exact (case-sensitive, no
trimming) where noted.
"""

import re
from datetime import UTC, datetime
from typing import Any

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_NUMERIC_PATTERN = re.compile(r"^\d+(\.\d+)?$")

DEFAULT_COLOR = "#417394"
DEFAULT_TASK_STATUS = "Booked"

# Legacy employee category -> internal role key
EMPLOYEE_TYPE_ROLES: dict[str, str] = {
    "Office Crew": "officeCrew",
    "Field Crew": "fieldCrew",
    "Admin": "admin",
}
DEFAULT_ROLE = "fieldCrew"

# Legacy job status -> internal project status key
JOB_STATUS_KEYS: dict[str, str] = {
    "RFQ": "rfq",
    "Estimated": "estimated",
    "Accepted": "accepted",
    "In Progress": "inProgress",
    "Completed": "completed",
    "Closed": "closed",
    "Archived": "archived",
}
DEFAULT_JOB_STATUS = "rfq"

SUBSCRIPTION_STATUSES = ("active", "trialing", "past_due", "canceled", "incomplete", "paused")
SUBSCRIPTION_PLANS = ("free", "starter", "professional", "enterprise")
SUBSCRIPTION_PERIODS = ("Monthly", "Annual")

# Epoch values above this are taken as milliseconds (year ~2286 in seconds)
_EPOCH_MILLIS_THRESHOLD = 10_000_000_000


def normalize_task_status(status: Any) -> Any:
    """Rewrite the legacy ``"Scheduled"`` task status to ``"Booked"``.

    Every other value, including case variants such as ``"scheduled"``, is
    returned unchanged.
    """
    if status == "Scheduled":
        return DEFAULT_TASK_STATUS
    return status


def employee_type_to_role(employee_type: Any) -> str:
    """Map a legacy employee category to an internal role key.

    Only the three exact legacy strings map to specific roles; anything
    else, including None and the empty string, is ``fieldCrew``.
    """
    if isinstance(employee_type, str):
        return EMPLOYEE_TYPE_ROLES.get(employee_type, DEFAULT_ROLE)
    return DEFAULT_ROLE


def job_status_to_enum(status: Any) -> str:
    """Map a legacy project status string to an internal status key (default ``rfq``)."""
    if isinstance(status, str):
        return JOB_STATUS_KEYS.get(status, DEFAULT_JOB_STATUS)
    return DEFAULT_JOB_STATUS


def entity_path(legacy_type: str) -> str:
    """Return the API path segment for a legacy type name.

    The name is lowercased; embedded spaces are kept (``"Sub Client"`` becomes
    ``"sub client"``).
    """
    return legacy_type.lower()


def is_uuid_shaped(value: Any) -> bool:
    """Return True if ``value`` is a string in canonical UUID form."""
    return isinstance(value, str) and bool(UUID_PATTERN.match(value))


def resolve_reference(ref: Any) -> str | None:
    """Extract a legacy id from a reference value.

    The legacy platform returns references either as a plain id string or
    as an object carrying ``unique_id``.
    """
    if ref is None:
        return None
    if isinstance(ref, str):
        return ref or None
    if isinstance(ref, dict):
        unique_id = ref.get("unique_id") or ref.get("_id")
        return unique_id if isinstance(unique_id, str) and unique_id else None
    return None


def resolve_references(refs: Any) -> list[str]:
    """Extract legacy ids from a list of references, dropping blanks."""
    if not refs:
        return []
    if not isinstance(refs, list):
        refs = [refs]
    resolved = (resolve_reference(ref) for ref in refs)
    return [ref for ref in resolved if ref]


def parse_legacy_date(value: Any) -> datetime | None:
    """Parse a legacy date value into an aware UTC datetime.

    Accepts ISO-8601 strings (with ``Z`` or an offset) and epoch numbers;
    numbers large enough to be milliseconds are treated as such.

    Raises:
        ValueError: If the value is present but not a recognizable date
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, bool):
        raise ValueError(f"not a date: {value!r}")
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= _EPOCH_MILLIS_THRESHOLD else value
        return datetime.fromtimestamp(seconds, tz=UTC)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValueError(f"not a date: {value!r}") from e
        return parsed.astimezone(UTC) if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    raise ValueError(f"not a date: {value!r}")


def parse_flexible_date(value: Any) -> datetime | None:
    """Parse a date that may be UNIX seconds (number or numeric string) or ISO text.

    Subscription and trial dates copied from the billing provider use this form.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=UTC)
    if isinstance(value, str) and _NUMERIC_PATTERN.match(value):
        return datetime.fromtimestamp(float(value), tz=UTC)
    return parse_legacy_date(value)


def normalize_phone(value: Any) -> str | None:
    """Phone numbers arrive as text or as numbers; numbers are rendered as integers."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, (int, float)):
        return str(round(value))
    return None


def normalize_color(value: Any, default: str = DEFAULT_COLOR) -> str:
    """Return a ``#``-prefixed colour, falling back to ``default``."""
    if not isinstance(value, str) or not value:
        return default
    return value if value.startswith("#") else f"#{value}"


def normalize_duration(value: Any) -> int:
    """Round a duration in days, with a minimum of one day."""
    if value is None or isinstance(value, bool):
        return 1
    try:
        return max(1, round(float(value)))
    except (TypeError, ValueError):
        return 1


def normalize_subscription_status(value: Any) -> str | None:
    """Lowercase a subscription status; unknown values become None."""
    if not isinstance(value, str) or not value:
        return None
    lowered = value.lower().strip()
    return lowered if lowered in SUBSCRIPTION_STATUSES else None


def normalize_subscription_plan(value: Any) -> str | None:
    """Lowercase a subscription plan; unknown values become None."""
    if not isinstance(value, str) or not value:
        return None
    lowered = value.lower().strip()
    return lowered if lowered in SUBSCRIPTION_PLANS else None


def normalize_subscription_period(value: Any) -> str | None:
    """Keep only the exact ``Monthly`` and ``Annual`` periods."""
    return value if value in SUBSCRIPTION_PERIODS else None


def address_text(value: Any) -> str | None:
    """Formatted address of a legacy geographic address object."""
    if isinstance(value, dict):
        return value.get("address") or None
    if isinstance(value, str):
        return value or None
    return None


def address_lat(value: Any) -> float | None:
    if isinstance(value, dict) and value.get("lat") is not None:
        return float(value["lat"])
    return None


def address_lng(value: Any) -> float | None:
    if isinstance(value, dict) and value.get("lng") is not None:
        return float(value["lng"])
    return None


def image_url(value: Any) -> str | None:
    """Image fields are either a URL string or an object with ``url``.

    Protocol-relative URLs (``//cdn...``) get an ``https:`` scheme.
    """
    url = value.get("url") if isinstance(value, dict) else value
    if not isinstance(url, str) or not url:
        return None
    return f"https:{url}" if url.startswith("//") else url


def as_list(value: Any) -> list[Any]:
    """Coerce an optional list field to a list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def industries(value: Any) -> list[str]:
    """The legacy company stores a single industry; internally it is a list."""
    if isinstance(value, list):
        return [str(item) for item in value if item]
    return [str(value)] if value else []


def stripped_text(value: Any) -> str | None:
    """Strip whitespace from text; blank text becomes None."""
    if not isinstance(value, str):
        return None
    return value.strip() or None
