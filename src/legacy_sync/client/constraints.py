"""Search constraints for the legacy platform data API.

List requests accept a JSON array of ``{key, constraint_type, value?}``
objects. The constraint type strings below are the platform's wire values.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

MODIFIED_DATE_FIELD = "Modified Date"
DELETED_AT_FIELD = "deletedAt"


class ConstraintType(str, Enum):
    EQUALS = "equals"
    NOT_EQUAL = "not equal"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    TEXT_CONTAINS = "text contains"
    GREATER_THAN = "greater than"
    LESS_THAN = "less than"
    IN = "in"
    NOT_IN = "not in"
    CONTAINS = "contains"
    NOT_CONTAINS = "not contains"


# Constraint types that take no value
_UNARY = frozenset({ConstraintType.IS_EMPTY, ConstraintType.IS_NOT_EMPTY})


@dataclass(frozen=True)
class Constraint:
    """One filter term on a legacy list request."""

    key: str
    constraint_type: ConstraintType
    value: Any = None

    def __post_init__(self) -> None:
        if self.constraint_type in _UNARY and self.value is not None:
            raise ValueError(f"'{self.constraint_type.value}' does not take a value")
        if self.constraint_type not in _UNARY and self.value is None:
            raise ValueError(f"'{self.constraint_type.value}' requires a value")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"key": self.key, "constraint_type": self.constraint_type.value}
        if self.constraint_type not in _UNARY:
            data["value"] = _wire_value(self.value)
        return data


def _wire_value(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_wire_value(item) for item in value]
    return value


def build_constraints(constraints: list[Constraint] | None) -> str | None:
    """Serialize constraints to the JSON query parameter (None when empty)."""
    if not constraints:
        return None
    return json.dumps([constraint.to_dict() for constraint in constraints])


def equals(key: str, value: Any) -> Constraint:
    return Constraint(key, ConstraintType.EQUALS, value)


def not_deleted(field_name: str = DELETED_AT_FIELD) -> Constraint:
    """Records that have not been soft-deleted."""
    return Constraint(field_name, ConstraintType.IS_EMPTY)


def modified_since(since: datetime, field_name: str = MODIFIED_DATE_FIELD) -> Constraint:
    """Records modified at or after ``since``.

    The platform only offers a strict ``greater than``, so the bound is moved
    back by one millisecond (its timestamp resolution) to include ``since``.
    """
    return Constraint(field_name, ConstraintType.GREATER_THAN, since - timedelta(milliseconds=1))

