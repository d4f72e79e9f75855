"""
Conversion of legacy records into typed internal records.

The transformer is the boundary where a loosely-typed legacy record stops
existing: field names are mapped and normalized through the registry,
references are resolved to internal UUIDs and the result is validated as
the entity type's record model.
"""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from legacy_sync import normalize as n
from legacy_sync.client.exceptions import DependencyError, RecordError
from legacy_sync.migration.resolver import IdentifierResolver
from legacy_sync.resources import EntityTypeInfo, FieldSpec

_MISSING = object()


@dataclass
class TransformedRecord:
    """Attribute values of one legacy record, ready for derivation and validation."""

    legacy_id: str
    values: dict[str, Any]
    source: dict[str, Any]


def _get_path(record: dict[str, Any], path: str) -> Any:
    """Read a key, falling back to a dotted path into nested objects."""
    if path in record:
        return record[path]
    if "." not in path:
        return _MISSING

    current: Any = record
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _pick(record: dict[str, Any], spec: FieldSpec) -> Any:
    for candidate in spec.candidates:
        value = _get_path(record, candidate)
        if value is _MISSING or value is None:
            continue
        if spec.blank_as_missing and value == "":
            continue
        return value
    return None


class RecordTransformer:
    """Maps legacy records of one entity type onto its record model."""

    def __init__(self, info: EntityTypeInfo, resolver: IdentifierResolver):
        self.info = info
        self.resolver = resolver

    def legacy_id_of(self, record: dict[str, Any]) -> str | None:
        for id_field in self.info.id_fields:
            value = record.get(id_field)
            if value:
                return str(value)
        return None

    def transform(self, record: dict[str, Any]) -> TransformedRecord:
        """
        Map fields, resolve references and assign the internal id.

        Args:
            record: Legacy record as returned by the data API

        Returns:
            TransformedRecord whose values still need ``validate``

        Raises:
            RecordError: If the record has no id or a field cannot be normalized
            DependencyError: If a required reference has no written target
        """
        legacy_id = self.legacy_id_of(record)
        if legacy_id is None:
            raise RecordError(self.info.name, None, "record has no legacy id")

        values: dict[str, Any] = {"legacy_id": legacy_id}

        for attr, spec in self.info.fields.items():
            raw = _pick(record, spec)
            try:
                value = spec.normalize(raw) if spec.normalize else raw
            except (TypeError, ValueError) as e:
                raise RecordError(
                    self.info.name, legacy_id, f"invalid {spec.legacy_name}: {e}"
                ) from e
            values[attr] = spec.default if value is None else value

        if self.info.deleted_field:
            try:
                values["deleted_at"] = n.parse_legacy_date(record.get(self.info.deleted_field))
            except ValueError as e:
                raise RecordError(
                    self.info.name, legacy_id, f"invalid {self.info.deleted_field}: {e}"
                ) from e

        for attr, ref in self.info.references.items():
            raw = record.get(ref.legacy_name)
            if ref.many:
                resolved = (
                    self.resolver.resolve_reference(ref.entity_type, legacy_ref)
                    for legacy_ref in n.resolve_references(raw)
                )
                values[attr] = [internal_id for internal_id in resolved if internal_id]
                continue

            legacy_ref = n.resolve_reference(raw)
            internal_id = self.resolver.resolve_reference(ref.entity_type, legacy_ref)
            if internal_id is None and ref.required:
                if legacy_ref is None:
                    raise RecordError(self.info.name, legacy_id, f"missing {ref.legacy_name}")
                raise DependencyError(
                    self.info.name,
                    legacy_id,
                    f"{ref.legacy_name} {legacy_ref} has not been migrated to {ref.entity_type}",
                )
            values[attr] = internal_id

        values["id"] = self.resolver.resolve(self.info.name, legacy_id)
        return TransformedRecord(legacy_id=legacy_id, values=values, source=record)

    def validate(self, transformed: TransformedRecord) -> BaseModel:
        """
        Validate transformed values as the entity type's record model.

        Raises:
            RecordError: If the values do not form a valid record
        """
        try:
            return self.info.record_model.model_validate(transformed.values)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise RecordError(self.info.name, transformed.legacy_id, problems) from e
