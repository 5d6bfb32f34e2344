"""Schema-constrained record normalization.

Field limits come from the target's schema endpoint. Records are
truncated to those limits and checked for empty required fields and
duplicate unique keys before anything is sent.

Example usage:
    constraints = {
        "name": client.get_schema_property("dataElement", "name"),
        "short_name": client.get_schema_property("dataElement", "shortName"),
    }
    elements = normalize(elements, constraints, unique_fields=("name", "short_name"))
"""

import dataclasses
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from dhis2_seed.exceptions import DuplicateKeyError, MissingRequiredFieldError
from dhis2_seed.logging_config import create_logger

logger = create_logger(__name__)


@dataclass(frozen=True)
class SchemaConstraint:
    """Limits of one target field as reported by the schema endpoint."""

    field: str
    max_length: Optional[int] = None
    required: bool = False
    property_type: str = "TEXT"
    unique: bool = False

    @classmethod
    def from_schema_property(cls, payload: Mapping[str, Any]) -> "SchemaConstraint":
        """Build a constraint from a ``/api/schemas/<type>/<field>`` response.

        Args:
            payload: Parsed JSON property description

        Returns:
            SchemaConstraint for the property
        """
        max_length = payload.get("length")
        if max_length is None:
            max_length = payload.get("max")
        return cls(
            field=payload.get("fieldName") or payload.get("name", ""),
            max_length=int(max_length) if max_length is not None else None,
            required=bool(payload.get("required", False)),
            property_type=payload.get("propertyType", "TEXT"),
            unique=bool(payload.get("unique", False)),
        )


def truncate(value: Any, max_length: Optional[int]) -> Any:
    """Cut text values down to ``max_length`` characters."""
    if max_length is None or not isinstance(value, str):
        return value
    return value[:max_length]


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def normalize(
    records: Iterable[Any],
    constraints: Mapping[str, SchemaConstraint],
    unique_fields: Sequence[str] = (),
) -> List[Any]:
    """Fit dataclass records to schema constraints.

    Args:
        records: Dataclass records to check
        constraints: Record attribute name -> constraint of the target field
        unique_fields: Attributes that must be unique in the batch, on top
            of those whose constraint is flagged unique

    Returns:
        New list of records with text fields truncated

    Raises:
        MissingRequiredFieldError: If a required field is empty
        DuplicateKeyError: If a unique field repeats after truncation
    """
    normalized = []
    for record in records:
        changes: Dict[str, Any] = {}
        for attribute, constraint in constraints.items():
            value = getattr(record, attribute)
            if constraint.required and _is_empty(value):
                raise MissingRequiredFieldError(
                    f"Required field '{constraint.field}' is empty on {record!r}"
                )
            truncated = truncate(value, constraint.max_length)
            if truncated != value:
                logger.debug(
                    f"Truncated {attribute} '{value}' to {constraint.max_length} characters"
                )
                changes[attribute] = truncated
        normalized.append(dataclasses.replace(record, **changes) if changes else record)

    unique = list(unique_fields) + [
        attribute
        for attribute, constraint in constraints.items()
        if constraint.unique and attribute not in unique_fields
    ]
    for attribute in unique:
        counts = Counter(
            getattr(record, attribute)
            for record in normalized
            if not _is_empty(getattr(record, attribute))
        )
        duplicates = [key for key, count in counts.items() if count > 1]
        if duplicates:
            raise DuplicateKeyError(attribute, duplicates)

    logger.info(f"Normalized {len(normalized)} records against {len(constraints)} constraints")
    return normalized
