"""Record types for the objects seeded into the target instance.

Every record carries the identifier it was assigned during the run and
refers to related objects by identifier only.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class OrganisationUnit:
    """An organisation unit; ``parent_id`` is None for the root."""

    id: Optional[str]
    code: str
    name: str
    short_name: str
    opening_date: str = "1970-01-01"
    parent_id: Optional[str] = None
    geometry: Optional[Dict[str, Any]] = None


@dataclass
class OrganisationUnitLevel:
    id: str
    name: str
    level: int


@dataclass
class UserRole:
    id: str
    code: str
    name: str
    authorities: List[str] = field(default_factory=lambda: ["ALL"])


@dataclass
class User:
    """A user account with one role and one home organisation unit."""

    id: str
    code: str
    first_name: str
    surname: str
    username: str
    password: str
    role_id: str
    org_unit_id: str
    email: Optional[str] = None


@dataclass
class DataElement:
    id: str
    code: str
    name: str
    short_name: str
    description: str = ""
    value_type: str = "NUMBER"
    aggregation_type: str = "SUM"
    domain_type: str = "AGGREGATE"


@dataclass
class DataElementGroup:
    """A named group nesting member data element identifiers."""

    id: str
    code: str
    name: str
    short_name: str
    data_element_ids: List[str] = field(default_factory=list)


@dataclass
class DataValue:
    """One observation; ``value`` is already rendered as text."""

    data_element: str
    period: str
    org_unit: str
    value: str
