"""Metadata and data payload builders.

Pure transformations from records to the bodies the target API
imports: JSON metadata bundles, DXF2 XML metadata documents and
data value sets. Nothing here touches the network or the filesystem.
"""

import json
import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Union

from dhis2_seed.records import (
    DataElement,
    DataElementGroup,
    DataValue,
    OrganisationUnit,
    OrganisationUnitLevel,
    User,
    UserRole,
)

JSON_CONTENT_TYPE = "application/json"
XML_CONTENT_TYPE = "application/xml"
DXF_NAMESPACE = "http://dhis2.org/schema/dxf/2.0"


@dataclass
class SerializedPayload:
    """A request body ready to be sent as is."""

    object_type: str
    content_type: str
    body: Union[str, bytes]
    count: int


def format_value(value: Any) -> str:
    """Render a cell value as the text the target stores."""
    if hasattr(value, "item"):
        value = value.item()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def _json_payload(object_type: str, objects: List[Dict[str, Any]]) -> SerializedPayload:
    return SerializedPayload(
        object_type=object_type,
        content_type=JSON_CONTENT_TYPE,
        body=json.dumps({object_type: objects}, ensure_ascii=False),
        count=len(objects),
    )


def org_unit_to_dict(unit: OrganisationUnit) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": unit.id,
        "code": unit.code,
        "name": unit.name,
        "shortName": unit.short_name,
        "openingDate": unit.opening_date,
    }
    if unit.parent_id:
        payload["parent"] = {"id": unit.parent_id}
    if unit.geometry:
        payload["geometry"] = unit.geometry
    return payload


def build_org_units(units: Sequence[OrganisationUnit]) -> SerializedPayload:
    return _json_payload("organisationUnits", [org_unit_to_dict(u) for u in units])


def build_org_unit_levels(levels: Sequence[OrganisationUnitLevel]) -> SerializedPayload:
    return _json_payload(
        "organisationUnitLevels",
        [{"id": lvl.id, "name": lvl.name, "level": lvl.level} for lvl in levels],
    )


def data_element_to_dict(element: DataElement) -> Dict[str, Any]:
    return {
        "id": element.id,
        "code": element.code,
        "name": element.name,
        "shortName": element.short_name,
        "description": element.description,
        "valueType": element.value_type,
        "aggregationType": element.aggregation_type,
        "domainType": element.domain_type,
    }


def build_data_elements(elements: Sequence[DataElement]) -> SerializedPayload:
    return _json_payload("dataElements", [data_element_to_dict(e) for e in elements])


def build_data_element_groups(groups: Sequence[DataElementGroup]) -> SerializedPayload:
    """Nest each group's member identifiers under the group."""
    return _json_payload(
        "dataElementGroups",
        [
            {
                "id": group.id,
                "code": group.code,
                "name": group.name,
                "shortName": group.short_name,
                "dataElements": [{"id": uid} for uid in group.data_element_ids],
            }
            for group in groups
        ],
    )


def _dxf(tag: str) -> str:
    return f"{{{DXF_NAMESPACE}}}{tag}"


def _stamped(parent: ET.Element, tag: str, uid: str, code: str, timestamp: str) -> ET.Element:
    return ET.SubElement(
        parent,
        _dxf(tag),
        {"id": uid, "code": code, "created": timestamp, "lastUpdated": timestamp},
    )


def _text(parent: ET.Element, tag: str, value: str) -> ET.Element:
    element = ET.SubElement(parent, _dxf(tag))
    element.text = value
    return element


def build_user_metadata_xml(
    roles: Sequence[UserRole],
    users: Sequence[User],
    timestamp: str,
    object_type: Optional[str] = None,
) -> SerializedPayload:
    """
    Build a DXF2 metadata document holding user roles and users.

    :param roles: User roles to create
    :param users: Users, each referencing a role and an organisation unit
    :param timestamp: ISO timestamp written to ``created``/``lastUpdated``
    :param object_type: Name reported for the payload; defaults to
        ``users`` when users are present, else ``userRoles``
    :return: XML payload
    """
    ET.register_namespace("", DXF_NAMESPACE)
    root = ET.Element(_dxf("metadata"))

    if roles:
        roles_element = ET.SubElement(root, _dxf("userRoles"))
        for role in roles:
            role_element = _stamped(roles_element, "userRole", role.id, role.code, timestamp)
            role_element.set("name", role.name)
            authorities = ET.SubElement(role_element, _dxf("authorities"))
            for authority in role.authorities:
                _text(authorities, "authority", authority)

    if users:
        users_element = ET.SubElement(root, _dxf("users"))
        for user in users:
            user_element = _stamped(users_element, "user", user.id, user.code, timestamp)
            _text(user_element, "firstName", user.first_name)
            _text(user_element, "surname", user.surname)
            if user.email:
                _text(user_element, "email", user.email)
            credentials = ET.SubElement(user_element, _dxf("userCredentials"))
            _text(credentials, "username", user.username)
            _text(credentials, "password", user.password)
            credential_roles = ET.SubElement(credentials, _dxf("userRoles"))
            ET.SubElement(credential_roles, _dxf("userRole"), {"id": user.role_id})
            for collection in ("organisationUnits", "dataViewOrganisationUnits"):
                units = ET.SubElement(user_element, _dxf(collection))
                ET.SubElement(units, _dxf("organisationUnit"), {"id": user.org_unit_id})

    body = ET.tostring(root, encoding="utf-8", xml_declaration=True)
    return SerializedPayload(
        object_type=object_type or ("users" if users else "userRoles"),
        content_type=XML_CONTENT_TYPE,
        body=body,
        count=len(roles) + len(users),
    )


def data_value_to_dict(value: DataValue) -> Dict[str, str]:
    return {
        "dataElement": value.data_element,
        "period": value.period,
        "orgUnit": value.org_unit,
        "value": format_value(value.value),
    }


def build_data_value_set(values: Sequence[DataValue]) -> SerializedPayload:
    return _json_payload("dataValues", [data_value_to_dict(v) for v in values])


def chunk(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError(f"Chunk size must be at least 1, got {size}")
    for start in range(0, len(items), size):
        yield items[start:start + size]


_BUILDERS: Dict[str, Callable[..., SerializedPayload]] = {
    "organisationUnits": build_org_units,
    "organisationUnitLevels": build_org_unit_levels,
    "dataElements": build_data_elements,
    "dataElementGroups": build_data_element_groups,
    "dataValues": build_data_value_set,
}


def build(object_type: str, records: Sequence[Any], **options: Any) -> SerializedPayload:
    """Build the payload for ``object_type`` from its records.

    ``users`` expects ``records`` to be users and takes ``roles`` and
    ``timestamp`` as options.
    """
    if object_type == "users":
        return build_user_metadata_xml(
            options.get("roles", []), records, options["timestamp"], object_type="users"
        )
    if object_type == "userRoles":
        return build_user_metadata_xml(
            records, [], options["timestamp"], object_type="userRoles"
        )
    try:
        builder = _BUILDERS[object_type]
    except KeyError:
        raise ValueError(f"No payload builder for object type '{object_type}'")
    return builder(records)
