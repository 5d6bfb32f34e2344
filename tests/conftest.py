"""Pytest configuration and shared fixtures for the bootstrap tests.

This module provides fixtures for:
- Temporary source files (boundaries, roster, dictionary, WHO tables)
- A recording fake of the target instance client
- Bootstrap settings pointing at the temporary sources
"""

import json
import tempfile
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Sequence
from unittest.mock import MagicMock

import pandas as pd
import pytest

from dhis2_seed.config import BootstrapSettings
from dhis2_seed.normalize import SchemaConstraint
from dhis2_seed.payloads import SerializedPayload
from dhis2_seed.sources import ExternalDataset

WHO_DESCRIPTORS = ["country", "iso2", "iso_numeric", "g_whoregion"]


# ============================================================================
# Fake Target Instance
# ============================================================================

class FakeDhis2Client:
    """Records every call and answers like an empty, accepting instance."""

    def __init__(
        self,
        server_ids: Optional[Dict[str, str]] = None,
        completions: Sequence[bool] = (True,),
        schema_lengths: Optional[Dict[tuple, int]] = None,
    ):
        self.calls: List[tuple] = []
        self.posted: List[SerializedPayload] = []
        self.data_payloads: List[SerializedPayload] = []
        self.collections: List[tuple] = []
        self.imported_org_units: Dict[str, str] = {}
        self.server_ids = server_ids or {}
        self.completions = list(completions)
        self.schema_lengths = schema_lengths or {}
        self.status_requests = 0

    @property
    def posted_types(self) -> List[str]:
        return [payload.object_type for payload in self.posted]

    def me(self) -> Dict[str, str]:
        self.calls.append(("me",))
        return {"id": "adminUser01", "username": "admin"}

    def get_schema_property(self, object_type: str, field: str) -> SchemaConstraint:
        self.calls.append(("schema", object_type, field))
        default = 230 if field == "name" else 50
        return SchemaConstraint(
            field=field,
            max_length=self.schema_lengths.get((object_type, field), default),
            required=field == "name",
        )

    def post_metadata(self, payload, import_strategy="CREATE", atomic_mode="ALL"):
        self.calls.append(("post_metadata", payload.object_type))
        self.posted.append(payload)
        if payload.object_type == "organisationUnits":
            for unit in json.loads(payload.body)["organisationUnits"]:
                self.imported_org_units[unit["code"]] = unit["id"]
        return {"status": "OK", "response": {"stats": {"created": payload.count}}}

    def get_objects(self, object_type, fields=("id",), filters=()):
        self.calls.append(("get_objects", object_type))
        ids = dict(self.imported_org_units)
        ids.update(self.server_ids)
        return [{"id": uid, "code": code} for code, uid in ids.items()]

    def add_to_collection(self, object_type, uid, collection, item_uid):
        self.calls.append(("add_to_collection", collection))
        self.collections.append((object_type, uid, collection, item_uid))

    def post_data_values(self, payload):
        self.calls.append(("post_data_values", payload.count))
        self.data_payloads.append(payload)
        return {"status": "SUCCESS", "importCount": {"imported": payload.count}}

    def trigger_analytics(self) -> str:
        self.calls.append(("trigger_analytics",))
        return "/api/system/tasks/ANALYTICS_TABLE/job0000001"

    def task_completed(self, endpoint: str) -> bool:
        self.calls.append(("task_completed", endpoint))
        self.status_requests += 1
        if len(self.completions) > 1:
            return self.completions.pop(0)
        return self.completions[0]


@pytest.fixture(scope="function")
def fake_client_factory():
    """Build fake clients with custom server behaviour."""
    return FakeDhis2Client


@pytest.fixture(scope="function")
def fake_client() -> FakeDhis2Client:
    return FakeDhis2Client()


# ============================================================================
# Temporary File Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for testing.

    Yields:
        Path to temporary directory
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def _feature(code: Optional[str], name: str) -> Dict[str, Any]:
    properties = {"shapeName": name}
    if code:
        properties["shapeGroup"] = code
    return {
        "type": "Feature",
        "properties": properties,
        "geometry": {"type": "Point", "coordinates": [0.0, 0.0]},
    }


@pytest.fixture(scope="function")
def sample_boundaries() -> Dict[str, Any]:
    """GeoJSON collection with three countries and one uncoded feature."""
    return {
        "type": "FeatureCollection",
        "features": [
            _feature("SLE", "Sierra Leone"),
            _feature("GIN", "Guinea"),
            _feature(None, "Disputed area"),
            _feature("LBR", "Liberia"),
        ],
    }


@pytest.fixture(scope="function")
def sample_dictionary() -> pd.DataFrame:
    return pd.DataFrame({
        "variable_name": ["country", "e_inc_100k", "e_mort_100k", "c_newinc"],
        "dataset": ["Country identification", "Estimates", "Estimates", "Notification"],
        "code_list": ["", "", "", ""],
        "definition": [
            "Country or territory name",
            "Estimated incidence (all forms) per 100 000 population",
            "Estimated mortality of TB cases per 100 000 population",
            "Total of new and relapse cases",
        ],
    })


@pytest.fixture(scope="function")
def sample_estimates() -> pd.DataFrame:
    """Wide estimates table; NXR has no org unit and e_unknown no data element."""
    return pd.DataFrame({
        "country": ["Sierra Leone", "Guinea", "Nowhere"],
        "iso2": ["SL", "GN", "NX"],
        "iso3": ["SLE", "GIN", "NXR"],
        "iso_numeric": [694, 324, 999],
        "g_whoregion": ["AFR", "AFR", "AFR"],
        "year": [2015, 2015, 2015],
        "e_inc_100k": [307, 177, 10],
        "e_mort_100k": [None, 29.0, 2.0],
        "e_unknown": [1.5, None, None],
    })


@pytest.fixture(scope="function")
def sample_notifications() -> pd.DataFrame:
    return pd.DataFrame({
        "country": ["Sierra Leone", "Liberia"],
        "iso2": ["SL", "LR"],
        "iso3": ["SLE", "LBR"],
        "iso_numeric": [694, 430],
        "g_whoregion": ["AFR", "AFR"],
        "year": [2016, 2016],
        "c_newinc": [15000.0, None],
    })


@pytest.fixture(scope="function")
def sample_users() -> pd.DataFrame:
    return pd.DataFrame({
        "first_name": ["Amara", "Tomas"],
        "surname": ["Kamara", "Silva"],
        "username": ["akamara", "tsilva"],
        "password": ["Workshop#2024", "Workshop#2024"],
        "email": ["akamara@example.org", None],
    })


@pytest.fixture(scope="function")
def source_files(
    temp_dir: Path,
    sample_boundaries,
    sample_dictionary,
    sample_estimates,
    sample_notifications,
    sample_users,
) -> Dict[str, Path]:
    """Write every sample source into the temporary directory.

    Returns:
        Dictionary mapping source names to file paths
    """
    paths = {
        "boundaries": temp_dir / "boundaries.geojson",
        "dictionary": temp_dir / "dictionary.csv",
        "estimates": temp_dir / "estimates.csv",
        "notifications": temp_dir / "notifications.csv",
        "users": temp_dir / "users.csv",
    }
    paths["boundaries"].write_text(json.dumps(sample_boundaries), encoding="utf-8")
    sample_dictionary.to_csv(paths["dictionary"], index=False)
    sample_estimates.to_csv(paths["estimates"], index=False)
    sample_notifications.to_csv(paths["notifications"], index=False)
    sample_users.to_csv(paths["users"], index=False)
    return paths


@pytest.fixture(scope="function")
def settings(source_files: Dict[str, Path]) -> BootstrapSettings:
    """Bootstrap settings reading the temporary sources, with no polling delay."""
    return BootstrapSettings(
        base_url="http://dhis2.test",
        username="admin",
        password="district",
        seed=7,
        poll_interval=0,
        max_polls=10,
        chunk_size=2,
        boundaries_location=str(source_files["boundaries"]),
        users_location=str(source_files["users"]),
        dictionary_location=str(source_files["dictionary"]),
        datasets=[
            ExternalDataset(
                name="estimates",
                location=str(source_files["estimates"]),
                exclude_columns=list(WHO_DESCRIPTORS),
                dictionary_dataset="Estimates",
            ),
            ExternalDataset(
                name="notifications",
                location=str(source_files["notifications"]),
                exclude_columns=list(WHO_DESCRIPTORS),
                dictionary_dataset="Notification",
            ),
        ],
    )


# ============================================================================
# HTTP Session Mocks
# ============================================================================

def make_response(status_code: int = 200, body: Any = None) -> MagicMock:
    """Build a mock ``requests.Response``."""
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body if body is not None else {}
    response.text = json.dumps(body) if body is not None else ""
    return response


@pytest.fixture(scope="function")
def mock_session() -> MagicMock:
    """Provide a mock ``requests.Session``."""
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture(scope="function")
def response_factory():
    """Build mock responses with a status code and JSON body."""
    return make_response
