"""Upstream source loading.

Sources are plain files: a GeoJSON country boundary collection, a user
roster CSV, a data dictionary CSV and wide observation CSVs. Each may
live behind an HTTP(S) URL or on the local filesystem.
"""

import io
import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
import requests

from dhis2_seed.exceptions import SourceFetchError
from dhis2_seed.logging_config import create_logger
from dhis2_seed.records import OrganisationUnit

logger = create_logger(__name__)

# Property names seen in common country boundary releases
CODE_PROPERTIES = ("shapeGroup", "ISO3", "iso_a3", "ISO_A3", "code")
NAME_PROPERTIES = ("shapeName", "NAME", "name", "ADMIN")

USER_COLUMNS = ["first_name", "surname", "username", "password"]


@dataclass
class ExternalDataset:
    """One wide observation table and how to read it."""

    name: str
    location: str
    id_columns: List[str] = field(default_factory=lambda: ["iso3", "year"])
    exclude_columns: List[str] = field(default_factory=list)
    entity_column: str = "iso3"
    period_column: str = "year"
    dictionary_dataset: Optional[str] = None

    @property
    def dictionary_name(self) -> str:
        """Value of the dictionary's dataset column for this table."""
        return self.dictionary_dataset or self.name


def _is_url(location: str) -> bool:
    return location.startswith("http://") or location.startswith("https://")


def fetch_text(location: str, timeout: float = 120.0) -> str:
    """
    Read a source file from a URL or a local path.

    :param location: HTTP(S) URL or filesystem path
    :param timeout: Request timeout in seconds for URLs
    :return: File content as text
    :raises SourceFetchError: If the file cannot be read
    """
    logger.info(f"📥 Fetching source {location}")
    if _is_url(location):
        try:
            response = requests.get(location, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise SourceFetchError(f"Could not download {location}: {e}") from e
        return response.text

    if not os.path.isfile(location):
        raise SourceFetchError(f"Source file not found: {location}")
    with open(location, encoding="utf-8") as handle:
        return handle.read()


def _read_csv(location: str) -> pd.DataFrame:
    text = fetch_text(location)
    try:
        return pd.read_csv(io.StringIO(text))
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise SourceFetchError(f"Could not parse CSV from {location}: {e}") from e


def _first_property(properties: Dict[str, Any], names: Sequence[str]) -> Optional[str]:
    for name in names:
        value = properties.get(name)
        if value not in (None, ""):
            return str(value)
    return None


def parse_boundaries(
    collection: Dict[str, Any], opening_date: str = "1970-01-01"
) -> List[OrganisationUnit]:
    """Turn a GeoJSON FeatureCollection into country organisation units.

    Units come back without identifiers, sorted by code. Features with
    no usable code are skipped; repeated codes keep the first feature.
    """
    units: Dict[str, OrganisationUnit] = {}
    for feature in collection.get("features", []):
        properties = feature.get("properties") or {}
        code = _first_property(properties, CODE_PROPERTIES)
        name = _first_property(properties, NAME_PROPERTIES)
        if not code or code == "-99":
            logger.warning(f"Skipping boundary feature without a code: {name}")
            continue
        if code in units:
            logger.warning(f"Skipping repeated boundary code {code}")
            continue
        units[code] = OrganisationUnit(
            id=None,
            code=code,
            name=name or code,
            short_name=name or code,
            opening_date=opening_date,
            geometry=feature.get("geometry"),
        )
    return [units[code] for code in sorted(units)]


def load_boundaries(location: str, opening_date: str = "1970-01-01") -> List[OrganisationUnit]:
    text = fetch_text(location)
    try:
        collection = json.loads(text)
    except json.JSONDecodeError as e:
        raise SourceFetchError(f"Could not parse boundaries from {location}: {e}") from e
    units = parse_boundaries(collection, opening_date=opening_date)
    logger.info(f"Loaded {len(units)} country boundaries")
    return units


def load_users(location: str) -> pd.DataFrame:
    """Read the user roster; it must carry first_name, surname, username, password."""
    roster = _read_csv(location)
    missing = [column for column in USER_COLUMNS if column not in roster.columns]
    if missing:
        raise SourceFetchError(f"User roster {location} is missing columns {missing}")
    roster = roster.fillna("")
    logger.info(f"Loaded {len(roster)} users")
    return roster


def load_dictionary(location: str, datasets: Sequence[str]) -> pd.DataFrame:
    """Read the data dictionary, keeping variables of the given datasets in file order."""
    dictionary = _read_csv(location)
    for column in ("variable_name", "dataset"):
        if column not in dictionary.columns:
            raise SourceFetchError(f"Dictionary {location} has no '{column}' column")
    wanted = {name.lower() for name in datasets}
    kept = dictionary[dictionary["dataset"].astype(str).str.lower().isin(wanted)]
    kept = kept.drop_duplicates(subset="variable_name").reset_index(drop=True)
    logger.info(f"Loaded {len(kept)} dictionary entries for datasets {sorted(wanted)}")
    return kept


def load_table(dataset: ExternalDataset) -> pd.DataFrame:
    table = _read_csv(dataset.location)
    logger.info(
        f"Loaded dataset {dataset.name}: {len(table)} rows x {len(table.columns)} columns"
    )
    return table
