"""Configuration module for bootstrap settings and environment variables.

This module manages the run parameters of a bootstrap: the target
instance, credentials, the identifier seed, polling limits and the
locations of the upstream source files.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from dhis2_seed.exceptions import ConfigurationError
from dhis2_seed.logging_config import create_logger
from dhis2_seed.sources import ExternalDataset

load_dotenv()

logger = create_logger(__name__)

# get the local root directory
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
DATA_DIR = os.path.join(ROOT_DIR, "data")

# Target instance
DHIS2_BASE_URL = os.getenv("DHIS2_BASE_URL", "http://localhost:8080")
DHIS2_USERNAME = os.getenv("DHIS2_USERNAME", "admin")
DHIS2_PASSWORD = os.getenv("DHIS2_PASSWORD", "district")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "60"))

# Optional plain-text copy of the run log
LOG_FILE = os.getenv("LOG_FILE") or None

# Run parameters
BOOTSTRAP_SEED = int(os.getenv("BOOTSTRAP_SEED", "42"))
POLL_INTERVAL = float(os.getenv("POLL_INTERVAL", "5"))
MAX_POLLS = int(os.getenv("MAX_POLLS", "120"))
DATA_VALUE_CHUNK_SIZE = int(os.getenv("DATA_VALUE_CHUNK_SIZE", "10000"))
IMPORT_STRATEGY = os.getenv("IMPORT_STRATEGY", "CREATE").upper()
ATOMIC_MODE = os.getenv("ATOMIC_MODE", "ALL").upper()
OPENING_DATE = os.getenv("OPENING_DATE", "1970-01-01")
ROOT_ORG_UNIT_NAME = os.getenv("ROOT_ORG_UNIT_NAME", "Global")

# Upstream sources
BOUNDARIES_URL = os.getenv(
    "BOUNDARIES_URL",
    "https://github.com/wmgeolab/geoBoundaries/raw/main/releaseData/CGAZ/"
    "geoBoundariesCGAZ_ADM0.geojson",
)
USERS_URL = os.getenv("USERS_URL", os.path.join(DATA_DIR, "users.csv"))
DICTIONARY_URL = os.getenv(
    "DICTIONARY_URL", "https://extranet.who.int/tme/generateCSV.asp?ds=dictionary"
)
ESTIMATES_URL = os.getenv(
    "ESTIMATES_URL", "https://extranet.who.int/tme/generateCSV.asp?ds=estimates"
)
NOTIFICATIONS_URL = os.getenv(
    "NOTIFICATIONS_URL",
    "https://extranet.who.int/tme/generateCSV.asp?ds=notifications",
)

VALID_IMPORT_STRATEGIES = {"CREATE", "UPDATE", "CREATE_AND_UPDATE"}
VALID_ATOMIC_MODES = {"ALL", "NONE"}

# Country descriptors carried by the WHO tables next to iso3/year
_WHO_DESCRIPTOR_COLUMNS = ["country", "iso2", "iso_numeric", "g_whoregion"]


def default_datasets() -> List[ExternalDataset]:
    """Observation tables imported by a default run."""
    return [
        ExternalDataset(
            name="estimates",
            location=ESTIMATES_URL,
            id_columns=["iso3", "year"],
            exclude_columns=list(_WHO_DESCRIPTOR_COLUMNS),
            dictionary_dataset="Estimates",
        ),
        ExternalDataset(
            name="notifications",
            location=NOTIFICATIONS_URL,
            id_columns=["iso3", "year"],
            exclude_columns=list(_WHO_DESCRIPTOR_COLUMNS),
            dictionary_dataset="Notification",
        ),
    ]


@dataclass
class BootstrapSettings:
    """Run parameters for one bootstrap, defaulting to the environment."""

    base_url: str = DHIS2_BASE_URL
    username: str = DHIS2_USERNAME
    password: str = DHIS2_PASSWORD
    seed: int = BOOTSTRAP_SEED
    poll_interval: float = POLL_INTERVAL
    max_polls: int = MAX_POLLS
    chunk_size: int = DATA_VALUE_CHUNK_SIZE
    import_strategy: str = IMPORT_STRATEGY
    atomic_mode: str = ATOMIC_MODE
    request_timeout: float = REQUEST_TIMEOUT
    log_file: Optional[str] = LOG_FILE
    opening_date: str = OPENING_DATE
    root_org_unit_name: str = ROOT_ORG_UNIT_NAME
    boundaries_location: str = BOUNDARIES_URL
    users_location: str = USERS_URL
    dictionary_location: str = DICTIONARY_URL
    datasets: List[ExternalDataset] = field(default_factory=default_datasets)


def validate_settings(settings: BootstrapSettings) -> None:
    """
    Validate critical run parameters.
    Raises ConfigurationError if any required setting is missing or invalid.

    :param settings: Settings to validate
    :raises ConfigurationError: If configuration is invalid
    """
    if not settings.base_url:
        raise ConfigurationError("Target base URL (DHIS2_BASE_URL) is not configured")

    if not settings.username or not settings.password:
        raise ConfigurationError("DHIS2_USERNAME and DHIS2_PASSWORD must both be set")

    if settings.poll_interval < 0:
        raise ConfigurationError(
            f"POLL_INTERVAL must not be negative, got {settings.poll_interval}"
        )

    if settings.max_polls < 1:
        raise ConfigurationError(f"MAX_POLLS must be at least 1, got {settings.max_polls}")

    if settings.chunk_size < 1:
        raise ConfigurationError(
            f"DATA_VALUE_CHUNK_SIZE must be at least 1, got {settings.chunk_size}"
        )

    if settings.import_strategy not in VALID_IMPORT_STRATEGIES:
        raise ConfigurationError(
            f"Unknown import strategy '{settings.import_strategy}', "
            f"expected one of {sorted(VALID_IMPORT_STRATEGIES)}"
        )

    if settings.atomic_mode not in VALID_ATOMIC_MODES:
        raise ConfigurationError(
            f"Unknown atomic mode '{settings.atomic_mode}', "
            f"expected one of {sorted(VALID_ATOMIC_MODES)}"
        )

    required_sources = [
        ("BOUNDARIES_URL", settings.boundaries_location),
        ("USERS_URL", settings.users_location),
        ("DICTIONARY_URL", settings.dictionary_location),
    ]
    for source_name, location in required_sources:
        if not location:
            raise ConfigurationError(f"Missing source location: {source_name}")

    logger.info("Configuration validation successful")
