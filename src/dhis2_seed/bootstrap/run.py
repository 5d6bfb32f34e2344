"""Bootstrap module for seeding a clean instance.

This module walks a fixed sequence of states: authenticate, import the
organisation unit hierarchy, users and data elements, import the
observation tables and recompute analytics. Any failure halts the run;
the supported retry is a fresh run against a clean instance, which the
seeded identifier generator makes reproducible.
"""

import dataclasses
import sys
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

import pandas as pd

from dhis2_seed.api import Dhis2Client
from dhis2_seed.config import BootstrapSettings, validate_settings
from dhis2_seed.exceptions import ImportRejectedError, RecomputeTimeoutError
from dhis2_seed.join import check_join, inner_join
from dhis2_seed.logging_config import (
    attach_log_file,
    create_logger,
    detach_log_file,
    log_exception,
)
from dhis2_seed.normalize import normalize
from dhis2_seed.payloads import build, chunk, format_value
from dhis2_seed.records import (
    DataElement,
    DataElementGroup,
    DataValue,
    OrganisationUnit,
    OrganisationUnitLevel,
    User,
    UserRole,
)
from dhis2_seed.reshape import reshape_frame
from dhis2_seed.sources import load_boundaries, load_dictionary, load_table, load_users
from dhis2_seed.uid import UidGenerator

logger = create_logger(__name__)


class BootstrapState(str, Enum):
    """States of a bootstrap run, in execution order."""

    AUTHENTICATE = "authenticate"
    IMPORT_ORG_UNITS = "import_org_units"
    VERIFY_ORG_UNITS = "verify_org_units"
    SET_ORG_UNIT_LEVELS = "set_org_unit_levels"
    ASSIGN_USER_HOME_ORG_UNIT = "assign_user_home_org_unit"
    IMPORT_USER_ROLE = "import_user_role"
    IMPORT_USERS = "import_users"
    IMPORT_DATA_ELEMENTS = "import_data_elements"
    IMPORT_DATA_ELEMENT_GROUPS = "import_data_element_groups"
    FETCH_EXTERNAL_DATASETS = "fetch_external_datasets"
    RESHAPE_AND_JOIN = "reshape_and_join"
    IMPORT_DATA_VALUES = "import_data_values"
    TRIGGER_RECOMPUTE = "trigger_recompute"
    POLL_RECOMPUTE_STATUS = "poll_recompute_status"
    DONE = "done"


STATE_SEQUENCE = [state for state in BootstrapState if state is not BootstrapState.DONE]

ADMIN_ROLE_CODE = "BOOTSTRAP_ADMIN"
ADMIN_ROLE_NAME = "Bootstrap administrator"
COUNTRY_LEVEL_NAME = "Country"


class Bootstrap:
    """Seed a clean instance from the configured sources.

    Identifiers are drawn from one generator in a fixed order: root
    unit, countries by code, levels, the user role, users in roster
    order, data elements in dictionary order, groups in dataset order.
    """

    def __init__(
        self,
        client: Dhis2Client,
        settings: BootstrapSettings,
        uid_generator: Optional[UidGenerator] = None,
        sleep: Callable[[float], None] = time.sleep,
        timestamp: Optional[str] = None,
    ) -> None:
        self.client = client
        self.settings = settings
        self.uids = uid_generator or UidGenerator(settings.seed)
        self.sleep = sleep
        self.timestamp = timestamp or datetime.now(timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%S.000"
        )

        self.state: Optional[BootstrapState] = None
        self.completed_states: List[BootstrapState] = []

        self.me: Dict[str, str] = {}
        self.org_units: List[OrganisationUnit] = []
        self.org_unit_ids: Dict[str, str] = {}
        self.root_id: Optional[str] = None
        self.levels: List[OrganisationUnitLevel] = []
        self.role: Optional[UserRole] = None
        self.users: List[User] = []
        self.dictionary: pd.DataFrame = pd.DataFrame()
        self.data_elements: List[DataElement] = []
        self.variable_ids: Dict[str, str] = {}
        self.groups: List[DataElementGroup] = []
        self.tables: Dict[str, pd.DataFrame] = {}
        self.data_values: List[DataValue] = []
        self.task_endpoint: Optional[str] = None
        self.status_requests = 0

        self._handlers: Dict[BootstrapState, Callable[[], None]] = {
            BootstrapState.AUTHENTICATE: self.authenticate,
            BootstrapState.IMPORT_ORG_UNITS: self.import_org_units,
            BootstrapState.VERIFY_ORG_UNITS: self.verify_org_units,
            BootstrapState.SET_ORG_UNIT_LEVELS: self.set_org_unit_levels,
            BootstrapState.ASSIGN_USER_HOME_ORG_UNIT: self.assign_user_home_org_unit,
            BootstrapState.IMPORT_USER_ROLE: self.import_user_role,
            BootstrapState.IMPORT_USERS: self.import_users,
            BootstrapState.IMPORT_DATA_ELEMENTS: self.import_data_elements,
            BootstrapState.IMPORT_DATA_ELEMENT_GROUPS: self.import_data_element_groups,
            BootstrapState.FETCH_EXTERNAL_DATASETS: self.fetch_external_datasets,
            BootstrapState.RESHAPE_AND_JOIN: self.reshape_and_join,
            BootstrapState.IMPORT_DATA_VALUES: self.import_data_values,
            BootstrapState.TRIGGER_RECOMPUTE: self.trigger_recompute,
            BootstrapState.POLL_RECOMPUTE_STATUS: self.poll_recompute_status,
        }

    def _post(self, object_type: str, records, **options) -> None:
        self.client.post_metadata(
            build(object_type, records, **options),
            import_strategy=self.settings.import_strategy,
            atomic_mode=self.settings.atomic_mode,
        )

    def authenticate(self) -> None:
        self.me = self.client.me()

    def import_org_units(self) -> None:
        countries = load_boundaries(
            self.settings.boundaries_location, opening_date=self.settings.opening_date
        )
        root_name = self.settings.root_org_unit_name
        root = OrganisationUnit(
            id=self.uids.generate_unique(1)[0],
            code=root_name.upper().replace(" ", "_"),
            name=root_name,
            short_name=root_name,
            opening_date=self.settings.opening_date,
        )
        country_ids = self.uids.generate_unique(len(countries))
        countries = [
            dataclasses.replace(country, id=uid, parent_id=root.id)
            for country, uid in zip(countries, country_ids)
        ]

        constraints = {
            "name": self.client.get_schema_property("organisationUnit", "name"),
            "short_name": self.client.get_schema_property("organisationUnit", "shortName"),
        }
        self.org_units = normalize(
            [root] + countries, constraints, unique_fields=("code", "name", "short_name")
        )
        self._post("organisationUnits", self.org_units)

    def verify_org_units(self) -> None:
        """Read back organisation units and resolve codes to identifiers."""
        rows = self.client.get_objects("organisationUnits", fields=("id", "code"))
        server_ids = {row["code"]: row["id"] for row in rows if row.get("code")}
        missing = [unit.code for unit in self.org_units if unit.code not in server_ids]
        if missing:
            raise ImportRejectedError(
                f"{len(missing)} organisation units missing after import: {missing[:10]}"
            )
        self.org_unit_ids = {unit.code: server_ids[unit.code] for unit in self.org_units}
        self.root_id = self.org_unit_ids[self.org_units[0].code]
        logger.info(f"Verified {len(self.org_unit_ids)} organisation units")

    def set_org_unit_levels(self) -> None:
        level_ids = self.uids.generate_unique(2)
        self.levels = [
            OrganisationUnitLevel(id=level_ids[0], name=self.settings.root_org_unit_name, level=1),
            OrganisationUnitLevel(id=level_ids[1], name=COUNTRY_LEVEL_NAME, level=2),
        ]
        self._post("organisationUnitLevels", self.levels)

    def assign_user_home_org_unit(self) -> None:
        for collection in ("organisationUnits", "dataViewOrganisationUnits"):
            self.client.add_to_collection("users", self.me["id"], collection, self.root_id)
        logger.info(f"Assigned {self.me.get('username', self.me['id'])} to the root unit")

    def import_user_role(self) -> None:
        role = UserRole(
            id=self.uids.generate_unique(1)[0], code=ADMIN_ROLE_CODE, name=ADMIN_ROLE_NAME
        )
        constraints = {"name": self.client.get_schema_property("userRole", "name")}
        self.role = normalize([role], constraints)[0]
        self._post("userRoles", [self.role], timestamp=self.timestamp)

    def import_users(self) -> None:
        roster = load_users(self.settings.users_location)
        user_ids = self.uids.generate_unique(len(roster))
        users = [
            User(
                id=uid,
                code=str(row["username"]),
                first_name=str(row["first_name"]),
                surname=str(row["surname"]),
                username=str(row["username"]),
                password=str(row["password"]),
                role_id=self.role.id,
                org_unit_id=self.root_id,
                email=str(row["email"]) if row.get("email") else None,
            )
            for uid, row in zip(user_ids, roster.to_dict(orient="records"))
        ]
        self.users = normalize(users, {}, unique_fields=("username",))
        self._post("users", self.users, timestamp=self.timestamp)

    def import_data_elements(self) -> None:
        names = [dataset.dictionary_name for dataset in self.settings.datasets]
        self.dictionary = load_dictionary(self.settings.dictionary_location, names)
        element_ids = self.uids.generate_unique(len(self.dictionary))

        elements = []
        for uid, row in zip(element_ids, self.dictionary.to_dict(orient="records")):
            variable = str(row["variable_name"])
            definition = row.get("definition")
            elements.append(
                DataElement(
                    id=uid,
                    code=variable,
                    name=variable,
                    short_name=variable,
                    description="" if pd.isna(definition) else str(definition),
                )
            )
            self.variable_ids[variable] = uid

        constraints = {
            "code": self.client.get_schema_property("dataElement", "code"),
            "name": self.client.get_schema_property("dataElement", "name"),
            "short_name": self.client.get_schema_property("dataElement", "shortName"),
        }
        self.data_elements = normalize(
            elements, constraints, unique_fields=("code", "name", "short_name")
        )
        self._post("dataElements", self.data_elements)

    def import_data_element_groups(self) -> None:
        datasets = self.settings.datasets
        group_ids = self.uids.generate_unique(len(datasets))
        dataset_column = self.dictionary["dataset"].astype(str).str.lower()

        groups = []
        for uid, dataset in zip(group_ids, datasets):
            members = self.dictionary.loc[
                dataset_column == dataset.dictionary_name.lower(), "variable_name"
            ]
            groups.append(
                DataElementGroup(
                    id=uid,
                    code=dataset.name.upper(),
                    name=dataset.name.capitalize(),
                    short_name=dataset.name.capitalize(),
                    data_element_ids=[self.variable_ids[str(v)] for v in members],
                )
            )
        self.groups = normalize(groups, {}, unique_fields=("code", "name"))
        self._post("dataElementGroups", self.groups)

    def fetch_external_datasets(self) -> None:
        self.tables = {dataset.name: load_table(dataset) for dataset in self.settings.datasets}

    def reshape_and_join(self) -> None:
        """Resolve every observation to (data element, period, org unit, value)."""
        element_map = pd.DataFrame(
            {
                "variable": list(self.variable_ids),
                "data_element": list(self.variable_ids.values()),
            }
        )
        org_map = pd.DataFrame(
            {
                "org_unit_code": list(self.org_unit_ids),
                "org_unit": list(self.org_unit_ids.values()),
            }
        )

        values: List[DataValue] = []
        for dataset in self.settings.datasets:
            long_frame = reshape_frame(
                self.tables[dataset.name],
                dataset.id_columns,
                exclude_columns=dataset.exclude_columns,
            )
            long_frame["value"] = long_frame["value"].map(format_value)

            with_elements = inner_join(long_frame, element_map, "variable", "variable")
            check_join(
                len(long_frame), len(with_elements), f"{dataset.name}: variable -> data element"
            )
            resolved = inner_join(
                with_elements, org_map, dataset.entity_column, "org_unit_code"
            )
            check_join(
                len(with_elements), len(resolved), f"{dataset.name}: country -> org unit"
            )

            values.extend(
                DataValue(
                    data_element=element,
                    period=format_value(period),
                    org_unit=org_unit,
                    value=value,
                )
                for element, period, org_unit, value in zip(
                    resolved["data_element"],
                    resolved[dataset.period_column],
                    resolved["org_unit"],
                    resolved["value"],
                )
            )
        self.data_values = values
        logger.info(f"Prepared {len(values)} data values")

    def import_data_values(self) -> None:
        if not self.data_values:
            logger.warning("No data values to import")
            return
        for batch in chunk(self.data_values, self.settings.chunk_size):
            self.client.post_data_values(build("dataValues", batch))

    def trigger_recompute(self) -> None:
        self.task_endpoint = self.client.trigger_analytics()

    def poll_recompute_status(self) -> None:
        """
        Poll the analytics task until it reports completion.

        :raises RecomputeTimeoutError: If ``max_polls`` requests pass without completion
        """
        for attempt in range(1, self.settings.max_polls + 1):
            self.status_requests += 1
            if self.client.task_completed(self.task_endpoint):
                logger.info(f"📊 Analytics completed after {attempt} status checks")
                return
            if attempt < self.settings.max_polls:
                logger.info(f"   Analytics still running (check {attempt})")
                self.sleep(self.settings.poll_interval)
        raise RecomputeTimeoutError(
            f"Analytics did not complete after {self.settings.max_polls} status checks"
        )

    def run(self) -> None:
        """
        Run every state in order, halting on the first failure.

        :raises BootstrapBaseError: Whatever the failing state raised
        """
        start_time = time.time()
        logger.info(f"Starting bootstrap of {self.settings.base_url} (seed {self.uids.seed})")

        for state in STATE_SEQUENCE:
            self.state = state
            logger.info(f"▶️  {state.value}")
            try:
                self._handlers[state]()
            except Exception as e:
                log_exception(logger, e, {"state": state.value})
                raise
            self.completed_states.append(state)

        self.state = BootstrapState.DONE
        duration = time.time() - start_time
        logger.info(
            f"Bootstrap completed: {len(self.org_units)} org units, "
            f"{len(self.users)} users, {len(self.data_elements)} data elements, "
            f"{len(self.data_values)} data values in {duration:.2f}s"
        )


def run_bootstrap(settings: Optional[BootstrapSettings] = None) -> Bootstrap:
    """Validate settings, build the client and run a full bootstrap."""
    settings = settings or BootstrapSettings()
    validate_settings(settings)
    client = Dhis2Client(
        settings.base_url,
        settings.username,
        settings.password,
        timeout=settings.request_timeout,
    )
    log_handler = attach_log_file(settings.log_file) if settings.log_file else None
    try:
        bootstrap = Bootstrap(client, settings)
        bootstrap.run()
    finally:
        if log_handler is not None:
            detach_log_file(log_handler)
    return bootstrap


if __name__ == "__main__":
    try:
        run_bootstrap()
    except Exception as e:
        logger.error(f"Bootstrap failed: {e}")
        sys.exit(1)
