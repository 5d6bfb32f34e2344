"""REST client for the target instance.

Wraps a ``requests.Session`` with basic authentication and turns the
target's import reports into success or :class:`ImportRejectedError`.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

from dhis2_seed.exceptions import AuthenticationError, ImportRejectedError
from dhis2_seed.logging_config import create_logger
from dhis2_seed.normalize import SchemaConstraint
from dhis2_seed.payloads import SerializedPayload

logger = create_logger(__name__)

ANALYTICS_TASK_ENDPOINT = "/api/system/tasks/ANALYTICS_TABLE"


def _report_body(response: requests.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {"raw": response.text[:500]}
    return body if isinstance(body, dict) else {"body": body}


def created_count(report: Dict[str, Any]) -> int:
    """Objects created according to a metadata import report."""
    stats = report.get("stats") or report.get("response", {}).get("stats") or {}
    return int(stats.get("created", 0))


def imported_count(report: Dict[str, Any]) -> Tuple[int, int]:
    """(imported, ignored) according to a data value import summary."""
    summary = report.get("response", report)
    counts = summary.get("importCount") or {}
    return int(counts.get("imported", 0)), int(counts.get("ignored", 0))


def _latest_time(notifications: List[Any]) -> str:
    times = [n.get("time") or "" for n in notifications if isinstance(n, dict)]
    return max(times, default="")


def notifications_completed(body: Any) -> bool:
    """Whether a task status body reports completion.

    Accepts a single notification, a list of notifications for one job,
    or a mapping of job id to notification lists. For the mapping only
    the job with the most recent notification counts, so a finished job
    from an earlier run is not mistaken for the current one.
    """
    if isinstance(body, list):
        return any(notifications_completed(item) for item in body)
    if isinstance(body, dict):
        if "completed" in body:
            return bool(body["completed"])
        jobs = [value for value in body.values() if isinstance(value, list)]
        if not jobs:
            return False
        return notifications_completed(max(jobs, key=_latest_time))
    return False


class Dhis2Client:
    """Thin client over the target's metadata, data and task endpoints."""

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (username, password)
        self.session.headers.update({"Accept": "application/json"})

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        logger.debug(f"{method} {path}")
        return self.session.request(method, self._url(path), timeout=self.timeout, **kwargs)

    def me(self) -> Dict[str, Any]:
        """Probe the login; returns the current user.

        Raises:
            AuthenticationError: If the probe does not answer 200 with
                a JSON user carrying an ``id``
        """
        try:
            response = self._request("GET", "/api/me")
        except requests.RequestException as e:
            raise AuthenticationError(f"Could not reach {self.base_url}: {e}") from e
        if response.status_code != 200:
            raise AuthenticationError(
                f"Login to {self.base_url} failed with HTTP {response.status_code}"
            )
        try:
            body = response.json()
        except ValueError as e:
            raise AuthenticationError(
                f"Login probe at {self.base_url} did not return JSON; "
                f"check the base URL points at the API, not a login page"
            ) from e
        if not isinstance(body, dict) or not body.get("id"):
            raise AuthenticationError(
                f"Login probe at {self.base_url} returned no user id"
            )
        logger.info(f"🔐 Authenticated against {self.base_url}")
        return body

    def get_objects(
        self,
        object_type: str,
        fields: Iterable[str] = ("id",),
        filters: Iterable[str] = (),
    ) -> List[Dict[str, Any]]:
        """Read all objects of a type, unpaged."""
        params: List[Tuple[str, str]] = [
            ("fields", ",".join(fields)),
            ("paging", "false"),
        ]
        params.extend(("filter", f) for f in filters)
        response = self._request("GET", f"/api/{object_type}", params=params)
        if response.status_code != 200:
            raise ImportRejectedError(
                f"Read-back of {object_type} failed with HTTP {response.status_code}",
                status_code=response.status_code,
                report=_report_body(response),
            )
        return response.json().get(object_type, [])

    def get_schema_property(self, object_type: str, field: str) -> SchemaConstraint:
        response = self._request("GET", f"/api/schemas/{object_type}/{field}")
        if response.status_code != 200:
            raise ImportRejectedError(
                f"Schema lookup {object_type}.{field} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return SchemaConstraint.from_schema_property(response.json())

    def post_metadata(
        self,
        payload: SerializedPayload,
        import_strategy: str = "CREATE",
        atomic_mode: str = "ALL",
    ) -> Dict[str, Any]:
        """
        Import a metadata payload and check the created count.

        :param payload: JSON or XML metadata payload
        :param import_strategy: CREATE, UPDATE or CREATE_AND_UPDATE
        :param atomic_mode: ALL aborts the batch on any error, NONE applies successes
        :return: Parsed import report
        :raises ImportRejectedError: On non-200 status or a created-count mismatch
        """
        body = payload.body
        if isinstance(body, str):
            body = body.encode("utf-8")
        response = self._request(
            "POST",
            "/api/metadata",
            params={"importStrategy": import_strategy, "atomicMode": atomic_mode},
            data=body,
            headers={"Content-Type": payload.content_type},
        )
        report = _report_body(response)
        if response.status_code != 200:
            raise ImportRejectedError(
                f"Import of {payload.object_type} failed with HTTP {response.status_code}",
                status_code=response.status_code,
                report=report,
            )
        if import_strategy == "CREATE":
            created = created_count(report)
            if created != payload.count:
                raise ImportRejectedError(
                    f"Import of {payload.object_type} created {created} of {payload.count} objects",
                    status_code=response.status_code,
                    report=report,
                )
        logger.info(f"✅ Imported {payload.count} {payload.object_type}")
        return report

    def add_to_collection(
        self, object_type: str, uid: str, collection: str, item_uid: str
    ) -> None:
        response = self._request(
            "POST", f"/api/{object_type}/{uid}/{collection}/{item_uid}"
        )
        if response.status_code not in (200, 201, 204):
            raise ImportRejectedError(
                f"Adding {item_uid} to {object_type}/{uid}/{collection} failed "
                f"with HTTP {response.status_code}",
                status_code=response.status_code,
                report=_report_body(response),
            )

    def post_data_values(self, payload: SerializedPayload) -> Dict[str, Any]:
        """
        Import a data value set.

        :param payload: Data value set payload
        :return: Parsed import summary
        :raises ImportRejectedError: On non-200 status or values left unimported
        """
        response = self._request(
            "POST",
            "/api/dataValueSets",
            params={"preheatCache": "true", "skipExistingCheck": "true"},
            data=payload.body.encode("utf-8") if isinstance(payload.body, str) else payload.body,
            headers={"Content-Type": payload.content_type},
        )
        report = _report_body(response)
        if response.status_code != 200:
            raise ImportRejectedError(
                f"Data value import failed with HTTP {response.status_code}",
                status_code=response.status_code,
                report=report,
            )
        imported, ignored = imported_count(report)
        if imported != payload.count:
            raise ImportRejectedError(
                f"Data value import stored {imported} of {payload.count} values "
                f"({ignored} ignored)",
                status_code=response.status_code,
                report=report,
            )
        logger.info(f"✅ Imported {imported} data values")
        return report

    def trigger_analytics(self) -> str:
        """Start analytics table generation; returns the task status endpoint."""
        response = self._request("POST", "/api/resourceTables/analytics")
        report = _report_body(response)
        if response.status_code != 200:
            raise ImportRejectedError(
                f"Analytics trigger failed with HTTP {response.status_code}",
                status_code=response.status_code,
                report=report,
            )
        endpoint = report.get("response", {}).get("relativeNotifierEndpoint")
        logger.info("📊 Analytics table generation started")
        return endpoint or ANALYTICS_TASK_ENDPOINT

    def task_completed(self, endpoint: str) -> bool:
        response = self._request("GET", endpoint)
        if response.status_code != 200:
            raise ImportRejectedError(
                f"Task status request {endpoint} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return notifications_completed(response.json())
