from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from astarte_datasource.core.logger import get_logger
from astarte_datasource.schemas.models import RawSample
from astarte_datasource.services.errors import AstarteAPIError

logger = get_logger("astarte_client")

DEFAULT_PAGE_SIZE = 1000
DEFAULT_TIMEOUT = 40


def _isoformat_z(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _error_message(res: requests.Response) -> str:
    try:
        payload = res.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        errors = payload.get("errors")
        if isinstance(errors, dict) and errors.get("detail"):
            return str(errors["detail"])
    body = (res.text or "")[:300]
    return body or res.reason or "API error"


class AstarteClient:
    """Authenticated client for the Astarte AppEngine and Realm Management APIs.

    The service URLs are derived from the API base URL unless given
    individually, which is needed when Astarte runs on localhost.
    """

    def __init__(
        self,
        api_url: str,
        token: str,
        appengine_url: Optional[str] = None,
        realm_management_url: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        base = (api_url or "").strip().rstrip("/")
        if not base and not (appengine_url and realm_management_url):
            raise ValueError("Missing Astarte API URL")
        if page_size <= 0:
            raise ValueError("page_size must be positive")

        self.appengine_url = (appengine_url or f"{base}/appengine").rstrip("/")
        self.realm_management_url = (realm_management_url or f"{base}/realmmanagement").rstrip("/")
        self.page_size = page_size
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json", "Authorization": f"Bearer {token}"})

    def _get_data(self, url: str, params: Optional[Dict[str, str]] = None) -> Any:
        try:
            res = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise AstarteAPIError(f"Astarte network error: {exc}") from exc

        if not res.ok:
            message = _error_message(res)
            logger.error(f"Astarte HTTP {res.status_code} on {url}: {message}")
            raise AstarteAPIError(message, status_code=res.status_code)

        try:
            payload = res.json()
        except ValueError as exc:
            raise AstarteAPIError(f"Astarte returned invalid JSON: {exc}", status_code=res.status_code) from exc
        if not isinstance(payload, dict) or "data" not in payload:
            raise AstarteAPIError("Astarte response has no data field", status_code=res.status_code)
        return payload["data"]

    def get_datastreams_time_window_paginator(
        self,
        realm: str,
        device_id: str,
        interface_name: str,
        path: str,
        since: datetime,
        to: datetime,
    ) -> "DatastreamPaginator":
        return DatastreamPaginator(self, realm, device_id, interface_name, path, since, to, self.page_size)

    def get_device(self, realm: str, device_id: str) -> Dict[str, Any]:
        url = f"{self.appengine_url}/v1/{realm}/devices/{quote(device_id, safe='')}"
        return self._get_data(url) or {}

    def get_interface(self, realm: str, interface_name: str, major: int) -> Any:
        url = f"{self.realm_management_url}/v1/{realm}/interfaces/{quote(interface_name, safe='')}/{major}"
        return self._get_data(url)

    def get_devices_stats(self, realm: str) -> Dict[str, Any]:
        url = f"{self.appengine_url}/v1/{realm}/stats/devices"
        return self._get_data(url) or {}

    def close(self) -> None:
        self.session.close()


class DatastreamPaginator:
    """Walks a datastream time window in ascending order, one page at a time.

    The first page is bounded by ``since``; every later page starts strictly
    after the last timestamp already returned. A short page means the window
    is exhausted.
    """

    def __init__(
        self,
        client: AstarteClient,
        realm: str,
        device_id: str,
        interface_name: str,
        path: str,
        since: datetime,
        to: datetime,
        page_size: int,
    ) -> None:
        self.client = client
        self.since = since
        self.to = to
        self.page_size = page_size
        self._last_timestamp: Optional[datetime] = None
        self._has_next = True

        suffix = "/".join(quote(part, safe="") for part in path.strip("/").split("/") if part)
        self.url = (
            f"{client.appengine_url}/v1/{realm}/devices/{quote(device_id, safe='')}"
            f"/interfaces/{quote(interface_name, safe='')}"
        )
        if suffix:
            self.url = f"{self.url}/{suffix}"

    def has_next_page(self) -> bool:
        return self._has_next

    def get_next_page(self) -> List[RawSample]:
        if not self._has_next:
            raise RuntimeError("datastream window already exhausted")

        params = {"to": _isoformat_z(self.to), "limit": str(self.page_size)}
        if self._last_timestamp is None:
            params["since"] = _isoformat_z(self.since)
        else:
            params["since_after"] = _isoformat_z(self._last_timestamp)

        data = self.client._get_data(self.url, params=params)
        if not isinstance(data, list):
            raise AstarteAPIError("Expected a list of datastream samples from Astarte")

        try:
            page = [RawSample.from_json(item) for item in data]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise AstarteAPIError(f"Malformed datastream sample from Astarte: {exc}") from exc
        if page:
            self._last_timestamp = page[-1].timestamp
        self._has_next = len(page) >= self.page_size
        return page
