import threading
from typing import Dict, Optional

from astarte_datasource.core.config import Settings
from astarte_datasource.core.logger import get_logger
from astarte_datasource.schemas.models import (
    DatasourceSettings,
    HealthResult,
    QueryResult,
    ResourceResponse,
    TimeRange,
)
from astarte_datasource.services import dispatcher, health, resources
from astarte_datasource.services.astarte_client import DEFAULT_PAGE_SIZE, DEFAULT_TIMEOUT, AstarteClient

logger = get_logger("datasource")


class AppEngineDatasource:
    """One configured datasource: runs queries, reports health and serves resources.

    It owns a single Astarte client for its whole lifetime and only reads it.
    """

    def __init__(self, client, realm: str) -> None:
        self.client = client
        self.realm = realm

    @classmethod
    def from_settings(
        cls,
        ds_settings: DatasourceSettings,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> "AppEngineDatasource":
        logger.info(f"Starting datasource realm={ds_settings.realm} apiUrl={ds_settings.api_url}")
        client = AstarteClient(
            ds_settings.api_url,
            ds_settings.token,
            appengine_url=ds_settings.appengine_url,
            realm_management_url=ds_settings.realm_management_url,
            page_size=page_size,
            timeout=timeout,
        )
        return cls(client, ds_settings.realm)

    def query_data(
        self,
        queries: Dict[str, dispatcher.RawQuery],
        time_range: TimeRange,
        cancelled: Optional[threading.Event] = None,
    ) -> Dict[str, QueryResult]:
        logger.info(f"QueryData called with {len(queries)} queries")
        return dispatcher.dispatch_batch(queries, self.realm, self.client, time_range, cancelled=cancelled)

    def check_health(self) -> HealthResult:
        logger.info("CheckHealth called")
        return health.probe(self.client, self.realm)

    def call_resource(self, request_url: str) -> ResourceResponse:
        logger.info(f"CallResource called url={request_url}")
        return resources.route(self.client, self.realm, request_url)

    def dispose(self) -> None:
        logger.info(f"Disposing of datasource realm={self.realm}")
        close = getattr(self.client, "close", None)
        if close is not None:
            close()


class InstanceManager:
    """Keeps one datasource per settings, replacing it when the settings change."""

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE, timeout: int = DEFAULT_TIMEOUT) -> None:
        self.page_size = page_size
        self.timeout = timeout
        self._settings: Optional[DatasourceSettings] = None
        self._instance: Optional[AppEngineDatasource] = None
        self._lock = threading.Lock()

    @classmethod
    def from_app_settings(cls, app_settings: Settings) -> "InstanceManager":
        return cls(page_size=app_settings.PAGE_SIZE, timeout=app_settings.REQUEST_TIMEOUT)

    @property
    def settings(self) -> Optional[DatasourceSettings]:
        return self._settings

    def get(self, ds_settings: DatasourceSettings) -> AppEngineDatasource:
        with self._lock:
            if self._instance is not None and self._settings == ds_settings:
                return self._instance
            if self._instance is not None:
                self._instance.dispose()
            self._instance = AppEngineDatasource.from_settings(
                ds_settings, page_size=self.page_size, timeout=self.timeout
            )
            self._settings = ds_settings
            return self._instance

    def dispose(self) -> None:
        with self._lock:
            if self._instance is not None:
                self._instance.dispose()
            self._instance = None
            self._settings = None
