"""
Shared fixtures for the test suite.

A fake Astarte client stands in for the HTTP client so the services and the
API can be exercised without a network.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from astarte_datasource.main import app, get_datasource
from astarte_datasource.schemas.models import RawSample, SeriesQuery, TimeRange, classify_value
from astarte_datasource.services.datasource import AppEngineDatasource
from astarte_datasource.services.errors import AstarteAPIError

T0 = datetime(2022, 3, 1, 12, 0, tzinfo=timezone.utc)
REALM = "test"


def sample(offset_s: int, value: Any) -> RawSample:
    return RawSample(timestamp=T0 + timedelta(seconds=offset_s), kind=classify_value(value), value=value)


class FakePaginator:
    def __init__(self, pages: List[List[RawSample]], fail_on: Optional[int] = None, error: Optional[Exception] = None):
        self.pages = pages
        self.fail_on = fail_on
        self.error = error or AstarteAPIError("Internal server error", status_code=500)
        self.calls = 0

    def has_next_page(self) -> bool:
        return self.calls < len(self.pages)

    def get_next_page(self) -> List[RawSample]:
        self.calls += 1
        if self.fail_on == self.calls:
            raise self.error
        if self.calls > len(self.pages):
            return []
        return self.pages[self.calls - 1]


class FakeClient:
    def __init__(
        self,
        pages: Optional[Dict[str, List[List[RawSample]]]] = None,
        fail_on: Optional[Dict[str, int]] = None,
        devices: Optional[Dict[str, Dict[str, Any]]] = None,
        interfaces: Optional[Dict[Tuple[str, int], Any]] = None,
        error: Optional[Exception] = None,
    ):
        self.pages = pages or {}
        self.fail_on = fail_on or {}
        self.devices = devices or {}
        self.interfaces = interfaces or {}
        self.error = error
        self.calls: List[tuple] = []
        self.paginators: List[FakePaginator] = []
        self.closed = False

    def get_datastreams_time_window_paginator(self, realm, device_id, interface_name, path, since, to):
        self.calls.append(("datastream", realm, device_id, interface_name, path, since, to))
        paginator = FakePaginator(self.pages.get(device_id, []), fail_on=self.fail_on.get(device_id))
        self.paginators.append(paginator)
        return paginator

    def get_device(self, realm, device_id):
        self.calls.append(("device", realm, device_id))
        if self.error:
            raise self.error
        if device_id not in self.devices:
            raise AstarteAPIError("Device not found", status_code=404)
        return self.devices[device_id]

    def get_interface(self, realm, interface_name, major):
        self.calls.append(("interface", realm, interface_name, major))
        if self.error:
            raise self.error
        if (interface_name, major) not in self.interfaces:
            raise AstarteAPIError("Interface not found", status_code=404)
        return self.interfaces[(interface_name, major)]

    def get_devices_stats(self, realm):
        self.calls.append(("stats", realm))
        if self.error:
            raise self.error
        return {"total_devices": 3, "connected_devices": 1}

    def close(self):
        self.closed = True


@pytest.fixture
def query() -> SeriesQuery:
    return SeriesQuery(device="2TBn-jNESuuHamE2Zo1anA", interfaceName="org.example.Temp", path="/value")


@pytest.fixture
def time_range() -> TimeRange:
    return TimeRange(from_time=T0, to_time=T0 + timedelta(hours=1))


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def client(fake_client: FakeClient):
    """
    TestClient whose datasource is backed by the fake Astarte client.
    """
    app.dependency_overrides[get_datasource] = lambda: AppEngineDatasource(fake_client, REALM)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
