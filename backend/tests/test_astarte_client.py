from datetime import timedelta
from unittest.mock import MagicMock

import pytest
import requests

from astarte_datasource.schemas.models import TimeRange, ValueKind
from astarte_datasource.services.astarte_client import AstarteClient
from astarte_datasource.services.dispatcher import dispatch_batch
from astarte_datasource.services.errors import AstarteAPIError
from tests.conftest import T0


def _response(status: int = 200, payload=None, text: str = "", reason: str = "") -> MagicMock:
    res = MagicMock()
    res.ok = 200 <= status < 300
    res.status_code = status
    res.text = text
    res.reason = reason
    if payload is None:
        res.json.side_effect = ValueError("no json")
    else:
        res.json.return_value = payload
    return res


def _client(**kwargs) -> AstarteClient:
    client = AstarteClient("https://api.astarte.example.com/", "secret-token", **kwargs)
    client.session = MagicMock()
    return client


def _samples(start: int, count: int):
    return [
        {"timestamp": (T0 + timedelta(seconds=start + i)).isoformat().replace("+00:00", "Z"), "value": start + i}
        for i in range(count)
    ]


def test_service_urls_derive_from_base_url():
    client = AstarteClient("https://api.astarte.example.com/", "t")
    assert client.appengine_url == "https://api.astarte.example.com/appengine"
    assert client.realm_management_url == "https://api.astarte.example.com/realmmanagement"
    assert client.session.headers["Authorization"] == "Bearer t"


def test_individual_urls_override_base_url():
    client = AstarteClient(
        "http://localhost",
        "t",
        appengine_url="http://localhost:4002/",
        realm_management_url="http://localhost:4000",
    )
    assert client.appengine_url == "http://localhost:4002"
    assert client.realm_management_url == "http://localhost:4000"


def test_missing_api_url_is_rejected():
    with pytest.raises(ValueError):
        AstarteClient("", "t")


def test_get_device_unwraps_data():
    client = _client()
    client.session.get.return_value = _response(payload={"data": {"id": "abc", "introspection": {}}})

    assert client.get_device("test", "abc") == {"id": "abc", "introspection": {}}
    url = client.session.get.call_args[0][0]
    assert url == "https://api.astarte.example.com/appengine/v1/test/devices/abc"


def test_get_interface_uses_realm_management():
    client = _client()
    client.session.get.return_value = _response(payload={"data": {"interface_name": "org.example.Temp"}})

    client.get_interface("test", "org.example.Temp", 1)

    url = client.session.get.call_args[0][0]
    assert url == "https://api.astarte.example.com/realmmanagement/v1/test/interfaces/org.example.Temp/1"


def test_http_error_uses_astarte_error_detail():
    client = _client()
    client.session.get.return_value = _response(401, payload={"errors": {"detail": "Unauthorized"}})

    with pytest.raises(AstarteAPIError) as exc_info:
        client.get_devices_stats("test")
    assert exc_info.value.status_code == 401
    assert str(exc_info.value) == "Unauthorized"


def test_http_error_falls_back_to_body_text():
    client = _client()
    client.session.get.return_value = _response(502, text="Bad Gateway")

    with pytest.raises(AstarteAPIError) as exc_info:
        client.get_devices_stats("test")
    assert str(exc_info.value) == "Bad Gateway"


def test_network_error_is_wrapped():
    client = _client()
    client.session.get.side_effect = requests.ConnectionError("connection refused")

    with pytest.raises(AstarteAPIError) as exc_info:
        client.get_devices_stats("test")
    assert exc_info.value.status_code is None
    assert "connection refused" in str(exc_info.value)


def test_paginator_walks_window_with_since_after():
    client = _client(page_size=2)
    client.session.get.side_effect = [
        _response(payload={"data": _samples(0, 2)}),
        _response(payload={"data": _samples(2, 1)}),
    ]
    paginator = client.get_datastreams_time_window_paginator(
        "test", "abc", "org.example.Temp", "/sensor/value", T0, T0 + timedelta(hours=1)
    )

    assert paginator.has_next_page()
    first = paginator.get_next_page()
    assert [s.value for s in first] == [0, 1]
    assert first[0].kind is ValueKind.INTEGER
    assert paginator.has_next_page()
    second = paginator.get_next_page()
    assert [s.value for s in second] == [2]
    assert not paginator.has_next_page()

    first_call, second_call = client.session.get.call_args_list
    assert first_call[0][0] == (
        "https://api.astarte.example.com/appengine/v1/test/devices/abc/interfaces/org.example.Temp/sensor/value"
    )
    assert first_call[1]["params"]["since"] == "2022-03-01T12:00:00.000000Z"
    assert first_call[1]["params"]["limit"] == "2"
    assert "since_after" not in first_call[1]["params"]
    assert second_call[1]["params"]["since_after"] == "2022-03-01T12:00:01.000000Z"
    assert "since" not in second_call[1]["params"]


def test_paginator_rejects_malformed_samples():
    client = _client()
    client.session.get.return_value = _response(payload={"data": [{"value": 1}]})
    paginator = client.get_datastreams_time_window_paginator("test", "abc", "org.example.Temp", "/v", T0, T0)

    with pytest.raises(AstarteAPIError):
        paginator.get_next_page()


@pytest.mark.parametrize(
    "item",
    [
        {"timestamp": 1646136000000, "value": 1.0},
        "2022-03-01T12:00:00Z",
        {"timestamp": None, "value": 1.0},
    ],
)
def test_paginator_rejects_samples_of_the_wrong_shape(item):
    client = _client()
    client.session.get.return_value = _response(payload={"data": [item]})
    paginator = client.get_datastreams_time_window_paginator("test", "abc", "org.example.Temp", "/v", T0, T0)

    with pytest.raises(AstarteAPIError):
        paginator.get_next_page()


def test_malformed_sample_stays_within_its_query():
    client = _client()
    client.session.get.side_effect = [
        _response(payload={"data": [{"timestamp": 1646136000000, "value": 1.0}]}),
        _response(payload={"data": _samples(0, 2)}),
    ]
    time_range = TimeRange(from_time=T0, to_time=T0 + timedelta(hours=1))
    queries = {
        "A": {"device": "broken", "interfaceName": "org.example.Temp", "path": "/v"},
        "B": {"device": "abc", "interfaceName": "org.example.Temp", "path": "/v"},
    }

    results = dispatch_batch(queries, "test", client, time_range)

    assert list(results) == ["A", "B"]
    assert results["A"].frames == []
    assert results["A"].error.startswith("Malformed datastream sample")
    assert results["B"].error is None
    assert results["B"].frames[0].data.values[1] == [0.0, 1.0]
