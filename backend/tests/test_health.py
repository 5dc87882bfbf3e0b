from astarte_datasource.schemas.models import HealthStatus
from astarte_datasource.services.errors import AstarteAPIError
from astarte_datasource.services.health import HEALTHY_MESSAGE, probe
from tests.conftest import REALM, FakeClient


def test_healthy_when_stats_call_succeeds():
    client = FakeClient()

    result = probe(client, REALM)

    assert result.status is HealthStatus.OK
    assert result.message == HEALTHY_MESSAGE
    assert client.calls == [("stats", REALM)]


def test_degraded_with_exact_error_message():
    client = FakeClient(error=AstarteAPIError("Invalid JWT", status_code=401))

    result = probe(client, REALM)

    assert result.status is HealthStatus.ERROR
    assert result.message == "Invalid JWT"
