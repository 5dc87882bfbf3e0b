from astarte_datasource.core.logger import get_logger
from astarte_datasource.schemas.models import HealthResult, HealthStatus
from astarte_datasource.services.errors import DatasourceError

logger = get_logger("health")

HEALTHY_MESSAGE = "Data source is working"


def probe(client, realm: str) -> HealthResult:
    # A real read against the realm, so the token is checked too
    try:
        client.get_devices_stats(realm)
    except DatasourceError as exc:
        logger.error(f"CheckHealth error: {exc}")
        return HealthResult(status=HealthStatus.ERROR, message=str(exc))
    return HealthResult(status=HealthStatus.OK, message=HEALTHY_MESSAGE)
