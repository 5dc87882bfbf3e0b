import json
from typing import Any, List
from urllib.parse import parse_qs, urlparse

from astarte_datasource.core.logger import get_logger
from astarte_datasource.schemas.models import IntrospectionEntry, ResourceResponse
from astarte_datasource.services.errors import DatasourceError, QueryValidationError

logger = get_logger("resources")

UNEXPECTED_REQUEST = "unexpected request"


def _send_result(payload: Any) -> ResourceResponse:
    logger.info("Sending call resource response")
    return ResourceResponse(status=200, body=json.dumps(payload).encode("utf-8"))


def _send_bad_request(message: str) -> ResourceResponse:
    return ResourceResponse(status=400, body=message.encode("utf-8"), content_type="text/plain")


def _require(raw: str, name: str) -> str:
    value = raw.strip()
    if not value:
        raise QueryValidationError(f"Missing value for {name}")
    return value


def _parse_major(raw: str) -> int:
    value = raw.strip()
    if not (value.isascii() and value.isdigit()):
        raise QueryValidationError(f"Invalid interface major version: {raw!r}")
    return int(value)


def get_device_introspection(client, realm: str, device_id: str) -> List[IntrospectionEntry]:
    details = client.get_device(realm, device_id)
    introspection = (details or {}).get("introspection") or {}
    logger.info(f"Received Astarte introspection for device {device_id}")
    entries = [
        IntrospectionEntry(name=name, major=int(versions.get("major", 0)), minor=int(versions.get("minor", 0)))
        for name, versions in introspection.items()
    ]
    entries.sort(key=lambda e: (e.name, e.major))
    return entries


def get_interface(client, realm: str, interface_name: str, major: int) -> Any:
    doc = client.get_interface(realm, interface_name, major)
    logger.info(f"Received doc for interface {interface_name} major {major}")
    return doc


def route(client, realm: str, request_url: str) -> ResourceResponse:
    """Answer a resource request from its query string.

    ``device_id`` lists the interfaces of a device; ``name`` plus ``major``
    returns one interface document. Anything else is a 400 and never reaches
    Astarte.
    """
    params = parse_qs(urlparse(request_url).query, keep_blank_values=True)

    try:
        if "device_id" in params:
            device_id = _require(params["device_id"][0], "device_id")
            entries = get_device_introspection(client, realm, device_id)
            return _send_result([e.model_dump() for e in entries])

        if "name" in params and "major" in params:
            name = _require(params["name"][0], "name")
            major = _parse_major(params["major"][0])
            return _send_result(get_interface(client, realm, name, major))
    except DatasourceError as exc:
        logger.error(f"Resource request failed: {exc}")
        return _send_bad_request(str(exc))

    return _send_bad_request(UNEXPECTED_REQUEST)
