from typing import Optional


class DatasourceError(Exception):
    """Base class for every error raised by the datasource services."""


class QueryValidationError(DatasourceError):
    """A query payload or resource request is malformed."""


class AstarteAPIError(DatasourceError):
    """A call to Astarte failed, either at HTTP level or on the network."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NonNumericValueError(DatasourceError):
    """A datastream holds values that cannot be read as numbers."""

    def __init__(self, device: str, interface_name: str, path: str):
        super().__init__(
            f"Device {device} has data of non-numeric type on interface {interface_name}, path {path}"
        )
        self.device = device
        self.interface_name = interface_name
        self.path = path


class QueryCancelledError(DatasourceError):
    """The caller gave up on the query before it completed."""
