from typing import Optional

from astarte_datasource.core.logger import get_logger
from astarte_datasource.schemas.models import RawSample, SeriesQuery, ValueKind
from astarte_datasource.services.errors import NonNumericValueError

logger = get_logger("normalizer")


def _parse_float(raw: str) -> float:
    # surrounding whitespace and digit separators are not part of a float literal
    if raw != raw.strip() or "_" in raw:
        raise ValueError(f"invalid float literal: {raw!r}")
    return float(raw)


def normalize(sample: RawSample, query: SeriesQuery) -> Optional[float]:
    """Read one sample's value as a float.

    Returns None when a string value does not parse as a number: the sample is
    dropped and the series goes on. Any value that is not a number or a string
    fails the whole query with NonNumericValueError.
    """
    if sample.kind is ValueKind.FLOAT:
        return sample.value
    if sample.kind is ValueKind.INTEGER:
        try:
            return float(sample.value)
        except OverflowError as exc:
            raise NonNumericValueError(query.device, query.interfaceName, query.path) from exc
    if sample.kind is ValueKind.STRING:
        try:
            return _parse_float(sample.value)
        except ValueError as exc:
            logger.warning(f"Could not parse as numeric datatype: value={sample.value!r} error={exc}")
            return None
    raise NonNumericValueError(query.device, query.interfaceName, query.path)
