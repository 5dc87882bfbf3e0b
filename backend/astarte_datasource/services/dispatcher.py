import json
import threading
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from astarte_datasource.core.logger import get_logger
from astarte_datasource.schemas.models import Frame, QueryResult, SeriesQuery, TimeRange
from astarte_datasource.services.errors import DatasourceError, QueryValidationError
from astarte_datasource.services.series import fetch_series

logger = get_logger("dispatcher")

RawQuery = Union[str, bytes, Mapping[str, Any]]


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "query"
        parts.append(f"{loc}: {err.get('msg')}")
    return "Invalid query: " + "; ".join(parts)


def parse_query(raw_query: RawQuery) -> SeriesQuery:
    if isinstance(raw_query, (str, bytes)):
        try:
            raw_query = json.loads(raw_query)
        except ValueError as exc:
            raise QueryValidationError(f"Invalid query JSON: {exc}") from exc
    if not isinstance(raw_query, Mapping):
        raise QueryValidationError("Invalid query: expected a JSON object")
    try:
        return SeriesQuery.model_validate(dict(raw_query))
    except ValidationError as exc:
        raise QueryValidationError(_validation_message(exc)) from exc


def dispatch(
    raw_query: RawQuery,
    realm: str,
    client,
    time_range: TimeRange,
    ref_id: Optional[str] = None,
    cancelled: Optional[threading.Event] = None,
) -> QueryResult:
    """Run one query and wrap its outcome, success or failure, in a QueryResult."""
    try:
        query = parse_query(raw_query)
    except QueryValidationError as exc:
        logger.error(f"Error in query model: {exc}")
        return QueryResult(error=str(exc))

    logger.info(f"Received query device={query.device} interface={query.interfaceName} path={query.path}")
    try:
        series = fetch_series(client, realm, query, time_range, cancelled=cancelled)
    except DatasourceError as exc:
        logger.error(f"Query failed: {exc}")
        return QueryResult(error=str(exc))

    return QueryResult(frames=[Frame.from_series(series, ref_id=ref_id)])


def assign_ref_ids(queries: Iterable[RawQuery]) -> Dict[str, RawQuery]:
    """Key host queries by their refId, filling in A, B, C... where one is missing."""
    keyed: Dict[str, RawQuery] = {}
    for index, raw_query in enumerate(queries):
        ref_id = None
        if isinstance(raw_query, Mapping) and raw_query.get("refId"):
            ref_id = str(raw_query["refId"])
        if not ref_id or ref_id in keyed:
            ref_id = _fallback_ref_id(index, keyed)
        keyed[ref_id] = raw_query
    return keyed


def _fallback_ref_id(index: int, taken: Mapping[str, Any]) -> str:
    n = index
    while True:
        candidate = ""
        k = n
        while True:
            candidate = chr(ord("A") + k % 26) + candidate
            k = k // 26 - 1
            if k < 0:
                break
        if candidate not in taken:
            return candidate
        n += 1


def dispatch_batch(
    queries: Mapping[str, RawQuery],
    realm: str,
    client,
    time_range: TimeRange,
    cancelled: Optional[threading.Event] = None,
) -> Dict[str, QueryResult]:
    """Resolve each query on its own; one failing query never affects another."""
    results: Dict[str, QueryResult] = {}
    for ref_id, raw_query in queries.items():
        results[ref_id] = dispatch(raw_query, realm, client, time_range, ref_id=ref_id, cancelled=cancelled)
    return results
