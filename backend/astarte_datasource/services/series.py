import threading
from typing import Optional

from astarte_datasource.core.logger import get_logger
from astarte_datasource.schemas.models import SeriesQuery, TimeRange, TimeSeries
from astarte_datasource.services.errors import QueryCancelledError
from astarte_datasource.services.normalizer import normalize

logger = get_logger("series")


def _check_cancelled(cancelled: Optional[threading.Event], query: SeriesQuery) -> None:
    if cancelled is not None and cancelled.is_set():
        raise QueryCancelledError(f"Query on device {query.device}, interface {query.interfaceName} was cancelled")


def fetch_series(
    client,
    realm: str,
    query: SeriesQuery,
    time_range: TimeRange,
    cancelled: Optional[threading.Event] = None,
) -> TimeSeries:
    """Fetch every page of a datastream window and return it as a numeric series.

    The first page is always requested, so credential and connectivity errors
    show up even on an empty window. Any page error or non-numeric value
    aborts the whole fetch; nothing partial is returned.
    """
    _check_cancelled(cancelled, query)
    paginator = client.get_datastreams_time_window_paginator(
        realm,
        query.device,
        query.interfaceName,
        query.path,
        time_range.from_time,
        time_range.to_time,
    )

    series = TimeSeries()
    pages = 0
    while True:
        _check_cancelled(cancelled, query)
        try:
            page = paginator.get_next_page()
        except Exception as exc:
            logger.error(f"Next page paginator error: {exc}")
            raise
        pages += 1

        for sample in page:
            value = normalize(sample, query)
            if value is not None:
                series.append(sample.timestamp, value)

        if not paginator.has_next_page():
            break

    logger.info(
        f"Read {len(series)} samples in {pages} page(s) for device={query.device} "
        f"interface={query.interfaceName} path={query.path}"
    )
    return series
