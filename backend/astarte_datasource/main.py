import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from astarte_datasource.core.config import settings
from astarte_datasource.core.logger import get_logger
from astarte_datasource.schemas.models import (
    DatasourceSettings,
    HealthResult,
    QueryDataRequest,
    QueryDataResponse,
    TimeRange,
    parse_timestamp,
)
from astarte_datasource.services.datasource import AppEngineDatasource, InstanceManager
from astarte_datasource.services.dispatcher import assign_ref_ids

logger = get_logger("api")

app = FastAPI(title="Astarte AppEngine Datasource API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

manager = InstanceManager.from_app_settings(settings)

RELATIVE_TIME = re.compile(r"^now-(\d+)([smhdw])$")

TIME_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def _parse_time(raw: Union[int, str], now: datetime, name: str) -> datetime:
    value = str(raw).strip()
    if value == "now":
        return now
    match = RELATIVE_TIME.match(value)
    if match:
        amount, unit = match.groups()
        return now - timedelta(**{TIME_UNITS[unit]: int(amount)})
    try:
        if value.isascii() and value.isdigit():
            return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
        return parse_timestamp(value)
    except (ValueError, OverflowError, OSError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid time for {name}: {raw}") from exc


def _time_range(from_raw: Union[int, str], to_raw: Union[int, str], now: Optional[datetime] = None) -> TimeRange:
    now = now or datetime.now(timezone.utc)
    try:
        return TimeRange(from_time=_parse_time(from_raw, now, "from"), to_time=_parse_time(to_raw, now, "to"))
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail="to must be >= from") from exc


def _env_datasource_settings() -> Optional[DatasourceSettings]:
    if not (settings.ASTARTE_API_URL and settings.ASTARTE_REALM and settings.ASTARTE_TOKEN):
        return None
    return DatasourceSettings(
        api_url=settings.ASTARTE_API_URL,
        realm=settings.ASTARTE_REALM,
        token=settings.ASTARTE_TOKEN,
        appengine_url=settings.ASTARTE_APPENGINE_URL,
        realm_management_url=settings.ASTARTE_REALM_MANAGEMENT_URL,
    )


def get_datasource() -> AppEngineDatasource:
    ds_settings = manager.settings or _env_datasource_settings()
    if ds_settings is None:
        raise HTTPException(status_code=503, detail="Datasource is not configured")
    try:
        return manager.get(ds_settings)
    except ValueError as exc:
        raise HTTPException(status_code=503, detail=f"Cannot set up Astarte client: {exc}") from exc


@app.on_event("shutdown")
def shutdown() -> None:
    manager.dispose()


@app.get("/health")
def liveness():
    return {"status": "ok"}


@app.put("/api/datasource")
def configure(inp: DatasourceSettings):
    try:
        manager.get(inp)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Cannot set up Astarte client: {exc}") from exc
    return {"status": "ok", "realm": inp.realm, "apiUrl": inp.api_url}


@app.post("/api/ds/query", response_model=QueryDataResponse, response_model_exclude_none=True)
def query(inp: QueryDataRequest, datasource: AppEngineDatasource = Depends(get_datasource)):
    if not inp.queries:
        raise HTTPException(status_code=400, detail="No queries provided")
    time_range = _time_range(inp.from_time, inp.to_time)
    results = datasource.query_data(assign_ref_ids(inp.queries), time_range)
    return QueryDataResponse(results=results)


@app.get("/api/health", response_model=HealthResult)
def check_health(datasource: AppEngineDatasource = Depends(get_datasource)):
    return datasource.check_health()


@app.get("/api/resources")
@app.get("/api/resources/{resource:path}")
def call_resource(request: Request, datasource: AppEngineDatasource = Depends(get_datasource)):
    result = datasource.call_resource(str(request.url))
    return Response(content=result.body, status_code=result.status, media_type=result.content_type)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
