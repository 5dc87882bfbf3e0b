from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

FieldType = Literal["time", "number"]


class ValueKind(str, Enum):
    FLOAT = "float"
    INTEGER = "integer"
    STRING = "string"
    OTHER = "other"


def classify_value(value: Any) -> ValueKind:
    # bool is a subclass of int and must not be read as a number
    if isinstance(value, bool):
        return ValueKind.OTHER
    if isinstance(value, int):
        return ValueKind.INTEGER
    if isinstance(value, float):
        return ValueKind.FLOAT
    if isinstance(value, str):
        return ValueKind.STRING
    return ValueKind.OTHER


def parse_timestamp(raw: str) -> datetime:
    dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class RawSample:
    """One datastream sample as returned by Astarte, tagged with its value kind."""

    timestamp: datetime
    kind: ValueKind
    value: Any

    @classmethod
    def from_json(cls, item: Dict[str, Any]) -> "RawSample":
        if not isinstance(item, dict):
            raise ValueError(f"expected an object, got {type(item).__name__}")
        raw_timestamp = item["timestamp"]
        if not isinstance(raw_timestamp, str):
            raise ValueError(f"timestamp must be an ISO 8601 string, got {raw_timestamp!r}")
        value = item.get("value")
        return cls(timestamp=parse_timestamp(raw_timestamp), kind=classify_value(value), value=value)


@dataclass
class TimeSeries:
    """Two parallel, append-only columns in ascending time order."""

    timestamps: List[datetime] = field(default_factory=list)
    values: List[float] = field(default_factory=list)

    def append(self, timestamp: datetime, value: float) -> None:
        self.timestamps.append(timestamp)
        self.values.append(value)

    def __len__(self) -> int:
        return len(self.timestamps)


class SeriesQuery(BaseModel):
    model_config = ConfigDict(extra="ignore")

    device: str
    interfaceName: str
    path: str

    @field_validator("device", "interfaceName")
    @classmethod
    def _not_blank(cls, v: str, info):
        if not v.strip():
            raise ValueError(f"{info.field_name} must not be empty")
        return v.strip()


class TimeRange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_time: datetime = Field(alias="from")
    to_time: datetime = Field(alias="to")

    @model_validator(mode="after")
    def _ordered(self):
        if self.to_time < self.from_time:
            raise ValueError("to must be >= from")
        return self


class IntrospectionEntry(BaseModel):
    name: str
    major: int
    minor: int


class FrameField(BaseModel):
    name: str
    type: FieldType


class FrameSchema(BaseModel):
    name: str
    refId: Optional[str] = None
    fields: List[FrameField]


class FrameData(BaseModel):
    values: List[List[Any]]


class Frame(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    frame_schema: FrameSchema = Field(alias="schema")
    data: FrameData

    @classmethod
    def from_series(cls, series: TimeSeries, ref_id: Optional[str] = None) -> "Frame":
        times = [int(ts.timestamp() * 1000) for ts in series.timestamps]
        return cls(
            frame_schema=FrameSchema(
                name="response",
                refId=ref_id,
                fields=[FrameField(name="Time", type="time"), FrameField(name="Value", type="number")],
            ),
            data=FrameData(values=[times, list(series.values)]),
        )


class QueryResult(BaseModel):
    frames: List[Frame] = Field(default_factory=list)
    error: Optional[str] = None


class QueryDataRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_time: Union[int, str] = Field(default="now-6h", alias="from")
    to_time: Union[int, str] = Field(default="now", alias="to")
    queries: List[Any]


class QueryDataResponse(BaseModel):
    results: Dict[str, QueryResult]


class HealthStatus(str, Enum):
    OK = "OK"
    ERROR = "ERROR"


class HealthResult(BaseModel):
    status: HealthStatus
    message: str


@dataclass(frozen=True)
class ResourceResponse:
    status: int
    body: bytes
    content_type: str = "application/json"


class DatasourceSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    api_url: str = Field(alias="apiUrl")
    realm: str
    token: str
    appengine_url: Optional[str] = Field(default=None, alias="appengineUrl")
    realm_management_url: Optional[str] = Field(default=None, alias="realmManagementUrl")

    @field_validator("api_url", "realm", "token")
    @classmethod
    def _required(cls, v: str, info):
        if not (v or "").strip():
            raise ValueError(f"Missing field: {info.field_name}")
        return v.strip()
