# usageflow/models.py
"""
Typed records passed between pipeline stages.

Serialized forms (batch documents, stored summaries, notifications) use the
camelCase names of the input CSV; attributes here are snake_case.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from usageflow.errors import MalformedInputError

HOURS_PER_DAY = 24


def parse_timestamp(value: str) -> pd.Timestamp:
    """Parse a reading timestamp; raises ValueError when it is not a date-time."""
    ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        raise ValueError(f"Unparsable timestamp: {value!r}")
    return ts


def month_key(ts: pd.Timestamp) -> str:
    """Four-digit year plus zero-padded month, e.g. 2024-01."""
    return f"{ts.year:04d}-{ts.month:02d}"


def _finite(value: float) -> float:
    if math.isnan(value):
        raise ValueError("Value is NaN")
    if math.isinf(value):
        raise ValueError("Value is infinite")
    return value


def describe_validation_error(exc: ValidationError) -> str:
    """First error of a ValidationError as 'Field <name>: <message>'."""
    first = exc.errors()[0]
    name = ".".join(str(part) for part in first["loc"]) or "record"
    return f"Field {name}: {first['msg']} (got {first.get('input')!r})"


class Reading(BaseModel):
    """One hourly measurement. Strict: strings stay strings, flags must be booleans."""

    model_config = ConfigDict(strict=True, frozen=True, populate_by_name=True)

    customer_id: str = Field(..., alias="customerId")
    customer_name: str = Field(..., alias="customerName")
    location_id: str = Field(..., alias="locationId")
    address: str
    city: str
    state: str
    postal_code: str = Field(..., alias="postalCode")
    timestamp: str
    kwh: float = Field(..., alias="kWh")
    outside_temp: float = Field(..., alias="outsideTemp")
    ev_charging: bool = Field(..., alias="electricVehicleCharging")
    hot_water_heater: bool = Field(..., alias="hotWaterHeater")
    pool_pump: bool = Field(..., alias="poolPump")
    heat_pump: bool = Field(..., alias="heatPump")

    @field_validator("kwh", "outside_temp")
    @classmethod
    def validate_finite(cls, v):
        return _finite(v)

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v):
        parse_timestamp(v)
        return v

    @property
    def parsed_timestamp(self) -> pd.Timestamp:
        return parse_timestamp(self.timestamp)

    @property
    def month_key(self) -> str:
        return month_key(self.parsed_timestamp)

    def location(self) -> Dict[str, str]:
        return {
            "locationId": self.location_id,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "postalCode": self.postal_code,
        }


def parse_reading(data: Any) -> Reading:
    """Validate one serialized reading; any problem is a MalformedInputError."""
    try:
        return Reading.model_validate(data)
    except ValidationError as exc:
        raise MalformedInputError(describe_validation_error(exc)) from exc


# ---------------------------
# Monthly summary
# ---------------------------

class _SummaryPart(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Period(_SummaryPart):
    start: str
    end: str


class Averages(_SummaryPart):
    daily: float
    by_hour: List[float] = Field(..., alias="byHour")
    temperature: float

    @field_validator("by_hour")
    @classmethod
    def validate_slots(cls, v):
        if len(v) != HOURS_PER_DAY:
            raise ValueError(f"byHour must have {HOURS_PER_DAY} slots, got {len(v)}")
        return v


class DeviceUsage(_SummaryPart):
    ev_charging_hours: int = Field(0, alias="evChargingHours")
    hot_water_heater_hours: int = Field(0, alias="hotWaterHeaterHours")
    pool_pump_hours: int = Field(0, alias="poolPumpHours")
    heat_pump_hours: int = Field(0, alias="heatPumpHours")


class PeakUsage(_SummaryPart):
    value: float
    timestamp: str
    temperature: float


class MonthlySummary(_SummaryPart):
    period: Period
    total_kwh: float = Field(..., alias="totalKwh")
    averages: Averages
    device_usage: DeviceUsage = Field(..., alias="deviceUsage")
    peak_usage: PeakUsage = Field(..., alias="peakUsage")


@dataclass(frozen=True)
class TriggerLocator:
    bucket: str
    key: str


@dataclass(frozen=True)
class BatchKey:
    customer_id: str
    location_id: str
    month: str

    @property
    def object_key(self) -> str:
        return f"{self.customer_id}/{self.location_id}/{self.month}/energy-data.json"


@dataclass
class StoredObject:
    body: bytes
    content_type: str = "application/octet-stream"
    metadata: Dict[str, str] = field(default_factory=dict)
