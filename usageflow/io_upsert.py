# usageflow/io_upsert.py
"""
Change detection and idempotent upsert of monthly summaries.

A summary is written (and announced) only when nothing is stored for its
(customerId, month) key yet, or when the stored summary differs from the new
one. Identical re-runs are a logged no-op.

There is no conditional write: two concurrent runs for the same key can both
see the old record and both write; the later write wins.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence

from usageflow.errors import NoRecordsError
from usageflow.io_notify import Notifier
from usageflow.io_stores import SummaryTable
from usageflow.models import HOURS_PER_DAY, MonthlySummary, Reading

logger = logging.getLogger(__name__)


class UpsertStatus(str, Enum):
    NEW = "NEW"
    UPDATED = "UPDATED"
    SKIPPED = "SKIPPED"


# ---------------------------
# Stored record schema
# ---------------------------

# Attribute name -> storage encoding. S: text, N: integer text, JSON: JSON text.
RECORD_SCHEMA: Dict[str, str] = {
    "customerId": "S",
    "month": "S",
    "computedAt": "S",
    "customerName": "S",
    "locationId": "S",
    "address": "S",
    "city": "S",
    "state": "S",
    "postalCode": "S",
    "recordCount": "N",
    "summary": "JSON",
    "rawData": "S",
}

_ENCODERS: Dict[str, Callable[[Any], str]] = {
    "S": str,
    "N": lambda v: str(int(v)),
    "JSON": lambda v: json.dumps(v, sort_keys=True),
}
_DECODERS: Dict[str, Callable[[str], Any]] = {
    "S": str,
    "N": int,
    "JSON": json.loads,
}


def encode_item(attributes: Dict[str, Any]) -> Dict[str, str]:
    """Encode record attributes for storage; unknown or missing attributes are errors."""
    unknown = set(attributes) - set(RECORD_SCHEMA)
    if unknown:
        raise KeyError(f"Attributes not in record schema: {sorted(unknown)}")
    return {name: _ENCODERS[encoding](attributes[name]) for name, encoding in RECORD_SCHEMA.items()}


def decode_item(item: Dict[str, str]) -> Dict[str, Any]:
    """Decode the attributes present in a stored item."""
    return {
        name: _DECODERS[encoding](item[name])
        for name, encoding in RECORD_SCHEMA.items()
        if name in item
    }


@dataclass(frozen=True)
class SummaryContext:
    """Key and denormalized fields carried alongside a computed summary."""

    customer_id: str
    customer_name: str
    month: str
    location: Dict[str, str]
    raw_data: str
    record_count: int

    @classmethod
    def from_batch(cls, readings: Sequence[Reading], raw_data: str) -> "SummaryContext":
        if not readings:
            raise NoRecordsError("Cannot build a summary context from an empty batch")
        first = readings[0]
        return cls(
            customer_id=first.customer_id,
            customer_name=first.customer_name,
            month=first.month_key,
            location=first.location(),
            raw_data=raw_data,
            record_count=len(readings),
        )


@dataclass(frozen=True)
class StoredSummaryRecord:
    context: SummaryContext
    summary: MonthlySummary
    computed_at: str

    def to_attributes(self) -> Dict[str, Any]:
        ctx = self.context
        return {
            "customerId": ctx.customer_id,
            "month": ctx.month,
            "computedAt": self.computed_at,
            "customerName": ctx.customer_name,
            "locationId": ctx.location["locationId"],
            "address": ctx.location["address"],
            "city": ctx.location["city"],
            "state": ctx.location["state"],
            "postalCode": ctx.location["postalCode"],
            "recordCount": ctx.record_count,
            "summary": self.summary.model_dump(by_alias=True),
            "rawData": ctx.raw_data,
        }


@dataclass(frozen=True)
class UpsertResult:
    status: UpsertStatus
    customer_id: str
    month: str
    computed_at: Optional[str] = None

    @property
    def written(self) -> bool:
        return self.status is not UpsertStatus.SKIPPED


# ---------------------------
# Structural equality
# ---------------------------

def summaries_equal(a: MonthlySummary, b: MonthlySummary) -> bool:
    """
    Field-by-field equality over the summary's fixed shape. byHour is compared
    slot by slot; floats must match exactly.
    """
    if len(a.averages.by_hour) != HOURS_PER_DAY or len(b.averages.by_hour) != HOURS_PER_DAY:
        return False
    return (
        a.period.start == b.period.start
        and a.period.end == b.period.end
        and a.total_kwh == b.total_kwh
        and a.averages.daily == b.averages.daily
        and a.averages.temperature == b.averages.temperature
        and all(x == y for x, y in zip(a.averages.by_hour, b.averages.by_hour))
        and a.device_usage.ev_charging_hours == b.device_usage.ev_charging_hours
        and a.device_usage.hot_water_heater_hours == b.device_usage.hot_water_heater_hours
        and a.device_usage.pool_pump_hours == b.device_usage.pool_pump_hours
        and a.device_usage.heat_pump_hours == b.device_usage.heat_pump_hours
        and a.peak_usage.value == b.peak_usage.value
        and a.peak_usage.timestamp == b.peak_usage.timestamp
        and a.peak_usage.temperature == b.peak_usage.temperature
    )


def _stored_summary(item: Dict[str, str], customer_id: str, month: str) -> Optional[MonthlySummary]:
    try:
        return MonthlySummary.model_validate(decode_item(item)["summary"])
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning(f"[UPSERT] stored summary for {customer_id}/{month} is unreadable, replacing it: {exc}")
        return None


# ---------------------------
# Upsert
# ---------------------------

def notification_subject(context: SummaryContext) -> str:
    return f"Energy Usage Summary for {context.customer_name} - {context.month}"


def notification_message(
    context: SummaryContext, summary: MonthlySummary, status: UpsertStatus
) -> Dict[str, Any]:
    return {
        "location": dict(context.location),
        "month": context.month,
        "summary": summary.model_dump(by_alias=True),
        "status": status.value,
    }


def upsert_summary(
    table: SummaryTable,
    notifier: Notifier,
    context: SummaryContext,
    summary: MonthlySummary,
    now: Optional[Callable[[], datetime]] = None,
) -> UpsertResult:
    """
    Persist summary for (context.customer_id, context.month) if it changed,
    then publish a change event.

    The write happens before the publish and is not rolled back if the
    publish fails.
    """
    existing = table.get_item(context.customer_id, context.month)

    if existing is None:
        status = UpsertStatus.NEW
    else:
        stored = _stored_summary(existing, context.customer_id, context.month)
        if stored is not None and summaries_equal(stored, summary):
            logger.info(
                f"[UPSERT] no changes for {context.location['address']} - {context.month}, skipping update"
            )
            return UpsertResult(UpsertStatus.SKIPPED, context.customer_id, context.month)
        status = UpsertStatus.UPDATED

    computed_at = (now or (lambda: datetime.now(timezone.utc)))().isoformat()
    record = StoredSummaryRecord(context=context, summary=summary, computed_at=computed_at)
    table.put_item(encode_item(record.to_attributes()))

    notifier.publish(notification_subject(context), notification_message(context, summary, status))

    logger.info(
        f"[UPSERT] {'created' if status is UpsertStatus.NEW else 'updated'} summary for "
        f"{context.location['address']} - {context.month}"
    )
    return UpsertResult(status, context.customer_id, context.month, computed_at)
