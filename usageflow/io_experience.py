# usageflow/io_experience.py

import json
import logging
import math
from typing import List, Optional, Sequence

from usageflow.errors import MalformedInputError, NoRecordsError
from usageflow.io_standardized import line_at
from usageflow.models import (
    HOURS_PER_DAY,
    Averages,
    DeviceUsage,
    MonthlySummary,
    PeakUsage,
    Period,
    Reading,
    parse_reading,
)

logger = logging.getLogger(__name__)


def parse_batch_document(text: str, key: Optional[str] = None) -> List[Reading]:
    """Decode a normalized batch document back into readings."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        line = line_at(text.splitlines(), exc.lineno)
        logger.error(f"[AGGREGATE] batch document is not JSON key={key}: {exc}")
        raise MalformedInputError(
            f"Batch document is not valid JSON: {exc}", line=line, line_number=exc.lineno, key=key
        ) from exc

    if not isinstance(data, list):
        raise MalformedInputError(f"Batch document must be a JSON array, got {type(data).__name__}", key=key)
    if not data:
        logger.error(f"[AGGREGATE] batch document holds zero records key={key}")
        raise NoRecordsError("No records found in JSON data", key=key, record_count=0)

    readings = []
    for position, item in enumerate(data):
        try:
            readings.append(parse_reading(item))
        except MalformedInputError as exc:
            logger.error(f"[AGGREGATE] invalid record {position} key={key}: {exc}")
            raise MalformedInputError(f"Invalid record {position}: {exc}", key=key) from exc
    return readings


def build_monthly_summary(readings: Sequence[Reading]) -> MonthlySummary:
    """
    Monthly usage summary for one homogeneous batch, in a single ordered pass.

      - period spans the first and last reading as delivered (no sorting)
      - byHour slots sum kWh by wall-clock hour of each timestamp
      - the peak moves only on a strictly greater kWh, so the first reading
        to reach the maximum keeps it
      - each reading counts as one hour for the device counters
      - daily and byHour are divided by ceil(count / 24) days
    """
    if not readings:
        raise NoRecordsError("Cannot summarize an empty batch")

    total_kwh = 0.0
    temperature_sum = 0.0
    hourly = [0.0] * HOURS_PER_DAY
    ev_hours = hot_water_hours = pool_hours = heat_pump_hours = 0
    peak: Optional[Reading] = None

    for reading in readings:
        total_kwh += reading.kwh
        temperature_sum += reading.outside_temp
        hourly[reading.parsed_timestamp.hour] += reading.kwh

        if peak is None or reading.kwh > peak.kwh:
            peak = reading

        if reading.ev_charging:
            ev_hours += 1
        if reading.hot_water_heater:
            hot_water_hours += 1
        if reading.pool_pump:
            pool_hours += 1
        if reading.heat_pump:
            heat_pump_hours += 1

    count = len(readings)
    days = math.ceil(count / HOURS_PER_DAY)

    return MonthlySummary(
        period=Period(start=readings[0].timestamp, end=readings[-1].timestamp),
        total_kwh=total_kwh,
        averages=Averages(
            daily=total_kwh / days,
            by_hour=[value / days for value in hourly],
            temperature=temperature_sum / count,
        ),
        device_usage=DeviceUsage(
            ev_charging_hours=ev_hours,
            hot_water_heater_hours=hot_water_hours,
            pool_pump_hours=pool_hours,
            heat_pump_hours=heat_pump_hours,
        ),
        peak_usage=PeakUsage(
            value=peak.kwh,
            timestamp=peak.timestamp,
            temperature=peak.outside_temp,
        ),
    )
