# usageflow/io_standardized.py

import io
import logging
import re
from typing import Any, Dict, List, Optional

import pandas as pd

from usageflow.errors import EmptyInputError, MalformedInputError, NoRecordsError
from usageflow.models import Reading, parse_reading

logger = logging.getLogger(__name__)

READING_COLUMNS = [
    "customerId",
    "customerName",
    "locationId",
    "address",
    "city",
    "state",
    "postalCode",
    "timestamp",
    "kWh",
    "outsideTemp",
    "electricVehicleCharging",
    "hotWaterHeater",
    "poolPump",
    "heatPump",
]

# Never coerced to numbers even when the cell looks numeric.
STRING_COLUMNS = {
    "customerId",
    "locationId",
    "address",
    "city",
    "state",
    "postalCode",
    "timestamp",
}

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_PARSER_LINE_RE = re.compile(r"line (\d+)")


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Strip whitespace from column names."""
    out = df.copy()
    out.columns = [str(c).strip() for c in out.columns]
    return out


def coerce_cell(column: str, value: str) -> Any:
    """
    'true'/'false' (any case) -> bool, numeric text outside STRING_COLUMNS ->
    float, anything else -> the original string.
    """
    lower = value.lower()
    if lower == "true":
        return True
    if lower == "false":
        return False
    if column not in STRING_COLUMNS and _NUMBER_RE.match(value.strip()):
        return float(value)
    return value


def line_at(lines: List[str], line_number: Optional[int]) -> Optional[str]:
    if line_number is None or not 1 <= line_number <= len(lines):
        return None
    return lines[line_number - 1]


def _read_csv(text: str) -> pd.DataFrame:
    """All cells as text; blank cells stay empty strings, short rows become NaN."""
    return pd.read_csv(
        io.StringIO(text),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
    )


def parse_readings(text: str, key: Optional[str] = None) -> List[Reading]:
    """
    Parse one raw CSV payload into typed readings, in row order.

    Any bad row aborts the whole payload with MalformedInputError carrying
    the first offending line.
    """
    if not text or not text.strip():
        logger.error(f"[PARSE] empty payload key={key}")
        raise EmptyInputError("Empty CSV payload", key=key)

    lines = text.splitlines()
    # Data rows map onto non-blank lines after the header.
    data_line_numbers = [n for n, line in enumerate(lines, start=1) if line.strip()][1:]

    try:
        df = _normalize_columns(_read_csv(text))
    except pd.errors.EmptyDataError as exc:
        logger.error(f"[PARSE] no columns in payload key={key}")
        raise EmptyInputError("CSV payload has no header row", key=key) from exc
    except pd.errors.ParserError as exc:
        match = _PARSER_LINE_RE.search(str(exc))
        line_number = int(match.group(1)) if match else 1
        line = line_at(lines, line_number)
        logger.error(f"[PARSE] CSV parse failed key={key}: {exc}; line {line_number}: {line!r}")
        raise MalformedInputError(
            f"CSV parse failed: {exc}", line=line, line_number=line_number, key=key
        ) from exc

    # pandas turns the first column into an index when every data row has
    # one more field than the header.
    if not isinstance(df.index, pd.RangeIndex):
        line_number = data_line_numbers[0] if data_line_numbers else 1
        line = line_at(lines, line_number)
        logger.error(f"[PARSE] data rows have more fields than the header key={key}: {line!r}")
        raise MalformedInputError(
            f"Row at line {line_number} has more fields than the header",
            line=line,
            line_number=line_number,
            key=key,
        )

    missing = [c for c in READING_COLUMNS if c not in df.columns]
    if missing:
        logger.error(f"[PARSE] header missing columns {missing} key={key}: {lines[0]!r}")
        raise MalformedInputError(
            f"CSV header is missing columns: {', '.join(missing)}",
            line=lines[0],
            line_number=1,
            key=key,
        )

    if df.empty:
        logger.error(f"[PARSE] zero records after parsing key={key}")
        raise NoRecordsError("No records found in CSV data", key=key, record_count=0)

    readings = []
    for position, row in enumerate(df[READING_COLUMNS].to_dict(orient="records")):
        line_number = data_line_numbers[position] if position < len(data_line_numbers) else None
        readings.append(_row_to_reading(row, line_number, line_at(lines, line_number), key))

    logger.info(f"[PARSE] parsed {len(readings)} records key={key}")
    return readings


def _row_to_reading(
    row: Dict[str, Any],
    line_number: Optional[int],
    line: Optional[str],
    key: Optional[str],
) -> Reading:
    short = [c for c, v in row.items() if not isinstance(v, str)]
    if short:
        logger.error(f"[PARSE] row at line {line_number} has too few fields key={key}: {line!r}")
        raise MalformedInputError(
            f"Row at line {line_number} is missing fields: {', '.join(short)}",
            line=line,
            line_number=line_number,
            key=key,
        )

    coerced = {column: coerce_cell(column, value) for column, value in row.items()}
    # customerName is a free-text field; keep the cell as written.
    coerced["customerName"] = row["customerName"]

    try:
        return parse_reading(coerced)
    except MalformedInputError as exc:
        logger.error(f"[PARSE] invalid row at line {line_number} key={key}: {exc}; {line!r}")
        raise MalformedInputError(
            f"Invalid row at line {line_number}: {exc}",
            line=line,
            line_number=line_number,
            key=key,
        ) from exc
