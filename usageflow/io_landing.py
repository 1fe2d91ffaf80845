# usageflow/io_landing.py

import json
import logging
from pathlib import Path
from typing import Any, Dict, List
from urllib.parse import quote_plus, unquote_plus

from usageflow.config import PROJECT_ROOT
from usageflow.errors import EmptyInputError, InvalidTriggerShape, MalformedInputError
from usageflow.io_stores import ObjectStore
from usageflow.models import TriggerLocator

logger = logging.getLogger(__name__)

RAW_DATA_DIR = PROJECT_ROOT / "data" / "raw"


def parse_trigger(event: Any) -> List[TriggerLocator]:
    """
    Validate an object-arrival event once, at the boundary.

    Expected shape:
      {"Records": [{"s3": {"bucket": {"name": ...}, "object": {"key": ...}}}]}

    Keys arrive URL-encoded ('+' for space) and are decoded here.
    """
    records = event.get("Records") if isinstance(event, dict) else None
    if not isinstance(records, list) or not records:
        logger.error(f"[TRIGGER] invalid event, missing Records: {json.dumps(event, default=str)}")
        raise InvalidTriggerShape("Invalid trigger event: missing Records")

    locators = []
    for index, record in enumerate(records):
        try:
            bucket = record["s3"]["bucket"]["name"]
            key_raw = record["s3"]["object"]["key"]
        except (KeyError, TypeError) as exc:
            logger.error(f"[TRIGGER] record {index} has no bucket/key: {json.dumps(record, default=str)}")
            raise InvalidTriggerShape(f"Invalid trigger record {index}: missing bucket or key") from exc

        if not isinstance(bucket, str) or not isinstance(key_raw, str) or not bucket or not key_raw:
            logger.error(f"[TRIGGER] record {index} has empty bucket/key: {json.dumps(record, default=str)}")
            raise InvalidTriggerShape(f"Invalid trigger record {index}: missing bucket or key")

        locators.append(TriggerLocator(bucket=bucket, key=unquote_plus(key_raw)))

    return locators


def make_trigger_event(bucket: str, key: str) -> Dict[str, Any]:
    """Build the arrival event a bucket notification would deliver for (bucket, key)."""
    return {"Records": [{"s3": {"bucket": {"name": bucket}, "object": {"key": quote_plus(key, safe="/")}}}]}


def read_object_text(store: ObjectStore, locator: TriggerLocator) -> str:
    """Fetch an arrived object as UTF-8 text; an empty body is an EmptyInputError."""
    logger.info(f"[LANDING] fetching bucket={locator.bucket} key={locator.key}")
    obj = store.get(locator.bucket, locator.key)
    try:
        text = obj.body.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        logger.error(f"[LANDING] object is not UTF-8 text key={locator.key}: {exc}")
        raise MalformedInputError(f"Object is not UTF-8 text: {locator.key}", key=locator.key) from exc

    if not text.strip():
        logger.error(f"[LANDING] empty object body bucket={locator.bucket} key={locator.key}")
        raise EmptyInputError(f"Empty object body: {locator.bucket}/{locator.key}", key=locator.key)

    logger.info(f"[LANDING] received {len(text)} chars from {locator.key}")
    return text


def land_local_file(store: ObjectStore, bucket: str, path: Path, key: str = "") -> TriggerLocator:
    """Upload a local CSV into a raw bucket, as an external producer would."""
    path = Path(path)
    key = key or path.name
    store.put(bucket, key, path.read_bytes(), content_type="text/csv")
    return TriggerLocator(bucket=bucket, key=key)
