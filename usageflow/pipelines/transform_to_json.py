# usageflow/pipelines/transform_to_json.py
"""
Stage 1: raw CSV arrival -> normalized batch document(s).

Each written document lands in the transformed bucket, and that write is
what triggers stage 2 (calculate_notify).
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, List

from usageflow.clients import PipelineClients, build_clients
from usageflow.config import Settings, configure_logging, get_settings
from usageflow.errors import UsageflowError
from usageflow.io_landing import RAW_DATA_DIR, land_local_file, make_trigger_event, parse_trigger, read_object_text
from usageflow.io_product import write_batches
from usageflow.io_standardized import parse_readings
from usageflow.models import BatchKey

logger = logging.getLogger(__name__)

DEFAULT_RAW_BUCKET = "raw-usage"


def handle_event(event: Any, clients: PipelineClients, settings: Settings) -> List[BatchKey]:
    try:
        target_bucket = settings.require("transformed_bucket")
        locators = parse_trigger(event)
        logger.info(f"[TRANSFORM] event record count={len(locators)}")

        written = []
        for locator in locators:
            text = read_object_text(clients.object_store, locator)
            readings = parse_readings(text, key=locator.key)
            keys = write_batches(clients.object_store, target_bucket, readings)
            logger.info(f"[TRANSFORM] transformed {locator.key} into {len(keys)} batch document(s)")
            written.extend(keys)
        return written
    except UsageflowError:
        logger.exception("[TRANSFORM] error processing arrival event")
        raise


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Normalize a raw usage CSV into batch documents.")
    parser.add_argument("csv", nargs="?", default=str(RAW_DATA_DIR / "sample_usage.csv"))
    parser.add_argument("--raw-bucket", default=DEFAULT_RAW_BUCKET)
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.log_level)
    clients = build_clients(settings)

    try:
        locator = land_local_file(clients.object_store, args.raw_bucket, Path(args.csv))
        keys = handle_event(make_trigger_event(locator.bucket, locator.key), clients, settings)
    except UsageflowError as exc:
        print(f"Transform failed: {exc}", file=sys.stderr)
        return 1

    for key in keys:
        print(f"Wrote {settings.transformed_bucket}/{key.object_key}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
