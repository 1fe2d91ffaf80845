# usageflow/pipelines/calculate_notify.py
"""
Stage 2: normalized batch document -> monthly summary -> idempotent upsert,
plus a change notification when the stored summary was created or replaced.
"""

import argparse
import json
import logging
import sys
from typing import Any, List

from usageflow.clients import PipelineClients, build_clients
from usageflow.config import Settings, configure_logging, get_settings
from usageflow.errors import UsageflowError
from usageflow.io_experience import build_monthly_summary, parse_batch_document
from usageflow.io_landing import make_trigger_event, parse_trigger, read_object_text
from usageflow.io_upsert import SummaryContext, UpsertResult, upsert_summary
from usageflow.models import TriggerLocator

logger = logging.getLogger(__name__)


def process_batch(locator: TriggerLocator, clients: PipelineClients) -> UpsertResult:
    text = read_object_text(clients.object_store, locator)
    readings = parse_batch_document(text, key=locator.key)
    logger.info(f"[CALCULATE] summarizing {len(readings)} records from {locator.key}")

    summary = build_monthly_summary(readings)
    context = SummaryContext.from_batch(readings, raw_data=text)
    return upsert_summary(clients.summary_table, clients.notifier, context, summary)


def handle_event(event: Any, clients: PipelineClients, settings: Settings) -> List[UpsertResult]:
    try:
        settings.require("table_name")
        settings.require("topic_id")
        return [process_batch(locator, clients) for locator in parse_trigger(event)]
    except UsageflowError:
        logger.exception("[CALCULATE] error processing batch event")
        raise


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Summarize one normalized batch document.")
    parser.add_argument("key", help="batch key, e.g. CUST-001/LOC-001/2024-01/energy-data.json")
    parser.add_argument("--bucket", default=None, help="defaults to TRANSFORMED_JSON_BUCKET")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.log_level)
    clients = build_clients(settings)

    try:
        bucket = args.bucket or settings.require("transformed_bucket")
        results = handle_event(make_trigger_event(bucket, args.key), clients, settings)
    except UsageflowError as exc:
        print(f"Calculation failed: {exc}", file=sys.stderr)
        return 1

    for result in results:
        print(json.dumps({"customerId": result.customer_id, "month": result.month, "status": result.status.value}))
    return 0


if __name__ == "__main__":
    sys.exit(main())
