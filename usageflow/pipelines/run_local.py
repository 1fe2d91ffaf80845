# usageflow/pipelines/run_local.py
"""
Run both stages end to end on a local CSV.

Writes into the transformed bucket are queued and stage 2 runs on each one
once stage 1 returns. --repeat re-lands the same file to show
that unchanged input is skipped.
"""

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Tuple

from usageflow.clients import PipelineClients, build_clients
from usageflow.config import Settings, configure_logging, get_settings
from usageflow.errors import UsageflowError
from usageflow.io_landing import RAW_DATA_DIR, land_local_file, make_trigger_event
from usageflow.io_upsert import UpsertResult, decode_item
from usageflow.pipelines import calculate_notify, transform_to_json

logger = logging.getLogger(__name__)

LOCAL_DEFAULTS = {
    "table_name": "calculated-energy",
    "topic_id": "energy-usage-summary",
    "transformed_bucket": "transformed-json",
}


def with_local_defaults(settings: Settings) -> Settings:
    """Fill unset identifiers so a bare checkout can run locally."""
    missing = {name: value for name, value in LOCAL_DEFAULTS.items() if not getattr(settings, name)}
    return replace(settings, **missing) if missing else settings


class TransformedArrivals:
    """
    Collects writes into the transformed bucket, the way a bucket notification
    queue would, so stage 2 runs after stage 1 has returned.
    """

    def __init__(self, clients: PipelineClients, settings: Settings) -> None:
        self.clients = clients
        self.settings = settings
        self.pending: List[Tuple[str, str]] = []
        clients.object_store.add_write_listener(self._on_write)

    def _on_write(self, bucket: str, key: str) -> None:
        if bucket == self.settings.transformed_bucket:
            self.pending.append((bucket, key))

    def drain(self) -> List[UpsertResult]:
        """Run stage 2 once per queued arrival, oldest first."""
        results: List[UpsertResult] = []
        while self.pending:
            bucket, key = self.pending.pop(0)
            results.extend(calculate_notify.handle_event(make_trigger_event(bucket, key), self.clients, self.settings))
        return results


def run(csv_path: Path, clients: PipelineClients, settings: Settings, raw_bucket: str, repeat: int = 1) -> List[UpsertResult]:
    arrivals = TransformedArrivals(clients, settings)
    results: List[UpsertResult] = []

    for _ in range(repeat):
        # Landing the raw file does not fire stage 1 by itself; run it explicitly.
        locator = land_local_file(clients.object_store, raw_bucket, csv_path)
        transform_to_json.handle_event(make_trigger_event(locator.bucket, locator.key), clients, settings)
        results.extend(arrivals.drain())
    return results


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run the usage pipeline end to end on a local CSV.")
    parser.add_argument("csv", nargs="?", default=str(RAW_DATA_DIR / "sample_usage.csv"))
    parser.add_argument("--raw-bucket", default=transform_to_json.DEFAULT_RAW_BUCKET)
    parser.add_argument("--repeat", type=int, default=1)
    args = parser.parse_args(argv)

    settings = with_local_defaults(get_settings())
    configure_logging(settings.log_level)
    clients = build_clients(settings)

    print("=" * 60)
    print("USAGE PIPELINE (local run)")
    print("=" * 60)

    try:
        results = run(Path(args.csv), clients, settings, args.raw_bucket, repeat=args.repeat)
    except UsageflowError as exc:
        print(f"\nPipeline failed: {exc}", file=sys.stderr)
        return 1

    print("\nUpsert results:")
    for i, result in enumerate(results, start=1):
        print(f"  [{i}] {result.customer_id} {result.month}: {result.status.value}")

    print("\nStored summaries:")
    for result in results:
        if not result.written:
            continue
        item = clients.summary_table.get_item(result.customer_id, result.month)
        if item is not None:
            summary = decode_item(item)["summary"]
            print(f"  {result.customer_id} {result.month}")
            print(f"    totalKwh: {summary['totalKwh']:,.2f}")
            print(f"    daily avg: {summary['averages']['daily']:,.2f}")
            print(f"    peak: {json.dumps(summary['peakUsage'])}")

    print("\n" + "=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
