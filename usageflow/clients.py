# usageflow/clients.py

import logging
from dataclasses import dataclass
from pathlib import Path

from usageflow.config import Settings
from usageflow.io_notify import LoggingNotifier, Notifier, WebhookNotifier
from usageflow.io_stores import (
    LocalObjectStore,
    LocalSummaryTable,
    ObjectStore,
    RedisSummaryTable,
    SummaryTable,
)

logger = logging.getLogger(__name__)

# Summary tables share the storage root with the buckets, under their own directory.
LOCAL_TABLES_DIR = "_tables"


@dataclass
class PipelineClients:
    """Client handles for one invocation, passed explicitly to every stage."""

    object_store: ObjectStore
    summary_table: SummaryTable
    notifier: Notifier


def build_clients(settings: Settings) -> PipelineClients:
    """
    Pick backends from settings:
      - objects always live under settings.storage_root
      - summaries go to Redis when REDIS_URL is set, else to JSON files under
        <storage_root>/_tables, so repeated runs still see earlier items
      - notifications go to the webhook when NOTIFY_WEBHOOK_URL is set, else to the log
    """
    storage_root = Path(settings.storage_root)

    if settings.redis_url:
        table: SummaryTable = RedisSummaryTable.from_url(settings.redis_url, settings.table_name)
    else:
        logger.info(f"[CLIENTS] REDIS_URL not configured - summaries stored under {storage_root / LOCAL_TABLES_DIR}")
        table = LocalSummaryTable(storage_root / LOCAL_TABLES_DIR, settings.table_name)

    if settings.webhook_url:
        notifier: Notifier = WebhookNotifier(settings.webhook_url, settings.topic_id)
    else:
        notifier = LoggingNotifier(settings.topic_id)

    return PipelineClients(
        object_store=LocalObjectStore(storage_root),
        summary_table=table,
        notifier=notifier,
    )
