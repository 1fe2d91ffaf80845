# usageflow/io_product.py

import json
import logging
from typing import List, Sequence, Tuple

import pandas as pd

from usageflow.errors import NoRecordsError
from usageflow.io_stores import ObjectStore
from usageflow.models import BatchKey, Reading

logger = logging.getLogger(__name__)

BATCH_CONTENT_TYPE = "application/json"


def batch_key_for(readings: Sequence[Reading]) -> BatchKey:
    """Key a batch by its FIRST reading's customer, location and month."""
    if not readings:
        raise NoRecordsError("Cannot key an empty batch")
    first = readings[0]
    return BatchKey(
        customer_id=first.customer_id,
        location_id=first.location_id,
        month=first.month_key,
    )


def group_readings(readings: Sequence[Reading]) -> List[Tuple[BatchKey, List[Reading]]]:
    """
    Split readings into customer/location/month batches.

    Groups come out in first-appearance order and keep row order inside
    each group, so a homogeneous payload is returned unchanged as one batch.
    """
    if not readings:
        return []

    keys = pd.DataFrame({
        "customer_id": [r.customer_id for r in readings],
        "location_id": [r.location_id for r in readings],
        "month": [r.month_key for r in readings],
    })

    batches = []
    for _, group in keys.groupby(["customer_id", "location_id", "month"], sort=False):
        members = [readings[i] for i in group.index]
        batches.append((batch_key_for(members), members))
    return batches


def serialize_batch(readings: Sequence[Reading]) -> str:
    return json.dumps([r.model_dump(by_alias=True) for r in readings], indent=2)


def write_batch(store: ObjectStore, bucket: str, readings: Sequence[Reading]) -> BatchKey:
    """
    Write one normalized batch document. Overwrites any previous document at
    the same key; the write itself is what triggers aggregation.
    """
    batch_key = batch_key_for(readings)
    metadata = {
        "customerId": batch_key.customer_id,
        "locationId": batch_key.location_id,
        "month": batch_key.month,
        "recordCount": str(len(readings)),
    }

    logger.info(
        f"[BATCH] writing {len(readings)} records to bucket={bucket} key={batch_key.object_key}"
    )
    store.put(
        bucket,
        batch_key.object_key,
        serialize_batch(readings).encode("utf-8"),
        content_type=BATCH_CONTENT_TYPE,
        metadata=metadata,
    )
    return batch_key


def write_batches(store: ObjectStore, bucket: str, readings: Sequence[Reading]) -> List[BatchKey]:
    """Group parsed readings and write one normalized document per group."""
    groups = group_readings(readings)
    if len(groups) > 1:
        logger.warning(f"[BATCH] payload spans {len(groups)} customer/location/month groups")
    return [write_batch(store, bucket, members) for _, members in groups]
