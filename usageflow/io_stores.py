# usageflow/io_stores.py
"""
Storage adapters the pipeline talks to.

Object stores hold raw CSV uploads and normalized batch documents, addressed by
(bucket, key). Summary tables hold one StoredSummaryRecord per
(customerId, month), already encoded to a flat str -> str attribute map.

Only single-key get/put operations are offered: the pipeline never lists or
scans either store.
"""

import json
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import redis

from usageflow.errors import StorageReadError, StorageWriteError
from usageflow.models import StoredObject

logger = logging.getLogger(__name__)

WriteListener = Callable[[str, str], None]


# ---------------------------
# Object stores
# ---------------------------

class ObjectStore:
    """get/put by (bucket, key). Subclasses implement _get/_put."""

    def __init__(self) -> None:
        self._listeners: List[WriteListener] = []

    def add_write_listener(self, listener: WriteListener) -> None:
        """Call listener(bucket, key) after every successful put."""
        self._listeners.append(listener)

    def get(self, bucket: str, key: str) -> StoredObject:
        try:
            return self._get(bucket, key)
        except KeyError as exc:
            raise StorageReadError(f"Object not found: {bucket}/{key}") from exc
        except (OSError, ValueError) as exc:
            raise StorageReadError(f"Failed to read {bucket}/{key}: {exc}") from exc

    def put(
        self,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        obj = StoredObject(body=body, content_type=content_type, metadata=dict(metadata or {}))
        try:
            self._put(bucket, key, obj)
        except OSError as exc:
            raise StorageWriteError(f"Failed to write {bucket}/{key}: {exc}") from exc

        for listener in self._listeners:
            listener(bucket, key)

    def _get(self, bucket: str, key: str) -> StoredObject:
        raise NotImplementedError

    def _put(self, bucket: str, key: str, obj: StoredObject) -> None:
        raise NotImplementedError


class InMemoryObjectStore(ObjectStore):
    def __init__(self) -> None:
        super().__init__()
        self.objects: Dict[Tuple[str, str], StoredObject] = {}
        self.put_count = 0

    def _get(self, bucket: str, key: str) -> StoredObject:
        return self.objects[(bucket, key)]

    def _put(self, bucket: str, key: str, obj: StoredObject) -> None:
        self.objects[(bucket, key)] = obj
        self.put_count += 1


class LocalObjectStore(ObjectStore):
    """
    Directory-backed object store:

      <root>/<bucket>/<key>             object body
      <root>/<bucket>/<key>.meta.json   {"contentType": ..., "metadata": {...}}
    """

    META_SUFFIX = ".meta.json"

    def __init__(self, root: Path) -> None:
        super().__init__()
        self.root = Path(root)

    def _path(self, bucket: str, key: str) -> Path:
        path = (self.root / bucket / key).resolve()
        bucket_dir = (self.root / bucket).resolve()
        if bucket_dir not in path.parents:
            raise ValueError(f"Key escapes bucket directory: {key}")
        return path

    def _get(self, bucket: str, key: str) -> StoredObject:
        path = self._path(bucket, key)
        if not path.exists():
            raise KeyError(key)

        meta_path = path.with_name(path.name + self.META_SUFFIX)
        meta = {}
        if meta_path.exists():
            meta = json.loads(meta_path.read_text(encoding="utf-8"))

        return StoredObject(
            body=path.read_bytes(),
            content_type=meta.get("contentType", "application/octet-stream"),
            metadata=meta.get("metadata", {}),
        )

    def _put(self, bucket: str, key: str, obj: StoredObject) -> None:
        try:
            path = self._path(bucket, key)
        except ValueError as exc:
            raise OSError(str(exc)) from exc
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(obj.body)

        meta_path = path.with_name(path.name + self.META_SUFFIX)
        meta_path.write_text(
            json.dumps({"contentType": obj.content_type, "metadata": obj.metadata}, indent=2),
            encoding="utf-8",
        )
        logger.debug(f"[STORE] wrote {len(obj.body)} bytes to {path}")


# ---------------------------
# Summary tables
# ---------------------------

class SummaryTable:
    """Single-item get/put keyed by (customerId, month)."""

    def get_item(self, customer_id: str, month: str) -> Optional[Dict[str, str]]:
        raise NotImplementedError

    def put_item(self, item: Dict[str, str]) -> None:
        raise NotImplementedError


class InMemorySummaryTable(SummaryTable):
    def __init__(self) -> None:
        self.items: Dict[Tuple[str, str], Dict[str, str]] = {}
        self.put_count = 0

    def get_item(self, customer_id: str, month: str) -> Optional[Dict[str, str]]:
        item = self.items.get((customer_id, month))
        return dict(item) if item is not None else None

    def put_item(self, item: Dict[str, str]) -> None:
        self.items[(item["customerId"], item["month"])] = dict(item)
        self.put_count += 1


class RedisSummaryTable(SummaryTable):
    """
    One Redis hash per item at <table>:<customerId>:<month>.

    put_item replaces the whole hash (DEL + HSET in one round trip) so stale
    attributes never survive an overwrite.
    """

    def __init__(self, client: "redis.Redis", table_name: str) -> None:
        self._redis = client
        self.table_name = table_name

    @classmethod
    def from_url(cls, url: str, table_name: str) -> "RedisSummaryTable":
        return cls(redis.Redis.from_url(url, decode_responses=True), table_name)

    def _item_key(self, customer_id: str, month: str) -> str:
        return f"{self.table_name}:{customer_id}:{month}"

    def get_item(self, customer_id: str, month: str) -> Optional[Dict[str, str]]:
        key = self._item_key(customer_id, month)
        try:
            item = self._redis.hgetall(key)
        except redis.RedisError as exc:
            raise StorageReadError(f"Failed to read item {key}: {exc}") from exc
        return dict(item) if item else None

    def put_item(self, item: Dict[str, str]) -> None:
        key = self._item_key(item["customerId"], item["month"])
        try:
            pipe = self._redis.pipeline(transaction=False)
            pipe.delete(key)
            pipe.hset(key, mapping=item)
            pipe.execute()
        except redis.RedisError as exc:
            raise StorageWriteError(f"Failed to write item {key}: {exc}") from exc


class LocalSummaryTable(SummaryTable):
    """
    Directory-backed summary table, one JSON file per item:

      <root>/<table>/<customerId>/<month>.json
    """

    def __init__(self, root: Path, table_name: str) -> None:
        self.root = Path(root)
        self.table_name = table_name

    def _path(self, customer_id: str, month: str) -> Path:
        table_dir = (self.root / self.table_name).resolve()
        path = (table_dir / customer_id / f"{month}.json").resolve()
        if table_dir not in path.parents:
            raise ValueError(f"Item key escapes table directory: {customer_id}/{month}")
        return path

    def get_item(self, customer_id: str, month: str) -> Optional[Dict[str, str]]:
        try:
            path = self._path(customer_id, month)
            if not path.exists():
                return None
            item = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StorageReadError(f"Failed to read item {customer_id}/{month}: {exc}") from exc
        if not isinstance(item, dict):
            raise StorageReadError(f"Stored item {customer_id}/{month} is not an attribute map")
        return item

    def put_item(self, item: Dict[str, str]) -> None:
        customer_id, month = item["customerId"], item["month"]
        try:
            path = self._path(customer_id, month)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(item, indent=2), encoding="utf-8")
        except (OSError, ValueError) as exc:
            raise StorageWriteError(f"Failed to write item {customer_id}/{month}: {exc}") from exc
        logger.debug(f"[STORE] wrote summary item to {path}")
