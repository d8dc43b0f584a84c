"""
Access to aggregate documents.

Each aggregate is a single record whose `data` field holds a JSON-encoded
structure. Records are addressed by (database id, collection id, document id)
and are provisioned externally; this module only reads and overwrites them.

Writes may be made conditional on the version that was read, which turns the
read-modify-write cycle in `apply_update` into an optimistic transaction.
"""

from __future__ import annotations

import copy
import json
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, TypeVar

from aggregate_updater.errors import StoreError, WriteConflict
from aggregate_updater.structured_log import log


T = TypeVar("T", list, dict)


@dataclass(frozen=True)
class DocumentRef:
    database_id: str
    collection_id: str
    document_id: str

    @property
    def path(self) -> str:
        return f"{self.database_id}/{self.collection_id}/{self.document_id}"


@dataclass(frozen=True)
class StoredDocument:
    data: Optional[str]
    # Opaque token: whatever the backend uses to detect concurrent modification.
    version: Any = None


class AggregateStore(Protocol):
    def get_document(self, database_id: str, collection_id: str, document_id: str) -> StoredDocument:
        ...

    def update_document(
        self,
        database_id: str,
        collection_id: str,
        document_id: str,
        *,
        data: str,
        expected_version: Any = None,
    ) -> None:
        ...


class InMemoryAggregateStore:
    """
    Dict-backed store with integer revisions.

    Used by tests and local runs; behaves like the remote store for missing
    records and stale conditional writes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._docs: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.write_count = 0

    def provision(self, ref: DocumentRef, data: Optional[str] = None) -> None:
        with self._lock:
            self._docs[(ref.database_id, ref.collection_id, ref.document_id)] = {"data": data, "revision": 0}

    def raw(self, ref: DocumentRef) -> Optional[str]:
        with self._lock:
            doc = self._docs.get((ref.database_id, ref.collection_id, ref.document_id))
            return None if doc is None else doc["data"]

    def get_document(self, database_id: str, collection_id: str, document_id: str) -> StoredDocument:
        with self._lock:
            doc = self._docs.get((database_id, collection_id, document_id))
            if doc is None:
                raise StoreError(f"document_not_found:{database_id}/{collection_id}/{document_id}")
            return StoredDocument(data=doc["data"], version=doc["revision"])

    def update_document(
        self,
        database_id: str,
        collection_id: str,
        document_id: str,
        *,
        data: str,
        expected_version: Any = None,
    ) -> None:
        with self._lock:
            doc = self._docs.get((database_id, collection_id, document_id))
            if doc is None:
                raise StoreError(f"document_not_found:{database_id}/{collection_id}/{document_id}")
            if expected_version is not None and expected_version != doc["revision"]:
                raise WriteConflict(f"stale_version:{database_id}/{collection_id}/{document_id}")
            doc["data"] = data
            doc["revision"] += 1
            self.write_count += 1


def decode_payload(raw: Optional[str], *, default: T, ref: Optional[DocumentRef] = None) -> T:
    """
    Decode a stored payload. Empty/absent payloads decode to a copy of `default`.

    An empty container of the other kind (e.g. `{}` where a list is expected)
    is treated as empty too, since provisioning commonly seeds every record
    with `{}`.
    """
    where = ref.path if ref is not None else ""
    if raw is None or not str(raw).strip():
        return copy.deepcopy(default)
    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise StoreError(f"invalid_payload_json:{where}") from e
    if isinstance(value, type(default)):
        return value
    if isinstance(value, (list, dict)) and not value:
        return copy.deepcopy(default)
    raise StoreError(f"unexpected_payload_shape:{where}:{type(value).__name__}")


def encode_payload(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _load(store: AggregateStore, ref: DocumentRef, *, default: T) -> tuple[T, Any]:
    doc = store.get_document(ref.database_id, ref.collection_id, ref.document_id)
    return decode_payload(doc.data, default=default, ref=ref), doc.version


def read_aggregate(store: AggregateStore, ref: DocumentRef, *, default: T) -> T:
    value, _version = _load(store, ref, default=default)
    return value


def write_aggregate(store: AggregateStore, ref: DocumentRef, value: Any, *, expected_version: Any = None) -> None:
    store.update_document(
        ref.database_id,
        ref.collection_id,
        ref.document_id,
        data=encode_payload(value),
        expected_version=expected_version,
    )


def apply_update(
    store: AggregateStore,
    ref: DocumentRef,
    *,
    default: T,
    mutate: Callable[[T], Optional[T]],
    max_attempts: int = 3,
) -> bool:
    """
    Read-modify-write with a conditional write.

    `mutate` receives the decoded document and returns the new value, or None
    when nothing should be written. It must be pure: on a lost race it is
    re-applied to a fresh read. Returns True when a write happened.
    """
    attempts = max(1, int(max_attempts))
    for attempt in range(1, attempts + 1):
        current, version = _load(store, ref, default=default)
        updated = mutate(current)
        if updated is None:
            return False
        try:
            write_aggregate(store, ref, updated, expected_version=version)
            return True
        except WriteConflict:
            if attempt >= attempts:
                raise
            log(
                "store.write_conflict",
                severity="WARNING",
                document=ref.path,
                attempt=attempt,
                max_attempts=attempts,
            )
    # Unreachable: the loop either returns or raises.
    raise WriteConflict(f"write_attempts_exhausted:{ref.path}")
