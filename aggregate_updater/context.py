from __future__ import annotations

from dataclasses import dataclass

from aggregate_updater.aggregate_store import AggregateStore, DocumentRef
from aggregate_updater.config import UpdaterConfig
from aggregate_updater.event_utils import Event


@dataclass(frozen=True)
class TaskContext:
    """Per-invocation state shared by every task."""

    store: AggregateStore
    config: UpdaterConfig
    event: Event

    @property
    def stats_ref(self) -> DocumentRef:
        c = self.config
        return DocumentRef(c.database_id, c.stats_collection_id, c.stats_document_id)

    @property
    def links_cache_ref(self) -> DocumentRef:
        c = self.config
        return DocumentRef(c.database_id, c.cache_collection_id, c.links_cache_document_id)

    @property
    def uploaders_cache_ref(self) -> DocumentRef:
        c = self.config
        return DocumentRef(c.database_id, c.cache_collection_id, c.uploaders_cache_document_id)
