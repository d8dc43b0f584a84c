from __future__ import annotations

import threading
from typing import Any, Callable, Iterable, Optional

from google.api_core import exceptions as gexc

from aggregate_updater.aggregate_store import StoredDocument
from aggregate_updater.errors import StoreError, WriteConflict


PAYLOAD_FIELD = "data"


def _default_client_factory(project_id: str, database: str) -> Any:
    from google.cloud import firestore as firestore_mod

    return firestore_mod.Client(project=project_id, database=database)


class FirestoreAggregateStore:
    """
    Aggregate records in Firestore: `<collection>/<document>` with a string `data` field.

    The store's database id selects the Firestore database. Versions are the
    document `update_time`; conditional writes pass it as a
    `last_update_time` precondition.
    """

    def __init__(
        self,
        *,
        project_id: str,
        client_factory: Optional[Callable[[str, str], Any]] = None,
        databases: Iterable[str] = (),
    ) -> None:
        self._project_id = str(project_id)
        self._client_factory = client_factory or _default_client_factory
        self._clients: dict[str, Any] = {}
        self._lock = threading.Lock()
        # Known databases are connected up front so credential problems surface here.
        for database_id in databases:
            self._client(database_id)

    def _client(self, database_id: str) -> Any:
        with self._lock:
            client = self._clients.get(database_id)
            if client is None:
                client = self._client_factory(self._project_id, database_id)
                self._clients[database_id] = client
            return client

    def _ref(self, database_id: str, collection_id: str, document_id: str) -> Any:
        return self._client(database_id).collection(collection_id).document(document_id)

    def get_document(self, database_id: str, collection_id: str, document_id: str) -> StoredDocument:
        path = f"{database_id}/{collection_id}/{document_id}"
        try:
            snap = self._ref(database_id, collection_id, document_id).get()
        except gexc.GoogleAPICallError as e:
            raise StoreError(f"firestore_get_failed:{path}:{e}") from e
        if not snap.exists:
            raise StoreError(f"document_not_found:{path}")
        data = (snap.to_dict() or {}).get(PAYLOAD_FIELD)
        if data is not None and not isinstance(data, str):
            raise StoreError(f"unexpected_payload_type:{path}:{type(data).__name__}")
        return StoredDocument(data=data, version=snap.update_time)

    def update_document(
        self,
        database_id: str,
        collection_id: str,
        document_id: str,
        *,
        data: str,
        expected_version: Any = None,
    ) -> None:
        path = f"{database_id}/{collection_id}/{document_id}"
        client = self._client(database_id)
        ref = client.collection(collection_id).document(document_id)
        kwargs: dict[str, Any] = {}
        if expected_version is not None:
            kwargs["option"] = client.write_option(last_update_time=expected_version)
        try:
            # update() fails on missing documents, unlike set().
            ref.update({PAYLOAD_FIELD: data}, **kwargs)
        except gexc.NotFound as e:
            raise StoreError(f"document_not_found:{path}") from e
        except gexc.FailedPrecondition as e:
            raise WriteConflict(f"stale_version:{path}") from e
        except gexc.GoogleAPICallError as e:
            raise StoreError(f"firestore_update_failed:{path}:{e}") from e
