"""Document store abstraction with revision-checked writes."""

from __future__ import annotations

import copy
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from ..errors import Conflict, NotFound, StoreUnavailable

logger = logging.getLogger(__name__)

EVENTS = "events"
ASSIGNMENTS = "assignments"
LOGS = "logs"


@dataclass(slots=True, frozen=True)
class Document:
    id: str
    revision: int
    data: dict


class RevisionMismatch(Exception):
    """The stored revision moved (or the document vanished) since it was read."""


class DocumentExists(Exception):
    """An insert collided with an existing document id."""


class DocumentStore(Protocol):
    """Contract every backing store must honour.

    ``replace`` is the only write that may race: it succeeds only when the
    stored revision still equals ``expected_revision`` and bumps it by one.
    """

    def get(self, collection: str, doc_id: str) -> Optional[Document]: ...

    def insert(self, collection: str, doc_id: str, data: dict) -> Document: ...

    def replace(self, collection: str, doc_id: str, data: dict, *, expected_revision: int) -> Document: ...

    def delete(self, collection: str, doc_id: str) -> bool: ...

    def find(self, collection: str, **fields: Any) -> list[Document]: ...


class InMemoryDocumentStore:
    """Process-local store used for tests and when no database is configured."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = {}
        self._lock = threading.Lock()

    def _table(self, collection: str) -> dict[str, Document]:
        return self._collections.setdefault(collection, {})

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            document = self._table(collection).get(doc_id)
            return _clone(document) if document else None

    def insert(self, collection: str, doc_id: str, data: dict) -> Document:
        with self._lock:
            table = self._table(collection)
            if doc_id in table:
                raise DocumentExists(f"{collection}/{doc_id} already exists")
            document = Document(id=doc_id, revision=1, data=copy.deepcopy(data))
            table[doc_id] = document
            return _clone(document)

    def replace(self, collection: str, doc_id: str, data: dict, *, expected_revision: int) -> Document:
        with self._lock:
            table = self._table(collection)
            current = table.get(doc_id)
            if current is None or current.revision != expected_revision:
                raise RevisionMismatch(f"{collection}/{doc_id} expected revision {expected_revision}")
            document = Document(id=doc_id, revision=current.revision + 1, data=copy.deepcopy(data))
            table[doc_id] = document
            return _clone(document)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            return self._table(collection).pop(doc_id, None) is not None

    def find(self, collection: str, **fields: Any) -> list[Document]:
        with self._lock:
            return [
                _clone(document)
                for document in self._table(collection).values()
                if all(document.data.get(name) == value for name, value in fields.items())
            ]


class GuardedStore:
    """Wraps a store so no call can hang longer than ``timeout`` seconds."""

    def __init__(self, inner: DocumentStore, timeout: float, max_workers: int = 8) -> None:
        self.inner = inner
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="store")

    def _call(self, operation: str, *args: Any, **kwargs: Any) -> Any:
        future = self._executor.submit(getattr(self.inner, operation), *args, **kwargs)
        try:
            return future.result(timeout=self.timeout)
        except FuturesTimeoutError as exc:
            future.cancel()
            logger.warning(f"Document store {operation} timed out after {self.timeout:.1f}s")
            raise StoreUnavailable(f"Document store did not answer within {self.timeout:.1f}s") from exc

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        return self._call("get", collection, doc_id)

    def insert(self, collection: str, doc_id: str, data: dict) -> Document:
        return self._call("insert", collection, doc_id, data)

    def replace(self, collection: str, doc_id: str, data: dict, *, expected_revision: int) -> Document:
        return self._call("replace", collection, doc_id, data, expected_revision=expected_revision)

    def delete(self, collection: str, doc_id: str) -> bool:
        return self._call("delete", collection, doc_id)

    def find(self, collection: str, **fields: Any) -> list[Document]:
        return self._call("find", collection, **fields)

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


def atomic_update(
    store: DocumentStore,
    collection: str,
    doc_id: str,
    mutate: Callable[[dict], None],
    *,
    retries: int = 1,
    missing_message: str | None = None,
) -> tuple[Document, Document]:
    """Read-modify-write one document under its revision counter.

    ``mutate`` edits a private copy of the document data in place and may
    raise to abort. When the copy comes back unchanged nothing is written.
    A revision mismatch is retried ``retries`` times, then reported as
    Conflict. Returns ``(before, after)``.
    """
    attempt = 0
    while True:
        current = store.get(collection, doc_id)
        if current is None:
            raise NotFound(missing_message or f"{collection}/{doc_id} not found")
        data = copy.deepcopy(current.data)
        mutate(data)
        if data == current.data:
            return current, current
        try:
            return current, store.replace(collection, doc_id, data, expected_revision=current.revision)
        except RevisionMismatch as exc:
            attempt += 1
            if attempt > retries:
                raise Conflict(
                    f"{collection}/{doc_id} was modified concurrently; reload and try again"
                ) from exc
            logger.debug(f"Revision mismatch on {collection}/{doc_id}, retrying (attempt {attempt}/{retries})")


def _clone(document: Document) -> Document:
    return Document(id=document.id, revision=document.revision, data=copy.deepcopy(document.data))
