"""Supabase-backed document store.

Each collection maps to a table with three columns::

    id        text primary key
    revision  integer not null
    data      jsonb not null

Revision-checked writes are expressed as ``UPDATE ... WHERE id = :id AND
revision = :expected``; an empty result set means another writer got there
first.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from supabase import Client

from ..db.supabase import get_supabase_client
from ..errors import StoreUnavailable
from .documents import Document, DocumentExists, RevisionMismatch

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


class SupabaseDocumentStore:
    def __init__(self, client: Client | None = None) -> None:
        self.client = client or get_supabase_client()
        if self.client is None:
            raise ValueError("Supabase is not configured (set NETCTL_SUPABASE_URL and NETCTL_SUPABASE_KEY).")

    def _execute(self, query, description: str):
        try:
            return query.execute()
        except Exception as exc:
            if getattr(exc, "code", None) == UNIQUE_VIOLATION:
                raise DocumentExists(description) from exc
            logger.error(f"Supabase call failed ({description}): {exc}")
            raise StoreUnavailable(f"Document store unavailable: {exc}") from exc

    @staticmethod
    def _to_document(row: dict) -> Document:
        return Document(id=row["id"], revision=int(row["revision"]), data=row.get("data") or {})

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        response = self._execute(
            self.client.table(collection).select("id, revision, data").eq("id", doc_id).limit(1),
            f"get {collection}/{doc_id}",
        )
        rows = response.data or []
        return self._to_document(rows[0]) if rows else None

    def insert(self, collection: str, doc_id: str, data: dict) -> Document:
        response = self._execute(
            self.client.table(collection).insert({"id": doc_id, "revision": 1, "data": data}),
            f"insert {collection}/{doc_id}",
        )
        rows = response.data or []
        return self._to_document(rows[0]) if rows else Document(id=doc_id, revision=1, data=data)

    def replace(self, collection: str, doc_id: str, data: dict, *, expected_revision: int) -> Document:
        response = self._execute(
            self.client.table(collection)
            .update({"revision": expected_revision + 1, "data": data})
            .eq("id", doc_id)
            .eq("revision", expected_revision),
            f"replace {collection}/{doc_id}",
        )
        rows = response.data or []
        if not rows:
            raise RevisionMismatch(f"{collection}/{doc_id} expected revision {expected_revision}")
        return self._to_document(rows[0])

    def delete(self, collection: str, doc_id: str) -> bool:
        response = self._execute(
            self.client.table(collection).delete().eq("id", doc_id),
            f"delete {collection}/{doc_id}",
        )
        return bool(response.data)

    def find(self, collection: str, **fields: Any) -> list[Document]:
        query = self.client.table(collection).select("id, revision, data")
        if fields:
            query = query.contains("data", fields)
        response = self._execute(query, f"find {collection}")
        return [self._to_document(row) for row in (response.data or [])]
