"""Operator assignment documents, one per (event, operator) pair."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ...models.domain import OperatorAssignment, assignment_key
from ...persistence.documents import ASSIGNMENTS, DocumentExists, DocumentStore


def load_assignment(store: DocumentStore, event_id: str, operator_id: str) -> Optional[OperatorAssignment]:
    document = store.get(ASSIGNMENTS, assignment_key(event_id, operator_id))
    if document is None:
        return None
    return OperatorAssignment.from_document(document.data, document.revision)


def list_assignments(store: DocumentStore, event_id: str, status: Optional[str] = None) -> list[OperatorAssignment]:
    filters = {"event_id": event_id}
    if status is not None:
        filters["status"] = status
    assignments = [
        OperatorAssignment.from_document(document.data, document.revision)
        for document in store.find(ASSIGNMENTS, **filters)
    ]
    return sorted(assignments, key=lambda item: item.operator_id)


def create_assignment(
    store: DocumentStore, event_id: str, operator_id: str, now: datetime
) -> Optional[OperatorAssignment]:
    """Insert an OFFLINE assignment; returns None when one already exists."""
    assignment = OperatorAssignment(event_id=event_id, operator_id=operator_id, status_changed_at=now)
    try:
        document = store.insert(ASSIGNMENTS, assignment.key, assignment.to_document())
    except DocumentExists:
        return None
    assignment.revision = document.revision
    return assignment
