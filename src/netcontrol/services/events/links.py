"""Symmetric linkage between related events.

Both sides live in different documents, so a link is two writes. The
second write failing triggers a compensating write on the first side; what
compensation cannot undo is healed by :meth:`LinkGraph.repair` on the next
read.
"""

from __future__ import annotations

import logging
from typing import Callable

from ...errors import CoordinatorError, NotFound, ValidationError
from ...models.domain import Event, utcnow
from ...persistence.documents import EVENTS, DocumentStore, atomic_update
from ..broadcast import ChangeBroadcaster
from .deltas import publish_event

logger = logging.getLogger(__name__)


class LinkGraph:
    def __init__(
        self,
        store: DocumentStore,
        broadcaster: ChangeBroadcaster,
        clock: Callable = utcnow,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.clock = clock

    def link(self, source: Event, target_id: str) -> Event:
        """Link ``source`` and ``target_id`` both ways. Idempotent."""
        if source.id == target_id:
            raise ValidationError("An event cannot be linked to itself")
        if self.store.get(EVENTS, target_id) is None:
            raise NotFound(f"Event {target_id} not found")

        updated, source_changed = self._add(source.id, target_id)
        try:
            self._add(target_id, source.id)
        except CoordinatorError:
            if source_changed:
                self._compensate(source.id, target_id)
            raise
        return updated

    def unlink_all(self, event: Event) -> None:
        """Pull ``event.id`` out of every peer's link set."""
        for peer_id in event.linked_events:
            try:
                self._remove(peer_id, event.id)
            except NotFound:
                continue

    def repair(self, event: Event) -> Event:
        """Heal asymmetric links found on ``event``.

        Peers that no longer exist are dropped from ``event``; peers that do
        not link back are re-linked.
        """
        for peer_id in list(event.linked_events):
            peer_document = self.store.get(EVENTS, peer_id)
            if peer_document is None:
                logger.warning(f"Dropping dangling link {event.id} -> {peer_id}")
                try:
                    event, _ = self._remove(event.id, peer_id)
                except CoordinatorError as exc:
                    logger.warning(f"Could not drop dangling link {event.id} -> {peer_id}: {exc}")
                continue
            if event.id not in peer_document.data.get("linked_events", []):
                logger.warning(f"Restoring missing back-link {peer_id} -> {event.id}")
                try:
                    self._add(peer_id, event.id)
                except CoordinatorError as exc:
                    logger.warning(f"Could not restore back-link {peer_id} -> {event.id}: {exc}")
        return event

    def _add(self, event_id: str, peer_id: str) -> tuple[Event, bool]:
        def mutate(data: dict) -> None:
            links = data.setdefault("linked_events", [])
            if peer_id not in links:
                links.append(peer_id)
                data["updated_at"] = self.clock().isoformat()

        return self._write(event_id, mutate)

    def _remove(self, event_id: str, peer_id: str) -> tuple[Event, bool]:
        def mutate(data: dict) -> None:
            links = data.get("linked_events", [])
            if peer_id in links:
                data["linked_events"] = [item for item in links if item != peer_id]
                data["updated_at"] = self.clock().isoformat()

        return self._write(event_id, mutate)

    def _write(self, event_id: str, mutate) -> tuple[Event, bool]:
        with self.broadcaster.ordered(event_id):
            before, after = atomic_update(
                self.store, EVENTS, event_id, mutate, missing_message=f"Event {event_id} not found"
            )
            event = Event.from_document(after.data, after.revision)
            changed = after.revision != before.revision
            if changed:
                publish_event(self.broadcaster, "eventUpdated", event)
        return event, changed

    def _compensate(self, event_id: str, peer_id: str) -> None:
        try:
            self._remove(event_id, peer_id)
            logger.info(f"Rolled back half-applied link {event_id} -> {peer_id}")
        except CoordinatorError as exc:
            logger.error(
                f"Link {event_id} -> {peer_id} left asymmetric ({exc}); it will be repaired on next read"
            )
