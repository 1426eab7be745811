"""Event aggregate store: the only writer of event documents.

Every mutating operation follows the same path: load, authorize, apply one
revision-checked write per document, then publish the resulting delta while
still holding the event's ordering lock.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Optional

from ...errors import CoordinatorError, NotAssigned, NotFound
from ...models.domain import Event, OperatorAssignment, Principal, assignment_key, utcnow
from ...persistence.documents import ASSIGNMENTS, EVENTS, DocumentStore, atomic_update
from ..access import require
from ..broadcast import ChangeBroadcaster
from .assignments import create_assignment, list_assignments
from .deltas import publish_event, publish_event_deleted, publish_status_change
from .links import LinkGraph
from .validation import apply_patch, build_event

if TYPE_CHECKING:
    from ..scheduler import IntervalScheduler

logger = logging.getLogger(__name__)

CLOSED_STATUSES = frozenset({"COMPLETED", "ARCHIVED"})


class EventStore:
    def __init__(
        self,
        store: DocumentStore,
        broadcaster: ChangeBroadcaster,
        *,
        scheduler: Optional["IntervalScheduler"] = None,
        clock: Callable = utcnow,
        default_check_in_interval: int = 30,
        default_welfare_check_interval: int = 60,
        reschedule_on_interval_change: bool = False,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self.clock = clock
        self.default_check_in_interval = default_check_in_interval
        self.default_welfare_check_interval = default_welfare_check_interval
        self.reschedule_on_interval_change = reschedule_on_interval_change
        self.links = LinkGraph(store, broadcaster, clock)

    # Reads

    def get(self, event_id: str) -> Event:
        document = self.store.get(EVENTS, event_id)
        if document is None:
            raise NotFound(f"Event {event_id} not found")
        return self._repair(Event.from_document(document.data, document.revision))

    def list(self, status: Optional[str] = None) -> list[Event]:
        filters = {"status": status} if status else {}
        events = [Event.from_document(doc.data, doc.revision) for doc in self.store.find(EVENTS, **filters)]
        return sorted(events, key=lambda event: event.start_date, reverse=True)

    # Mutations

    def create(self, payload: dict, principal: Principal) -> Event:
        require(principal, "create")
        event = build_event(
            payload,
            created_by=principal.id,
            now=self.clock(),
            default_check_in_interval=self.default_check_in_interval,
            default_welfare_check_interval=self.default_welfare_check_interval,
        )
        with self.broadcaster.ordered(event.id):
            document = self.store.insert(EVENTS, event.id, event.to_document())
            event.revision = document.revision
            publish_event(self.broadcaster, "newEvent", event)
            if event.status == "ACTIVE" and self.scheduler is not None:
                self.scheduler.start(event)
        logger.info(f"Event {event.id} '{event.name}' created by {principal.id}")
        return event

    def update(self, event_id: str, patch: dict, principal: Principal) -> Event:
        current = self.get(event_id)
        require(principal, "update", event=current)

        removed_zones: set[str] = set()

        def mutate(data: dict) -> None:
            event = Event.from_document(data)
            before = {zone.id for zone in event.zones}
            apply_patch(event, patch, self.clock())
            removed_zones.clear()
            removed_zones.update(before - {zone.id for zone in event.zones})
            data.clear()
            data.update(event.to_document())

        with self.broadcaster.ordered(event_id):
            before_doc, after_doc = atomic_update(
                self.store, EVENTS, event_id, mutate, missing_message=f"Event {event_id} not found"
            )
            updated = Event.from_document(after_doc.data, after_doc.revision)
            publish_event(self.broadcaster, "eventUpdated", updated)
            # still under the event lock: assignments and timers follow this commit
            if removed_zones:
                self._clear_zone_references(event_id, removed_zones)
            self._sync_schedule(Event.from_document(before_doc.data), updated)
        return updated

    def delete(self, event_id: str, principal: Principal) -> None:
        event = self.get(event_id)
        require(principal, "delete", event=event)

        self.links.unlink_all(event)
        with self.broadcaster.ordered(event_id):
            for assignment in list_assignments(self.store, event_id):
                self.store.delete(ASSIGNMENTS, assignment.key)
            if not self.store.delete(EVENTS, event_id):
                raise NotFound(f"Event {event_id} not found")
            if self.scheduler is not None:
                self.scheduler.stop(event_id)
            publish_event_deleted(self.broadcaster, event_id)
        self.broadcaster.forget(event_id)
        logger.info(f"Event {event_id} deleted by {principal.id}")

    def link(self, event_id: str, target_id: str, principal: Principal) -> Event:
        source = self.get(event_id)
        require(principal, "link", event=source)
        return self.links.link(source, target_id)

    def add_operator(self, event_id: str, operator_id: str, principal: Principal) -> OperatorAssignment:
        """Put ``operator_id`` on the roster and give them an OFFLINE assignment."""
        event = self.get(event_id)
        require(principal, "add_operator", event=event)

        def mutate(data: dict) -> None:
            roster = data.setdefault("operators", [])
            if operator_id not in roster:
                roster.append(operator_id)
                data["updated_at"] = self.clock().isoformat()

        with self.broadcaster.ordered(event_id):
            before_doc, after_doc = atomic_update(
                self.store, EVENTS, event_id, mutate, missing_message=f"Event {event_id} not found"
            )
            roster_changed = after_doc.revision != before_doc.revision
            if roster_changed:
                publish_event(self.broadcaster, "eventUpdated", Event.from_document(after_doc.data, after_doc.revision))
            try:
                assignment = create_assignment(self.store, event_id, operator_id, self.clock())
            except CoordinatorError:
                if roster_changed:
                    self._compensate_roster_add(event_id, operator_id)
                raise
            if assignment is not None:
                publish_status_change(self.broadcaster, assignment)
                logger.info(f"Operator {operator_id} added to event {event_id}")
                return assignment

        document = self.store.get(ASSIGNMENTS, assignment_key(event_id, operator_id))
        if document is None:
            raise NotAssigned(f"Operator {operator_id} has no assignment on event {event_id}")
        return OperatorAssignment.from_document(document.data, document.revision)

    def remove_operator(self, event_id: str, operator_id: str, principal: Principal) -> None:
        """Take ``operator_id`` off the roster, drop the assignment and clear channel references."""
        event = self.get(event_id)
        require(principal, "remove_operator", event=event)
        if operator_id not in event.operators:
            raise NotAssigned(f"Operator {operator_id} is not on event {event_id}")

        def mutate(data: dict) -> None:
            data["operators"] = [item for item in data.get("operators", []) if item != operator_id]
            for channel in data.get("channels", []):
                if channel.get("assigned_to") == operator_id:
                    channel["assigned_to"] = None
            data["updated_at"] = self.clock().isoformat()

        with self.broadcaster.ordered(event_id):
            _, after_doc = atomic_update(
                self.store, EVENTS, event_id, mutate, missing_message=f"Event {event_id} not found"
            )
            self.store.delete(ASSIGNMENTS, assignment_key(event_id, operator_id))
            publish_event(self.broadcaster, "eventUpdated", Event.from_document(after_doc.data, after_doc.revision))
        logger.info(f"Operator {operator_id} removed from event {event_id}")

    # Internals

    def _sync_schedule(self, before: Event, after: Event) -> None:
        if self.scheduler is None:
            return
        if after.status in CLOSED_STATUSES:
            if before.status not in CLOSED_STATUSES:
                self.scheduler.stop(after.id)
            return
        if before.status in CLOSED_STATUSES:
            self.scheduler.start(after)
            return
        intervals_changed = (
            before.check_in_interval != after.check_in_interval
            or before.welfare_check_interval != after.welfare_check_interval
        )
        if intervals_changed and self.reschedule_on_interval_change:
            self.scheduler.start(after)

    def _clear_zone_references(self, event_id: str, zone_ids: set[str]) -> None:
        """Clear ``current_zone`` on every assignment that pointed at a removed zone."""
        for assignment in list_assignments(self.store, event_id):
            if assignment.current_zone not in zone_ids:
                continue

            def mutate(data: dict) -> None:
                if data.get("current_zone") in zone_ids:
                    data["current_zone"] = None
                    data["status_changed_at"] = self.clock().isoformat()

            with self.broadcaster.ordered(event_id):
                try:
                    _, after_doc = atomic_update(self.store, ASSIGNMENTS, assignment.key, mutate)
                except NotFound:
                    continue
                publish_status_change(self.broadcaster, OperatorAssignment.from_document(after_doc.data, after_doc.revision))

    def _compensate_roster_add(self, event_id: str, operator_id: str) -> None:
        def mutate(data: dict) -> None:
            data["operators"] = [item for item in data.get("operators", []) if item != operator_id]

        try:
            _, after_doc = atomic_update(self.store, EVENTS, event_id, mutate)
            publish_event(self.broadcaster, "eventUpdated", Event.from_document(after_doc.data, after_doc.revision))
            logger.info(f"Rolled back roster add of {operator_id} on event {event_id}")
        except CoordinatorError as exc:
            logger.error(
                f"Roster of event {event_id} lists {operator_id} without an assignment ({exc}); "
                "it will be repaired on next read"
            )

    def _repair(self, event: Event) -> Event:
        """Lazily heal two-document inconsistencies left by partial failures."""
        if event.linked_events:
            event = self.links.repair(event)
        if event.operators:
            present = {assignment.operator_id for assignment in list_assignments(self.store, event.id)}
            for operator_id in event.operators:
                if operator_id in present:
                    continue
                logger.warning(f"Restoring missing assignment for {operator_id} on event {event.id}")
                with self.broadcaster.ordered(event.id):
                    assignment = create_assignment(self.store, event.id, operator_id, self.clock())
                    if assignment is not None:
                        publish_status_change(self.broadcaster, assignment)
        return event
