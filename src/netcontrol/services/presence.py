"""Operator presence state machine.

States are ACTIVE, BREAK and OFFLINE; any state may move to any other. Each
transition is a single revision-checked write of one assignment document,
so operators acting concurrently on the same event never contend with each
other, and each accepted write is broadcast exactly once as
``operatorStatusChanged``.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from ..errors import CoordinatorError, NotAssigned, NotFound, ValidationError
from ..models.domain import (
    OPERATOR_STATUSES,
    Coordinate,
    Event,
    LogEntry,
    OperatorAssignment,
    Principal,
    Zone,
    assignment_key,
    utcnow,
)
from ..persistence.documents import ASSIGNMENTS, EVENTS, DocumentStore, atomic_update
from .access import require
from .broadcast import ChangeBroadcaster
from .events.assignments import list_assignments, load_assignment
from .events.deltas import publish_status_change
from .events.store import EventStore
from .geospatial import suggest_zone, validate_coordinate
from .logbook import LogBook

logger = logging.getLogger(__name__)

WELFARE_CHECK_MESSAGE = "Welfare check"
UNSPECIFIED = "-"


class PresenceService:
    def __init__(
        self,
        events: EventStore,
        store: DocumentStore,
        broadcaster: ChangeBroadcaster,
        logbook: LogBook,
        clock: Callable = utcnow,
    ) -> None:
        self.events = events
        self.store = store
        self.broadcaster = broadcaster
        self.logbook = logbook
        self.clock = clock

    def get_assignment(self, event_id: str, operator_id: str) -> OperatorAssignment:
        assignment = load_assignment(self.store, event_id, operator_id)
        if assignment is None:
            raise NotAssigned(f"Operator {operator_id} is not assigned to event {event_id}")
        return assignment

    def list_assignments(self, event_id: str) -> list[OperatorAssignment]:
        self.events.get(event_id)
        return list_assignments(self.store, event_id)

    def check_in(
        self,
        event_id: str,
        operator_id: str,
        principal: Principal,
        position: Optional[Coordinate] = None,
    ) -> tuple[OperatorAssignment, Optional[Zone]]:
        """Mark the operator ACTIVE and stamp ``last_check_in``.

        When ``position`` is given the first zone containing it is returned
        as a suggestion; the assignment's zone is left untouched.
        """
        event = self.events.get(event_id)
        require(principal, "check_in", operator_id=operator_id)
        suggestion = None
        if position is not None:
            suggestion = suggest_zone(event.zones, validate_coordinate(position, "position"))

        def mutate(data: dict, now) -> None:
            data["status"] = "ACTIVE"
            data["last_check_in"] = now.isoformat()
            data["status_changed_at"] = now.isoformat()

        assignment = self._transition(event, operator_id, mutate)
        logger.info(f"Operator {operator_id} checked in on event {event_id}")
        return assignment, suggestion

    def welfare_check(
        self, event_id: str, operator_id: str, principal: Principal
    ) -> tuple[OperatorAssignment, LogEntry]:
        """Confirm the operator is well: stamp ``last_check_in`` and log a CHECK-IN entry."""
        event = self.events.get(event_id)
        require(principal, "welfare_check", operator_id=operator_id)

        def mutate(data: dict, now) -> None:
            data["last_check_in"] = now.isoformat()
            data["status_changed_at"] = now.isoformat()

        assignment = self._transition(event, operator_id, mutate)
        channel = event.channel_for(operator_id) or (event.channels[0] if event.channels else None)
        try:
            entry = self.logbook.record(
                event_id=event_id,
                operator_id=operator_id,
                callsign=principal.callsign if principal.id == operator_id and principal.callsign else operator_id,
                message=WELFARE_CHECK_MESSAGE,
                message_type="CHECK-IN",
                talkgroup=event.talkgroups[0].name if event.talkgroups else UNSPECIFIED,
                channel=channel.name if channel else UNSPECIFIED,
                timestamp=assignment.last_check_in,
            )
        except CoordinatorError as exc:
            logger.error(
                f"Welfare check of {operator_id} on event {event_id} was recorded at "
                f"{assignment.last_check_in.isoformat()} but its log entry was not written ({exc})"
            )
            raise
        return assignment, entry

    def set_status(
        self,
        event_id: str,
        operator_id: str,
        status: str,
        principal: Principal,
        zone_id: Optional[str] = None,
    ) -> OperatorAssignment:
        event = self.events.get(event_id)
        require(principal, "set_status", operator_id=operator_id)
        if status not in OPERATOR_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(OPERATOR_STATUSES)}")

        def mutate(data: dict, now) -> None:
            data["status"] = status
            if zone_id is not None:
                data["current_zone"] = zone_id
            data["status_changed_at"] = now.isoformat()

        return self._transition(event, operator_id, mutate, zone_id=zone_id)

    def _transition(
        self, event: Event, operator_id: str, mutate, zone_id: Optional[str] = None
    ) -> OperatorAssignment:
        key = assignment_key(event.id, operator_id)
        with self.broadcaster.ordered(event.id):
            if zone_id is not None:
                self._require_zone(event.id, zone_id)
            now = self.clock()
            try:
                before, after = atomic_update(self.store, ASSIGNMENTS, key, lambda data: mutate(data, now))
            except NotFound as exc:
                raise NotAssigned(f"Operator {operator_id} is not assigned to event {event.id}") from exc
            assignment = OperatorAssignment.from_document(after.data, after.revision)
            if after.revision != before.revision:
                publish_status_change(self.broadcaster, assignment)
        return assignment

    def _require_zone(self, event_id: str, zone_id: str) -> None:
        """Check ``zone_id`` against the stored event, not a snapshot read before the lock."""
        document = self.store.get(EVENTS, event_id)
        if document is None:
            raise NotFound(f"Event {event_id} not found")
        if Event.from_document(document.data, document.revision).zone(zone_id) is None:
            raise ValidationError(f"Zone {zone_id} does not exist in event {event_id}")
