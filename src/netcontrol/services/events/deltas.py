"""Helpers that turn accepted writes into broadcast deltas."""

from __future__ import annotations

from ...models.domain import Event, OperatorAssignment, utcnow
from ...schemas.events import event_payload
from ..broadcast import EVENTS_TOPIC, ChangeBroadcaster, DeltaType, event_topic

LISTING_DELTAS = frozenset({"newEvent", "eventUpdated", "eventDeleted"})


def publish_event(broadcaster: ChangeBroadcaster, delta_type: DeltaType, event: Event) -> None:
    payload = event_payload(event)
    broadcaster.publish(event_topic(event.id), delta_type, payload)
    if delta_type in LISTING_DELTAS:
        broadcaster.publish(EVENTS_TOPIC, delta_type, payload)


def publish_event_deleted(broadcaster: ChangeBroadcaster, event_id: str) -> None:
    payload = {"id": event_id}
    broadcaster.publish(event_topic(event_id), "eventDeleted", payload)
    broadcaster.publish(EVENTS_TOPIC, "eventDeleted", payload)


def publish_status_change(broadcaster: ChangeBroadcaster, assignment: OperatorAssignment) -> None:
    """Emit ``operatorStatusChanged`` for one accepted assignment write."""
    stamp = assignment.status_changed_at or utcnow()
    broadcaster.publish(
        event_topic(assignment.event_id),
        "operatorStatusChanged",
        {
            "eventId": assignment.event_id,
            "operatorId": assignment.operator_id,
            "status": assignment.status,
            "zoneId": assignment.current_zone,
            "lastCheckIn": assignment.last_check_in.isoformat() if assignment.last_check_in else None,
            "timestamp": stamp.isoformat(),
        },
    )
