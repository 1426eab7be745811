"""Radio log book: append-only entries per event with explicit edit/delete."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from ..errors import NotFound, ValidationError
from ..models.domain import LogEntry, Principal, parse_datetime, utcnow
from ..persistence.documents import EVENTS, LOGS, DocumentStore, atomic_update
from ..schemas.logs import log_payload
from .access import require
from .broadcast import ChangeBroadcaster, event_topic

logger = logging.getLogger(__name__)

MESSAGE_TYPES = ("INFO", "URGENT", "CHECK-IN", "OTHER")
EDITABLE_FIELDS = frozenset({"message", "talkgroup", "channel", "message_type", "timestamp"})


class LogBook:
    def __init__(self, store: DocumentStore, broadcaster: ChangeBroadcaster, clock: Callable = utcnow) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.clock = clock

    def record(
        self,
        *,
        event_id: str,
        operator_id: str,
        callsign: str,
        message: str,
        talkgroup: str,
        channel: str,
        message_type: str = "INFO",
        timestamp: Optional[datetime] = None,
    ) -> LogEntry:
        """Append an entry and broadcast ``newLog``."""
        if message_type not in MESSAGE_TYPES:
            raise ValidationError(f"message_type must be one of {', '.join(MESSAGE_TYPES)}")
        for label, value in (("message", message), ("talkgroup", talkgroup), ("channel", channel)):
            if not value or not str(value).strip():
                raise ValidationError(f"{label} is required")
        now = self.clock()
        entry = LogEntry(
            id=uuid.uuid4().hex,
            timestamp=timestamp or now,
            event_id=event_id,
            operator_id=operator_id,
            callsign=callsign,
            message_type=message_type,
            message=str(message).strip(),
            talkgroup=str(talkgroup).strip(),
            channel=str(channel).strip(),
            created_at=now,
            updated_at=now,
        )
        with self.broadcaster.ordered(event_id):
            self.store.insert(LOGS, entry.id, entry.to_document())
            self.broadcaster.publish(event_topic(event_id), "newLog", log_payload(entry))
        return entry

    def create(self, payload: dict, principal: Principal) -> LogEntry:
        event_id = payload.get("event_id")
        if not event_id:
            raise ValidationError("event_id is required")
        if self.store.get(EVENTS, event_id) is None:
            raise NotFound(f"Event {event_id} not found")
        return self.record(
            event_id=event_id,
            operator_id=principal.id,
            callsign=payload.get("callsign") or principal.callsign or principal.id,
            message=payload.get("message") or "",
            talkgroup=payload.get("talkgroup") or "",
            channel=payload.get("channel") or "",
            message_type=payload.get("message_type") or "INFO",
            timestamp=parse_datetime(payload.get("timestamp")),
        )

    def get(self, log_id: str) -> LogEntry:
        document = self.store.get(LOGS, log_id)
        if document is None:
            raise NotFound(f"Log entry {log_id} not found")
        return LogEntry.from_document(document.data)

    def list(
        self,
        *,
        event_id: Optional[str] = None,
        talkgroup: Optional[str] = None,
        channel: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        operator_id: Optional[str] = None,
    ) -> list[LogEntry]:
        """Entries matching every given filter, newest first."""
        filters = {
            name: value
            for name, value in (
                ("event_id", event_id),
                ("talkgroup", talkgroup),
                ("channel", channel),
                ("operator_id", operator_id),
            )
            if value
        }
        entries = [LogEntry.from_document(document.data) for document in self.store.find(LOGS, **filters)]
        if start is not None:
            entries = [entry for entry in entries if entry.timestamp >= start]
        if end is not None:
            entries = [entry for entry in entries if entry.timestamp <= end]
        return sorted(entries, key=lambda entry: entry.timestamp, reverse=True)

    def update(self, log_id: str, patch: dict, principal: Principal) -> LogEntry:
        entry = self.get(log_id)
        require(principal, "edit_log", log=entry)
        unknown = set(patch) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        if "message_type" in patch and patch["message_type"] not in MESSAGE_TYPES:
            raise ValidationError(f"message_type must be one of {', '.join(MESSAGE_TYPES)}")

        def mutate(data: dict) -> None:
            for name in ("message", "talkgroup", "channel"):
                if name in patch:
                    value = str(patch[name] or "").strip()
                    if not value:
                        raise ValidationError(f"{name} is required")
                    data[name] = value
            if "message_type" in patch:
                data["message_type"] = patch["message_type"]
            if patch.get("timestamp") is not None:
                data["timestamp"] = parse_datetime(patch["timestamp"]).isoformat()
            data["updated_at"] = self.clock().isoformat()

        with self.broadcaster.ordered(entry.event_id):
            _, after = atomic_update(self.store, LOGS, log_id, mutate, missing_message=f"Log entry {log_id} not found")
            updated = LogEntry.from_document(after.data)
            self.broadcaster.publish(event_topic(updated.event_id), "logUpdated", log_payload(updated))
        return updated

    def delete(self, log_id: str, principal: Principal) -> None:
        entry = self.get(log_id)
        require(principal, "edit_log", log=entry)
        with self.broadcaster.ordered(entry.event_id):
            if not self.store.delete(LOGS, log_id):
                raise NotFound(f"Log entry {log_id} not found")
            self.broadcaster.publish(
                event_topic(entry.event_id), "logDeleted", {"id": log_id, "eventId": entry.event_id}
            )
        logger.info(f"Log entry {log_id} deleted by {principal.id}")
