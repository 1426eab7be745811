"""Pydantic request/response models for log book endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from ..models.domain import LogEntry
from .events import CamelModel

MessageTypeField = Literal["INFO", "URGENT", "CHECK-IN", "OTHER"]


class LogEntryCreate(CamelModel):
    event_id: str = Field(..., description="Event the entry belongs to.")
    message: str = Field(..., min_length=1)
    talkgroup: str = Field(..., min_length=1)
    channel: str = Field(..., min_length=1)
    message_type: MessageTypeField = "INFO"
    timestamp: Optional[datetime] = Field(default=None, description="Defaults to the time of receipt.")
    callsign: Optional[str] = Field(default=None, description="Defaults to the caller's callsign.")


class LogEntryPatch(CamelModel):
    message: Optional[str] = Field(default=None, min_length=1)
    talkgroup: Optional[str] = Field(default=None, min_length=1)
    channel: Optional[str] = Field(default=None, min_length=1)
    message_type: Optional[MessageTypeField] = None
    timestamp: Optional[datetime] = None


class LogEntryModel(CamelModel):
    id: str
    timestamp: datetime
    event_id: str
    operator_id: str
    callsign: str
    message_type: str
    message: str
    talkgroup: str
    channel: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, entry: LogEntry) -> "LogEntryModel":
        return cls(
            id=entry.id,
            timestamp=entry.timestamp,
            event_id=entry.event_id,
            operator_id=entry.operator_id,
            callsign=entry.callsign,
            message_type=entry.message_type,
            message=entry.message,
            talkgroup=entry.talkgroup,
            channel=entry.channel,
            created_at=entry.created_at,
            updated_at=entry.updated_at,
        )


def log_payload(entry: LogEntry) -> dict:
    return LogEntryModel.from_domain(entry).model_dump(mode="json", by_alias=True)
