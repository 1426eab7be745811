"""Domain models for events, zones, operator assignments and log entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional

EventStatus = Literal["ACTIVE", "COMPLETED", "ARCHIVED"]
ZoneType = Literal["MEDICAL", "SECURITY", "COMMS", "GENERAL"]
ChannelMode = Literal["FM", "DMR", "D-STAR"]
OperatorStatus = Literal["ACTIVE", "BREAK", "OFFLINE"]
MessageType = Literal["INFO", "URGENT", "CHECK-IN", "OTHER"]

EVENT_STATUSES: tuple[str, ...] = ("ACTIVE", "COMPLETED", "ARCHIVED")
OPERATOR_STATUSES: tuple[str, ...] = ("ACTIVE", "BREAK", "OFFLINE")

Coordinate = tuple[float, float]  # (longitude, latitude)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def assignment_key(event_id: str, operator_id: str) -> str:
    return f"{event_id}:{operator_id}"


@dataclass(slots=True)
class Principal:
    """Authenticated caller resolved from a bearer credential."""

    id: str
    role: str = "operator"
    callsign: Optional[str] = None


@dataclass(slots=True)
class Location:
    longitude: float
    latitude: float
    radius: Optional[float] = None

    @property
    def coordinates(self) -> Coordinate:
        return (self.longitude, self.latitude)

    def to_document(self) -> dict:
        return {"coordinates": [self.longitude, self.latitude], "radius": self.radius}

    @classmethod
    def from_document(cls, data: dict) -> "Location":
        lon, lat = data["coordinates"]
        return cls(longitude=float(lon), latitude=float(lat), radius=data.get("radius"))


@dataclass(slots=True)
class Zone:
    """Named polygonal sub-area of an event."""

    id: str
    name: str
    type: ZoneType
    coordinates: list[Coordinate]
    color: str = "#000000"
    description: Optional[str] = None

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "coordinates": [[lon, lat] for lon, lat in self.coordinates],
            "color": self.color,
            "description": self.description,
        }

    @classmethod
    def from_document(cls, data: dict) -> "Zone":
        return cls(
            id=data["id"],
            name=data["name"],
            type=data["type"],
            coordinates=[(float(lon), float(lat)) for lon, lat in data["coordinates"]],
            color=data.get("color") or "#000000",
            description=data.get("description"),
        )


@dataclass(slots=True)
class Channel:
    name: str
    frequency: str
    mode: ChannelMode
    purpose: str
    assigned_to: Optional[str] = None

    def to_document(self) -> dict:
        return {
            "name": self.name,
            "frequency": self.frequency,
            "mode": self.mode,
            "purpose": self.purpose,
            "assigned_to": self.assigned_to,
        }

    @classmethod
    def from_document(cls, data: dict) -> "Channel":
        return cls(
            name=data["name"],
            frequency=data["frequency"],
            mode=data["mode"],
            purpose=data["purpose"],
            assigned_to=data.get("assigned_to"),
        )


@dataclass(slots=True)
class Talkgroup:
    name: str
    description: Optional[str] = None

    def to_document(self) -> dict:
        return {"name": self.name, "description": self.description}

    @classmethod
    def from_document(cls, data: dict) -> "Talkgroup":
        return cls(name=data["name"], description=data.get("description"))


@dataclass(slots=True)
class Event:
    """Canonical event aggregate as held by the document store."""

    id: str
    name: str
    start_date: datetime
    location: Location
    created_by: str
    description: str = ""
    status: EventStatus = "ACTIVE"
    end_date: Optional[datetime] = None
    zones: list[Zone] = field(default_factory=list)
    channels: list[Channel] = field(default_factory=list)
    talkgroups: list[Talkgroup] = field(default_factory=list)
    linked_events: list[str] = field(default_factory=list)
    operators: list[str] = field(default_factory=list)
    check_in_interval: int = 30
    welfare_check_interval: int = 60
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    revision: int = 0

    def zone(self, zone_id: Optional[str]) -> Optional[Zone]:
        """Resolve a weak zone reference, or None when it no longer exists."""
        if zone_id is None:
            return None
        for zone in self.zones:
            if zone.id == zone_id:
                return zone
        return None

    def channel_for(self, operator_id: str) -> Optional[Channel]:
        for channel in self.channels:
            if channel.assigned_to == operator_id:
                return channel
        return None

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "location": self.location.to_document(),
            "zones": [zone.to_document() for zone in self.zones],
            "channels": [channel.to_document() for channel in self.channels],
            "talkgroups": [talkgroup.to_document() for talkgroup in self.talkgroups],
            "linked_events": list(self.linked_events),
            "operators": list(self.operators),
            "check_in_interval": self.check_in_interval,
            "welfare_check_interval": self.welfare_check_interval,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_document(cls, data: dict, revision: int = 0) -> "Event":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description") or "",
            status=data.get("status", "ACTIVE"),
            start_date=parse_datetime(data["start_date"]),
            end_date=parse_datetime(data.get("end_date")),
            location=Location.from_document(data["location"]),
            zones=[Zone.from_document(item) for item in data.get("zones", [])],
            channels=[Channel.from_document(item) for item in data.get("channels", [])],
            talkgroups=[Talkgroup.from_document(item) for item in data.get("talkgroups", [])],
            linked_events=list(data.get("linked_events", [])),
            operators=list(data.get("operators", [])),
            check_in_interval=int(data.get("check_in_interval", 30)),
            welfare_check_interval=int(data.get("welfare_check_interval", 60)),
            created_by=data["created_by"],
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            revision=revision,
        )


@dataclass(slots=True)
class OperatorAssignment:
    """Presence record for one operator within one event."""

    event_id: str
    operator_id: str
    status: OperatorStatus = "OFFLINE"
    current_zone: Optional[str] = None
    last_check_in: Optional[datetime] = None
    status_changed_at: Optional[datetime] = None
    revision: int = 0

    @property
    def key(self) -> str:
        return assignment_key(self.event_id, self.operator_id)

    def to_document(self) -> dict:
        return {
            "event_id": self.event_id,
            "operator_id": self.operator_id,
            "status": self.status,
            "current_zone": self.current_zone,
            "last_check_in": _iso(self.last_check_in),
            "status_changed_at": _iso(self.status_changed_at),
        }

    @classmethod
    def from_document(cls, data: dict, revision: int = 0) -> "OperatorAssignment":
        return cls(
            event_id=data["event_id"],
            operator_id=data["operator_id"],
            status=data.get("status", "OFFLINE"),
            current_zone=data.get("current_zone"),
            last_check_in=parse_datetime(data.get("last_check_in")),
            status_changed_at=parse_datetime(data.get("status_changed_at")),
            revision=revision,
        )


@dataclass(slots=True)
class LogEntry:
    """Single radio log line recorded against an event."""

    id: str
    timestamp: datetime
    event_id: str
    operator_id: str
    callsign: str
    message: str
    talkgroup: str
    channel: str
    message_type: MessageType = "INFO"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "timestamp": _iso(self.timestamp),
            "event_id": self.event_id,
            "operator_id": self.operator_id,
            "callsign": self.callsign,
            "message_type": self.message_type,
            "message": self.message,
            "talkgroup": self.talkgroup,
            "channel": self.channel,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_document(cls, data: dict) -> "LogEntry":
        return cls(
            id=data["id"],
            timestamp=parse_datetime(data["timestamp"]),
            event_id=data["event_id"],
            operator_id=data["operator_id"],
            callsign=data.get("callsign") or "",
            message_type=data.get("message_type", "INFO"),
            message=data["message"],
            talkgroup=data.get("talkgroup") or "",
            channel=data.get("channel") or "",
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )
