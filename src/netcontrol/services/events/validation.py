"""Validation and construction of event aggregates from request data."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Iterable, Optional

from ...errors import ValidationError
from ...models.domain import (
    EVENT_STATUSES,
    Channel,
    Event,
    Location,
    Talkgroup,
    Zone,
    parse_datetime,
)
from ..geospatial import validate_coordinate, validate_polygon

ZONE_TYPES = ("MEDICAL", "SECURITY", "COMMS", "GENERAL")
CHANNEL_MODES = ("FM", "DMR", "D-STAR")

PATCHABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "status",
        "start_date",
        "end_date",
        "location",
        "zones",
        "channels",
        "talkgroups",
        "check_in_interval",
        "welfare_check_interval",
    }
)


def _required_text(value: Any, label: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} is required")
    return str(value).strip()


def parse_date(value: Any, label: str) -> Optional[datetime]:
    try:
        return parse_datetime(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{label} is not a valid date") from exc


def parse_status(value: Any) -> str:
    if value not in EVENT_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(EVENT_STATUSES)}")
    return value


def parse_interval(value: Any, label: str, default: Optional[int] = None) -> int:
    if value is None:
        if default is None:
            raise ValidationError(f"{label} is required")
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) != value:
        raise ValidationError(f"{label} must be a whole number of minutes")
    if value < 1:
        raise ValidationError(f"{label} must be at least 1 minute")
    return int(value)


def parse_location(value: Any) -> Location:
    if not isinstance(value, dict) or "coordinates" not in value:
        raise ValidationError("location.coordinates is required")
    lon, lat = validate_coordinate(value["coordinates"], "location.coordinates")
    radius = value.get("radius")
    if radius is not None:
        try:
            radius = float(radius)
        except (TypeError, ValueError) as exc:
            raise ValidationError("location.radius must be a number") from exc
        if radius < 0:
            raise ValidationError("location.radius must not be negative")
    return Location(longitude=lon, latitude=lat, radius=radius)


def parse_zones(items: Optional[Iterable[dict]]) -> list[Zone]:
    zones: list[Zone] = []
    seen: set[str] = set()
    for index, item in enumerate(items or []):
        label = f"zones[{index}]"
        name = _required_text(item.get("name"), f"{label}.name")
        zone_type = item.get("type")
        if zone_type not in ZONE_TYPES:
            raise ValidationError(f"{label}.type must be one of {', '.join(ZONE_TYPES)}")
        zone_id = item.get("id") or uuid.uuid4().hex
        if zone_id in seen:
            raise ValidationError(f"{label}.id {zone_id} is used by more than one zone")
        seen.add(zone_id)
        zones.append(
            Zone(
                id=zone_id,
                name=name,
                type=zone_type,
                coordinates=validate_polygon(item.get("coordinates") or [], label),
                color=item.get("color") or "#000000",
                description=item.get("description"),
            )
        )
    return zones


def parse_channels(items: Optional[Iterable[dict]], roster: Iterable[str]) -> list[Channel]:
    members = set(roster)
    channels: list[Channel] = []
    for index, item in enumerate(items or []):
        label = f"channels[{index}]"
        mode = item.get("mode")
        if mode not in CHANNEL_MODES:
            raise ValidationError(f"{label}.mode must be one of {', '.join(CHANNEL_MODES)}")
        assigned_to = item.get("assigned_to")
        if assigned_to is not None and assigned_to not in members:
            raise ValidationError(f"{label}.assigned_to {assigned_to} is not on the event roster")
        channels.append(
            Channel(
                name=_required_text(item.get("name"), f"{label}.name"),
                frequency=_required_text(item.get("frequency"), f"{label}.frequency"),
                mode=mode,
                purpose=_required_text(item.get("purpose"), f"{label}.purpose"),
                assigned_to=assigned_to,
            )
        )
    return channels


def parse_talkgroups(items: Optional[Iterable[dict]]) -> list[Talkgroup]:
    return [
        Talkgroup(name=_required_text(item.get("name"), f"talkgroups[{index}].name"), description=item.get("description"))
        for index, item in enumerate(items or [])
    ]


def _check_dates(event: Event) -> None:
    if event.end_date is not None and event.end_date < event.start_date:
        raise ValidationError("end_date must not be before start_date")


def build_event(
    payload: dict,
    *,
    created_by: str,
    now: datetime,
    default_check_in_interval: int = 30,
    default_welfare_check_interval: int = 60,
) -> Event:
    """Validate a create request and return the new aggregate."""
    start_date = parse_date(payload.get("start_date"), "start_date")
    if start_date is None:
        raise ValidationError("start_date is required")
    event = Event(
        id=uuid.uuid4().hex,
        name=_required_text(payload.get("name"), "name"),
        description=payload.get("description") or "",
        status=parse_status(payload.get("status") or "ACTIVE"),
        start_date=start_date,
        end_date=parse_date(payload.get("end_date"), "end_date"),
        location=parse_location(payload.get("location")),
        zones=parse_zones(payload.get("zones")),
        channels=parse_channels(payload.get("channels"), roster=()),
        talkgroups=parse_talkgroups(payload.get("talkgroups")),
        check_in_interval=parse_interval(
            payload.get("check_in_interval"), "check_in_interval", default_check_in_interval
        ),
        welfare_check_interval=parse_interval(
            payload.get("welfare_check_interval"), "welfare_check_interval", default_welfare_check_interval
        ),
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )
    _check_dates(event)
    return event


def apply_patch(event: Event, patch: dict, now: datetime) -> Event:
    """Apply a partial update in place. Unknown or immutable fields are rejected."""
    unknown = set(patch) - PATCHABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    if "name" in patch:
        event.name = _required_text(patch["name"], "name")
    if "description" in patch:
        event.description = patch["description"] or ""
    if "status" in patch:
        event.status = parse_status(patch["status"])
    if "start_date" in patch:
        start_date = parse_date(patch["start_date"], "start_date")
        if start_date is None:
            raise ValidationError("start_date is required")
        event.start_date = start_date
    if "end_date" in patch:
        event.end_date = parse_date(patch["end_date"], "end_date")
    if "location" in patch:
        event.location = parse_location(patch["location"])
    if "zones" in patch:
        event.zones = parse_zones(patch["zones"])
    if "channels" in patch:
        event.channels = parse_channels(patch["channels"], roster=event.operators)
    if "talkgroups" in patch:
        event.talkgroups = parse_talkgroups(patch["talkgroups"])
    if "check_in_interval" in patch:
        event.check_in_interval = parse_interval(patch["check_in_interval"], "check_in_interval")
    if "welfare_check_interval" in patch:
        event.welfare_check_interval = parse_interval(patch["welfare_check_interval"], "welfare_check_interval")
    _check_dates(event)
    event.updated_at = now
    return event
