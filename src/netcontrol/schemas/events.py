"""Pydantic request/response models for event, roster and presence endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..models.domain import Event, OperatorAssignment


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LocationModel(CamelModel):
    coordinates: tuple[float, float] = Field(..., description="[longitude, latitude]")
    radius: Optional[float] = Field(default=None, description="Radius around the point, in metres.")


class ZoneModel(CamelModel):
    id: Optional[str] = None
    name: str
    type: Literal["MEDICAL", "SECURITY", "COMMS", "GENERAL"]
    coordinates: list[tuple[float, float]] = Field(..., description="Polygon vertices as [longitude, latitude].")
    color: str = "#000000"
    description: Optional[str] = None


class ChannelModel(CamelModel):
    name: str
    frequency: str
    mode: Literal["FM", "DMR", "D-STAR"]
    purpose: str
    assigned_to: Optional[str] = None


class TalkgroupModel(CamelModel):
    name: str
    description: Optional[str] = None


class EventCreate(CamelModel):
    # name and start_date are checked by the store so a missing value is a 400, not a 422
    name: Optional[str] = None
    description: str = ""
    status: Literal["ACTIVE", "COMPLETED", "ARCHIVED"] = "ACTIVE"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    location: Optional[LocationModel] = None
    zones: list[ZoneModel] = Field(default_factory=list)
    channels: list[ChannelModel] = Field(default_factory=list)
    talkgroups: list[TalkgroupModel] = Field(default_factory=list)
    check_in_interval: Optional[int] = Field(default=None, description="Minutes between check-in prompts.")
    welfare_check_interval: Optional[int] = Field(default=None, description="Minutes between welfare prompts.")


class EventPatch(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[Literal["ACTIVE", "COMPLETED", "ARCHIVED"]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    location: Optional[LocationModel] = None
    zones: Optional[list[ZoneModel]] = None
    channels: Optional[list[ChannelModel]] = None
    talkgroups: Optional[list[TalkgroupModel]] = None
    check_in_interval: Optional[int] = None
    welfare_check_interval: Optional[int] = None


class LinkRequest(CamelModel):
    target_event_id: str = Field(..., validation_alias=AliasChoices("targetEventId", "eventId", "target_event_id"))


class OperatorRequest(CamelModel):
    operator_id: str


class CheckInRequest(CamelModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    operator_id: Optional[str] = Field(default=None, description="Admins may check in another operator.")


class WelfareCheckRequest(CamelModel):
    operator_id: Optional[str] = Field(default=None, description="Admins may confirm another operator.")


class OperatorStatusRequest(CamelModel):
    status: Literal["ACTIVE", "BREAK", "OFFLINE"]
    zone_id: Optional[str] = None
    operator_id: Optional[str] = Field(
        default=None, description="Target operator; defaults to the caller. Admins may act for others."
    )


class EventModel(CamelModel):
    id: str
    name: str
    description: str
    status: str
    start_date: datetime
    end_date: Optional[datetime] = None
    location: LocationModel
    zones: list[ZoneModel]
    channels: list[ChannelModel]
    talkgroups: list[TalkgroupModel]
    linked_events: list[str]
    operators: list[str]
    check_in_interval: int
    welfare_check_interval: int
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    revision: int

    @classmethod
    def from_domain(cls, event: Event) -> "EventModel":
        return cls(
            id=event.id,
            name=event.name,
            description=event.description,
            status=event.status,
            start_date=event.start_date,
            end_date=event.end_date,
            location=LocationModel(coordinates=event.location.coordinates, radius=event.location.radius),
            zones=[
                ZoneModel(
                    id=zone.id,
                    name=zone.name,
                    type=zone.type,
                    coordinates=list(zone.coordinates),
                    color=zone.color,
                    description=zone.description,
                )
                for zone in event.zones
            ],
            channels=[
                ChannelModel(
                    name=channel.name,
                    frequency=channel.frequency,
                    mode=channel.mode,
                    purpose=channel.purpose,
                    assigned_to=channel.assigned_to,
                )
                for channel in event.channels
            ],
            talkgroups=[TalkgroupModel(name=tg.name, description=tg.description) for tg in event.talkgroups],
            linked_events=list(event.linked_events),
            operators=list(event.operators),
            check_in_interval=event.check_in_interval,
            welfare_check_interval=event.welfare_check_interval,
            created_by=event.created_by,
            created_at=event.created_at,
            updated_at=event.updated_at,
            revision=event.revision,
        )


class AssignmentModel(CamelModel):
    event_id: str
    operator_id: str
    status: str
    current_zone: Optional[str] = None
    last_check_in: Optional[datetime] = None
    status_changed_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, assignment: OperatorAssignment) -> "AssignmentModel":
        return cls(
            event_id=assignment.event_id,
            operator_id=assignment.operator_id,
            status=assignment.status,
            current_zone=assignment.current_zone,
            last_check_in=assignment.last_check_in,
            status_changed_at=assignment.status_changed_at,
        )


class CheckInResponse(AssignmentModel):
    suggested_zone_id: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


def event_payload(event: Event) -> dict:
    """JSON-ready representation used for broadcast deltas."""
    return EventModel.from_domain(event).model_dump(mode="json", by_alias=True)
