"""Event, roster and operator presence endpoints."""

from __future__ import annotations

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from ...engine import Engine
from ...errors import CoordinatorError, ValidationError
from ...models.domain import Principal
from ...schemas.events import (
    AssignmentModel,
    CamelModel,
    CheckInRequest,
    CheckInResponse,
    EventCreate,
    EventModel,
    EventPatch,
    LinkRequest,
    MessageResponse,
    OperatorRequest,
    OperatorStatusRequest,
    WelfareCheckRequest,
)
from ...schemas.logs import LogEntryModel
from ..dependencies import get_engine, get_principal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


class WelfareCheckResponse(CamelModel):
    assignment: AssignmentModel
    log: LogEntryModel


def _unexpected(action: str, exc: Exception) -> HTTPException:
    logger.exception(f"Error during {action}: {exc}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}: {str(exc)}",
    )


@router.get("", response_model=list[EventModel])
def list_events(
    status_filter: Optional[Literal["ACTIVE", "COMPLETED", "ARCHIVED"]] = Query(default=None, alias="status"),
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> list[EventModel]:
    return [EventModel.from_domain(event) for event in engine.events.list(status=status_filter)]


@router.get("/{event_id}", response_model=EventModel)
def get_event(
    event_id: str,
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> EventModel:
    return EventModel.from_domain(engine.events.get(event_id))


@router.post("", response_model=EventModel, status_code=status.HTTP_201_CREATED)
def create_event(
    payload: EventCreate,
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> EventModel:
    try:
        event = engine.events.create(payload.model_dump(exclude_unset=True), principal)
    except CoordinatorError:
        raise
    except Exception as exc:
        raise _unexpected("create event", exc) from exc
    return EventModel.from_domain(event)


@router.put("/{event_id}", response_model=EventModel)
def update_event(
    event_id: str,
    payload: EventPatch,
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> EventModel:
    try:
        event = engine.events.update(event_id, payload.model_dump(exclude_unset=True), principal)
    except CoordinatorError:
        raise
    except Exception as exc:
        raise _unexpected("update event", exc) from exc
    return EventModel.from_domain(event)


@router.delete("/{event_id}", response_model=MessageResponse)
def delete_event(
    event_id: str,
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> MessageResponse:
    try:
        engine.events.delete(event_id, principal)
    except CoordinatorError:
        raise
    except Exception as exc:
        raise _unexpected("delete event", exc) from exc
    return MessageResponse(message="Event deleted")


@router.post("/{event_id}/link", response_model=EventModel)
def link_events(
    event_id: str,
    payload: LinkRequest,
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> EventModel:
    """Link two events both ways. Repeating the call, in either direction, changes nothing."""
    return EventModel.from_domain(engine.events.link(event_id, payload.target_event_id, principal))


@router.get("/{event_id}/operators", response_model=list[AssignmentModel])
def list_operators(
    event_id: str,
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> list[AssignmentModel]:
    return [AssignmentModel.from_domain(item) for item in engine.presence.list_assignments(event_id)]


@router.post("/{event_id}/operators", response_model=AssignmentModel)
def add_operator(
    event_id: str,
    payload: OperatorRequest,
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> AssignmentModel:
    assignment = engine.events.add_operator(event_id, payload.operator_id, principal)
    return AssignmentModel.from_domain(assignment)


@router.delete("/{event_id}/operators/{operator_id}", response_model=MessageResponse)
def remove_operator(
    event_id: str,
    operator_id: str,
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> MessageResponse:
    engine.events.remove_operator(event_id, operator_id, principal)
    return MessageResponse(message="Operator removed from event")


@router.post("/{event_id}/check-in", response_model=CheckInResponse)
def check_in(
    event_id: str,
    payload: Optional[CheckInRequest] = Body(default=None),
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> CheckInResponse:
    position = None
    if payload is not None and (payload.latitude is not None or payload.longitude is not None):
        if payload.latitude is None or payload.longitude is None:
            raise ValidationError("latitude and longitude must be sent together")
        position = (payload.longitude, payload.latitude)
    operator_id = (payload.operator_id if payload is not None else None) or principal.id
    assignment, suggestion = engine.presence.check_in(event_id, operator_id, principal, position=position)
    return CheckInResponse(
        **AssignmentModel.from_domain(assignment).model_dump(),
        suggested_zone_id=suggestion.id if suggestion else None,
    )


@router.post("/{event_id}/welfare-check", response_model=WelfareCheckResponse)
def welfare_check(
    event_id: str,
    payload: Optional[WelfareCheckRequest] = Body(default=None),
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> WelfareCheckResponse:
    operator_id = (payload.operator_id if payload is not None else None) or principal.id
    assignment, entry = engine.presence.welfare_check(event_id, operator_id, principal)
    return WelfareCheckResponse(
        assignment=AssignmentModel.from_domain(assignment),
        log=LogEntryModel.from_domain(entry),
    )


@router.put("/{event_id}/operator-status", response_model=AssignmentModel)
def set_operator_status(
    event_id: str,
    payload: OperatorStatusRequest,
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> AssignmentModel:
    operator_id = payload.operator_id or principal.id
    assignment = engine.presence.set_status(
        event_id, operator_id, payload.status, principal, zone_id=payload.zone_id
    )
    return AssignmentModel.from_domain(assignment)
