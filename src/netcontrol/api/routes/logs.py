"""Radio log book endpoints."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...engine import Engine
from ...errors import CoordinatorError
from ...models.domain import Principal, parse_datetime
from ...schemas.events import MessageResponse
from ...schemas.logs import LogEntryCreate, LogEntryModel, LogEntryPatch
from ..dependencies import get_engine, get_principal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/logs", tags=["logs"])


@router.get("", response_model=list[LogEntryModel])
def list_logs(
    event_id: Optional[str] = Query(default=None, alias="eventId"),
    talkgroup: Optional[str] = Query(default=None),
    channel: Optional[str] = Query(default=None),
    operator_id: Optional[str] = Query(default=None, alias="operatorId"),
    start: Optional[datetime] = Query(default=None, alias="startDate"),
    end: Optional[datetime] = Query(default=None, alias="endDate"),
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> list[LogEntryModel]:
    """Search the log book. All filters are optional and combine with AND; newest entries first."""
    entries = engine.logbook.list(
        event_id=event_id,
        talkgroup=talkgroup,
        channel=channel,
        operator_id=operator_id,
        start=parse_datetime(start),
        end=parse_datetime(end),
    )
    return [LogEntryModel.from_domain(entry) for entry in entries]


@router.get("/{log_id}", response_model=LogEntryModel)
def get_log(
    log_id: str,
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> LogEntryModel:
    return LogEntryModel.from_domain(engine.logbook.get(log_id))


@router.post("", response_model=LogEntryModel, status_code=status.HTTP_201_CREATED)
def create_log(
    payload: LogEntryCreate,
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> LogEntryModel:
    try:
        entry = engine.logbook.create(payload.model_dump(exclude_unset=True), principal)
    except CoordinatorError:
        raise
    except Exception as exc:
        logger.exception(f"Error creating log entry: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create log entry: {str(exc)}",
        ) from exc
    return LogEntryModel.from_domain(entry)


@router.put("/{log_id}", response_model=LogEntryModel)
def update_log(
    log_id: str,
    payload: LogEntryPatch,
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> LogEntryModel:
    entry = engine.logbook.update(log_id, payload.model_dump(exclude_unset=True), principal)
    return LogEntryModel.from_domain(entry)


@router.delete("/{log_id}", response_model=MessageResponse)
def delete_log(
    log_id: str,
    engine: Engine = Depends(get_engine),
    principal: Principal = Depends(get_principal),
) -> MessageResponse:
    engine.logbook.delete(log_id, principal)
    return MessageResponse(message="Log entry deleted")
