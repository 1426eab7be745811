"""FastAPI dependencies shared by the route modules."""

from __future__ import annotations

from typing import Optional

from fastapi import Header, Request

from ..engine import Engine
from ..models.domain import Principal
from ..security import extract_bearer_token, resolve_principal


def get_engine(request: Request) -> Engine:
    return request.app.state.engine


def get_principal(authorization: Optional[str] = Header(default=None)) -> Principal:
    return resolve_principal(extract_bearer_token(authorization))
