"""Authorization rules for mutations on events, assignments and logs."""

from __future__ import annotations

import logging
from typing import Literal, Optional

from ..config import settings
from ..errors import Forbidden
from ..models.domain import Event, LogEntry, Principal

logger = logging.getLogger(__name__)

Action = Literal[
    "create",
    "update",
    "delete",
    "link",
    "add_operator",
    "remove_operator",
    "set_status",
    "check_in",
    "welfare_check",
    "edit_log",
]

OWNER_ACTIONS = frozenset({"update", "delete", "link", "add_operator", "remove_operator"})
OPERATOR_ACTIONS = frozenset({"set_status", "check_in", "welfare_check"})


def is_admin(principal: Principal) -> bool:
    return principal.role == settings.admin_role


def is_authorized(
    principal: Optional[Principal],
    action: Action,
    *,
    event: Optional[Event] = None,
    operator_id: Optional[str] = None,
    log: Optional[LogEntry] = None,
) -> bool:
    """Pure predicate: may ``principal`` perform ``action`` on the given target?"""
    if principal is None:
        return False
    if action == "create":
        return True
    if is_admin(principal):
        return True
    if action in OWNER_ACTIONS:
        return event is not None and event.created_by == principal.id
    if action in OPERATOR_ACTIONS:
        return operator_id is not None and operator_id == principal.id
    if action == "edit_log":
        return log is not None and log.operator_id == principal.id
    return False


def require(
    principal: Optional[Principal],
    action: Action,
    *,
    event: Optional[Event] = None,
    operator_id: Optional[str] = None,
    log: Optional[LogEntry] = None,
) -> None:
    """Raise Forbidden unless :func:`is_authorized` approves."""
    if is_authorized(principal, action, event=event, operator_id=operator_id, log=log):
        return
    who = principal.id if principal else "anonymous"
    logger.info(f"Denied {action} for {who}")
    raise Forbidden(f"Not authorized to {action.replace('_', ' ')}")
