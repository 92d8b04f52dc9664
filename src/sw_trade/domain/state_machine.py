"""Trade state machine: the only place trade status transitions are defined.

    PENDING  --accept(receiver)---------> ACCEPTED
    PENDING  --reject(receiver, reason)-> REJECTED
    PENDING  --cancel(proposer)---------> CANCELLED
    PENDING  --expire(system)-----------> EXPIRED
    ACCEPTED --complete(either, code)---> COMPLETED
    ACCEPTED --cancel(either)-----------> CANCELLED

Terminal states (REJECTED, CANCELLED, EXPIRED, COMPLETED) have no outgoing
transitions. Checks run in a fixed order:
  1. actor may perform the action at all          -> NotAuthorizedError
  2. action is allowed from the current status    -> InvalidStateError
  3. actor may perform it from this status        -> NotAuthorizedError
"""

from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Any

from src.sw_common.enums import TradeAction, TradeStatus
from src.sw_common.errors import InvalidStateError, NotAuthorizedError
from src.sw_trade.domain.models import Trade


class Role(str, Enum):
    PROPOSER = "PROPOSER"
    RECEIVER = "RECEIVER"
    SYSTEM = "SYSTEM"


_EITHER = frozenset({Role.PROPOSER, Role.RECEIVER})

TRANSITIONS: dict[tuple[TradeStatus, TradeAction], TradeStatus] = {
    (TradeStatus.PENDING, TradeAction.ACCEPT): TradeStatus.ACCEPTED,
    (TradeStatus.PENDING, TradeAction.REJECT): TradeStatus.REJECTED,
    (TradeStatus.PENDING, TradeAction.CANCEL): TradeStatus.CANCELLED,
    (TradeStatus.PENDING, TradeAction.EXPIRE): TradeStatus.EXPIRED,
    (TradeStatus.ACCEPTED, TradeAction.COMPLETE): TradeStatus.COMPLETED,
    (TradeStatus.ACCEPTED, TradeAction.CANCEL): TradeStatus.CANCELLED,
}

# Who may perform an action in any state.
ACTION_ROLES: dict[TradeAction, frozenset[Role]] = {
    TradeAction.ACCEPT: frozenset({Role.RECEIVER}),
    TradeAction.REJECT: frozenset({Role.RECEIVER}),
    TradeAction.CANCEL: _EITHER,
    TradeAction.COMPLETE: _EITHER,
    TradeAction.EXPIRE: frozenset({Role.SYSTEM}),
}

# Narrower per-state rules; absent entries fall back to ACTION_ROLES.
STATE_ROLES: dict[tuple[TradeStatus, TradeAction], frozenset[Role]] = {
    (TradeStatus.PENDING, TradeAction.CANCEL): frozenset({Role.PROPOSER}),
}


def role_of(trade: Trade, actor_id: str | None) -> Role | None:
    if actor_id is None:
        return Role.SYSTEM
    if actor_id == trade.proposer_id:
        return Role.PROPOSER
    if actor_id == trade.receiver_id:
        return Role.RECEIVER
    return None


def check_transition(trade: Trade, action: TradeAction, actor_id: str | None) -> TradeStatus:
    """Validate `action` by `actor_id` (None = system) and return the target status."""
    verb = action.value.lower()
    actor_label = actor_id or Role.SYSTEM.value
    role = role_of(trade, actor_id)
    if role not in ACTION_ROLES[action]:
        raise NotAuthorizedError(actor_label, verb)

    target = TRANSITIONS.get((trade.status, action))
    if target is None:
        raise InvalidStateError(trade.id, trade.status.value, verb)

    if role not in STATE_ROLES.get((trade.status, action), ACTION_ROLES[action]):
        raise NotAuthorizedError(actor_label, verb)
    return target


def apply_transition(
    trade: Trade,
    action: TradeAction,
    actor_id: str | None,
    now: datetime,
    **changes: Any,
) -> Trade:
    """Return the trade moved to its next status with `changes` applied."""
    target = check_transition(trade, action, actor_id)
    return replace(trade, status=target, updated_at=now, **changes)
