"""
Ticket status transitions.

plan_transition() never raises: it returns a Transition saying whether the
requested action is allowed from the persisted status and, if so, which
status the ticket ends up in. Services turn a denied Transition into an
InvalidTransitionError.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from models.models import TicketStatus


class TicketAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    NEEDS_INFO = "needs_info"
    REQUEST_PAYMENT = "request_payment"
    MARK_PAID = "mark_paid"
    CONVERT = "convert"
    CANCEL_PAYMENT = "cancel_payment"


TERMINAL_STATUSES: FrozenSet[TicketStatus] = frozenset({TicketStatus.REJECTED, TicketStatus.CONVERTED})

ALLOWED_FROM: Dict[TicketAction, FrozenSet[TicketStatus]] = {
    TicketAction.ACCEPT: frozenset({TicketStatus.OPEN, TicketStatus.NEEDS_INFO}),
    TicketAction.REJECT: frozenset({TicketStatus.OPEN, TicketStatus.NEEDS_INFO, TicketStatus.ACCEPTED}),
    TicketAction.NEEDS_INFO: frozenset({TicketStatus.OPEN, TicketStatus.ACCEPTED}),
    TicketAction.REQUEST_PAYMENT: frozenset(
        {TicketStatus.OPEN, TicketStatus.NEEDS_INFO, TicketStatus.ACCEPTED, TicketStatus.PAYMENT_REQUIRED}
    ),
    TicketAction.MARK_PAID: frozenset({TicketStatus.PAYMENT_REQUIRED, TicketStatus.PAID}),
    # OPEN is legacy permissiveness for zero-price tickets; the price check is the real guard
    TicketAction.CONVERT: frozenset({TicketStatus.ACCEPTED, TicketStatus.PAID, TicketStatus.OPEN}),
    TicketAction.CANCEL_PAYMENT: frozenset({TicketStatus.PAYMENT_REQUIRED}),
}

_VERBS: Dict[TicketAction, str] = {
    TicketAction.ACCEPT: "accept",
    TicketAction.REJECT: "reject",
    TicketAction.NEEDS_INFO: "request info",
    TicketAction.REQUEST_PAYMENT: "request payment",
    TicketAction.MARK_PAID: "mark paid",
    TicketAction.CONVERT: "convert",
    TicketAction.CANCEL_PAYMENT: "cancel payment",
}

_FIXED_TARGET: Dict[TicketAction, TicketStatus] = {
    TicketAction.REJECT: TicketStatus.REJECTED,
    TicketAction.NEEDS_INFO: TicketStatus.NEEDS_INFO,
    TicketAction.REQUEST_PAYMENT: TicketStatus.PAYMENT_REQUIRED,
    TicketAction.MARK_PAID: TicketStatus.PAID,
    TicketAction.CONVERT: TicketStatus.CONVERTED,
    TicketAction.CANCEL_PAYMENT: TicketStatus.ACCEPTED,
}


@dataclass(frozen=True)
class Transition:
    action: TicketAction
    current: TicketStatus
    target: Optional[TicketStatus] = None
    allowed: bool = True
    no_op: bool = False
    reason: Optional[str] = None
    code: Optional[str] = None

    @classmethod
    def deny(cls, action: TicketAction, current: TicketStatus, reason: str, code: str = "TICKET_INVALID_TRANSITION"):
        return cls(action=action, current=current, allowed=False, reason=reason, code=code)


def plan_transition(
    current: TicketStatus,
    action: TicketAction,
    price_cents: Optional[int] = None,
    converted: bool = False,
) -> Transition:
    current = TicketStatus(current)
    has_price = (price_cents or 0) > 0

    # A converted ticket stays converted whatever is asked of it
    if converted:
        return Transition(action=action, current=current, target=TicketStatus.CONVERTED, no_op=True)

    if current not in ALLOWED_FROM[action]:
        return Transition.deny(action, current, f"Cannot {_VERBS[action]}: ticket is {current.value}")

    if action is TicketAction.ACCEPT:
        target = TicketStatus.PAYMENT_REQUIRED if has_price else TicketStatus.ACCEPTED
        return Transition(action=action, current=current, target=target)

    if action is TicketAction.CONVERT and has_price and current is not TicketStatus.PAID:
        return Transition.deny(
            action,
            current,
            "Paid ticket must be marked as PAID before conversion",
            code="TICKET_PAYMENT_PENDING",
        )

    return Transition(action=action, current=current, target=_FIXED_TARGET[action])


def is_terminal(status: TicketStatus) -> bool:
    return TicketStatus(status) in TERMINAL_STATUSES
