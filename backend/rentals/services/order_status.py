"""Order lifecycle rules.

Transitions are table driven; ``validate_transition`` raises
:class:`InvalidStatusTransition` with a readable reason instead of returning
a flag so API handlers can surface it directly.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

from rentals.models.order import OrderStatus

from .errors import InvalidStatusTransition

_ALLOWED_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.DRAFT: {OrderStatus.PENDING_REVIEW, OrderStatus.CANCELLED, OrderStatus.VOID},
    OrderStatus.PENDING_REVIEW: {
        OrderStatus.AWAITING_CUSTOMER_APPROVAL,
        OrderStatus.CONFIRMED,
        OrderStatus.CANCELLED,
        OrderStatus.VOID,
    },
    OrderStatus.AWAITING_CUSTOMER_APPROVAL: {
        OrderStatus.CONFIRMED,
        OrderStatus.PENDING_REVIEW,
        OrderStatus.CANCELLED,
    },
    OrderStatus.CONFIRMED: {
        OrderStatus.IN_PROGRESS,
        OrderStatus.AWAITING_CUSTOMER_APPROVAL,
        OrderStatus.CANCELLED,
    },
    OrderStatus.IN_PROGRESS: {OrderStatus.COMPLETED, OrderStatus.CONFIRMED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.VOID: set(),
}

CANCELLABLE_STATUSES = frozenset(
    {
        OrderStatus.DRAFT,
        OrderStatus.PENDING_REVIEW,
        OrderStatus.AWAITING_CUSTOMER_APPROVAL,
        OrderStatus.CONFIRMED,
    }
)

# Statuses that hold inventory for their event dates
BLOCKING_STATUSES = frozenset(
    {
        OrderStatus.PENDING_REVIEW,
        OrderStatus.AWAITING_CUSTOMER_APPROVAL,
        OrderStatus.CONFIRMED,
        OrderStatus.IN_PROGRESS,
    }
)

PAYMENT_DUE = "payment_due"
DEPOSIT_PAID = "deposit_paid"
PAID_IN_FULL = "paid_in_full"


def coerce_status(value: Any) -> OrderStatus:
    raw = str(getattr(value, "value", value) or "").strip().lower()
    try:
        return OrderStatus(raw)
    except ValueError:
        raise InvalidStatusTransition(f"Unknown status: {raw or value!r}", {"status": "unknown"})


def _confirmable(order: Any) -> Optional[str]:
    has_method = bool(getattr(order, "stripe_payment_method_id", None))
    paid = int(getattr(order, "deposit_paid_cents", 0) or 0) > 0
    nothing_due = int(getattr(order, "deposit_due_cents", 0) or 0) == 0
    if has_method or paid or nothing_due:
        return None
    return "Cannot confirm order without payment on file (unless no deposit is due)"


def validate_transition(current: Any, new: Any, order: Any = None) -> OrderStatus:
    """Return the target status when ``current -> new`` is allowed."""
    current_s = coerce_status(current)
    new_s = coerce_status(new)
    if current_s == new_s:
        return new_s
    allowed = _ALLOWED_TRANSITIONS.get(current_s, set())
    if new_s not in allowed:
        valid = ", ".join(sorted(s.value for s in allowed)) or "none"
        raise InvalidStatusTransition(
            f'Cannot transition from "{current_s.value}" to "{new_s.value}". Valid transitions: {valid}',
            {"status": "invalid_transition"},
        )
    if new_s == OrderStatus.CONFIRMED and order is not None:
        reason = _confirmable(order)
        if reason:
            raise InvalidStatusTransition(reason, {"status": "payment_required"})
    return new_s


def available_transitions(current: Any) -> List[str]:
    return sorted(s.value for s in _ALLOWED_TRANSITIONS.get(coerce_status(current), set()))


def format_status_name(status: Any) -> str:
    raw = str(getattr(status, "value", status) or "")
    return " ".join(word.capitalize() for word in raw.replace("_", " ").split())


def is_cancellable(status: Any) -> bool:
    try:
        return coerce_status(status) in CANCELLABLE_STATUSES
    except InvalidStatusTransition:
        return False


def payment_state(order: Any) -> str:
    deposit_paid = int(getattr(order, "deposit_paid_cents", 0) or 0)
    balance_paid = int(getattr(order, "balance_paid_cents", 0) or 0)
    total_due = int(getattr(order, "deposit_due_cents", 0) or 0) + int(getattr(order, "balance_due_cents", 0) or 0)
    if deposit_paid + balance_paid >= total_due:
        return PAID_IN_FULL
    if deposit_paid > 0:
        return DEPOSIT_PAID
    return PAYMENT_DUE
