"""Unit availability for an event date range.

A unit is unavailable when an admin blackout covers any day of the range,
or when overlapping orders in a blocking status already hold every copy of
the unit (``Unit.quantity_available``). Date ranges are inclusive.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, List, Optional
import logging

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from rentals.models import BlackoutDate, Order, OrderItem, Unit

from .order_status import BLOCKING_STATUSES

logger = logging.getLogger(__name__)


@dataclass
class Conflict:
    order_id: Optional[int]
    start_date: date
    end_date: date
    status: str
    reason: str = "booked"


@dataclass
class UnitAvailability:
    unit_id: int
    is_available: bool
    requested_qty: int = 1
    remaining_qty: int = 0
    conflicts: List[Conflict] = field(default_factory=list)


def _overlaps(start: date, end: date):
    order_end = func.coalesce(Order.event_end_date, Order.event_date)
    return (Order.event_date <= end) & (order_end >= start)


def check_unit_availability(
    db: Session,
    unit_id: int,
    start: date,
    end: Optional[date] = None,
    exclude_order_id: Optional[int] = None,
    qty: int = 1,
) -> UnitAvailability:
    end = end or start
    if end < start:
        start, end = end, start

    unit = db.query(Unit).filter(Unit.id == unit_id).first()
    if unit is None or not unit.active:
        return UnitAvailability(unit_id=unit_id, is_available=False, requested_qty=qty)

    conflicts: List[Conflict] = []
    blackouts = (
        db.query(BlackoutDate)
        .filter(
            BlackoutDate.start_date <= end,
            BlackoutDate.end_date >= start,
            or_(BlackoutDate.unit_id.is_(None), BlackoutDate.unit_id == unit_id),
        )
        .order_by(BlackoutDate.start_date, BlackoutDate.id)
        .all()
    )
    for b in blackouts:
        conflicts.append(Conflict(None, b.start_date, b.end_date, "blackout", b.reason or "blackout"))

    query = (
        db.query(Order, OrderItem.qty)
        .join(OrderItem, OrderItem.order_id == Order.id)
        .filter(
            OrderItem.unit_id == unit_id,
            Order.status.in_(list(BLOCKING_STATUSES)),
            _overlaps(start, end),
        )
    )
    if exclude_order_id is not None:
        query = query.filter(Order.id != exclude_order_id)

    booked = 0
    for order, item_qty in query.order_by(Order.event_date, Order.id).all():
        booked += int(item_qty or 0)
        conflicts.append(
            Conflict(
                order_id=order.id,
                start_date=order.event_date,
                end_date=order.event_end_date or order.event_date,
                status=order.status.value,
            )
        )

    remaining = max(0, int(unit.quantity_available or 0) - booked)
    is_available = not blackouts and remaining >= qty
    if not is_available:
        logger.info(
            "Unit %s unavailable for %s..%s (remaining=%s, blackouts=%s)",
            unit_id,
            start,
            end,
            remaining,
            len(blackouts),
        )
    return UnitAvailability(
        unit_id=unit_id,
        is_available=is_available,
        requested_qty=qty,
        remaining_qty=remaining,
        conflicts=conflicts,
    )


def check_cart_availability(
    db: Session,
    items: Iterable[Any],
    start: date,
    end: Optional[date] = None,
    exclude_order_id: Optional[int] = None,
) -> List[UnitAvailability]:
    """Availability per distinct unit in a cart, summing quantities per unit."""
    wanted: dict = {}
    for item in items:
        unit_id = getattr(item, "unit_id", None)
        if unit_id is None and isinstance(item, dict):
            unit_id = item.get("unit_id")
        qty = getattr(item, "qty", None)
        if qty is None and isinstance(item, dict):
            qty = item.get("qty", 1)
        wanted[int(unit_id)] = wanted.get(int(unit_id), 0) + int(qty or 1)
    return [
        check_unit_availability(db, unit_id, start, end, exclude_order_id=exclude_order_id, qty=qty)
        for unit_id, qty in sorted(wanted.items())
    ]
