from datetime import date
from typing import Optional
import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..crud import crud_order
from ..services.availability import check_cart_availability, check_unit_availability
from ..services.pricing import PricingRules
from ..utils import error_response
from .dependencies import get_db, get_rules

router = APIRouter(tags=["orders"])
logger = logging.getLogger(__name__)


def _get_order_or_404(db: Session, order_id: int) -> models.Order:
    order = crud_order.get_order(db, order_id)
    if order is None:
        raise error_response(
            "Order not found",
            {"order_id": "not_found"},
            status.HTTP_404_NOT_FOUND,
        )
    return order


@router.post("/orders", response_model=schemas.OrderRead, status_code=status.HTTP_201_CREATED)
def create_order(
    order_in: schemas.OrderCreate,
    db: Session = Depends(get_db),
    rules: PricingRules = Depends(get_rules),
):
    availability = check_cart_availability(db, order_in.items, order_in.event_date, order_in.event_end_date)
    unavailable = {f"items.{a.unit_id}": "unavailable" for a in availability if not a.is_available}
    if unavailable:
        raise error_response(
            "Some units are not available for the selected dates",
            unavailable,
            status.HTTP_409_CONFLICT,
        )
    return crud_order.create_order(db, order_in, rules)


@router.get("/orders/{order_id}", response_model=schemas.OrderRead)
def read_order(order_id: int, db: Session = Depends(get_db)):
    return _get_order_or_404(db, order_id)


@router.get("/orders/{order_id}/summary", response_model=schemas.OrderSummaryRead)
def read_order_summary(
    order_id: int,
    db: Session = Depends(get_db),
    rules: PricingRules = Depends(get_rules),
):
    """Display totals shared by checkout, invoice, approval and receipt views."""
    order = _get_order_or_404(db, order_id)
    return crud_order.summarize(order, rules).as_dict()


@router.post(
    "/orders/{order_id}/discounts",
    response_model=schemas.DiscountRead,
    status_code=status.HTTP_201_CREATED,
)
def add_discount(
    order_id: int,
    discount_in: schemas.DiscountCreate,
    db: Session = Depends(get_db),
    rules: PricingRules = Depends(get_rules),
):
    order = _get_order_or_404(db, order_id)
    return crud_order.add_discount(db, order, discount_in, rules)


@router.delete("/orders/{order_id}/discounts/{discount_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_discount(
    order_id: int,
    discount_id: int,
    db: Session = Depends(get_db),
    rules: PricingRules = Depends(get_rules),
):
    order = _get_order_or_404(db, order_id)
    if not crud_order.remove_discount(db, order, discount_id, rules):
        raise error_response(
            "Discount not found",
            {"discount_id": "not_found"},
            status.HTTP_404_NOT_FOUND,
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/orders/{order_id}/custom-fees",
    response_model=schemas.CustomFeeRead,
    status_code=status.HTTP_201_CREATED,
)
def add_custom_fee(
    order_id: int,
    fee_in: schemas.CustomFeeCreate,
    db: Session = Depends(get_db),
    rules: PricingRules = Depends(get_rules),
):
    order = _get_order_or_404(db, order_id)
    return crud_order.add_custom_fee(db, order, fee_in, rules)


@router.delete("/orders/{order_id}/custom-fees/{fee_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_custom_fee(
    order_id: int,
    fee_id: int,
    db: Session = Depends(get_db),
    rules: PricingRules = Depends(get_rules),
):
    order = _get_order_or_404(db, order_id)
    if not crud_order.remove_custom_fee(db, order, fee_id, rules):
        raise error_response(
            "Custom fee not found",
            {"fee_id": "not_found"},
            status.HTTP_404_NOT_FOUND,
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/orders/{order_id}/reprice", response_model=schemas.OrderRead)
def reprice_order(
    order_id: int,
    changes: schemas.OrderReprice,
    db: Session = Depends(get_db),
    rules: PricingRules = Depends(get_rules),
):
    order = _get_order_or_404(db, order_id)
    if changes.items is not None or changes.event_date is not None or changes.event_end_date is not None:
        start = changes.event_date or order.event_date
        end = changes.event_end_date or order.event_end_date
        items = changes.items if changes.items is not None else order.items
        conflicts = {
            f"items.{a.unit_id}": "unavailable"
            for a in check_cart_availability(db, items, start, end, exclude_order_id=order.id)
            if not a.is_available
        }
        if conflicts:
            raise error_response(
                "Some units are not available for the selected dates",
                conflicts,
                status.HTTP_409_CONFLICT,
            )
    return crud_order.reprice_order(db, order, rules, changes)


@router.post("/orders/{order_id}/status", response_model=schemas.OrderRead)
def change_order_status(order_id: int, body: schemas.StatusChange, db: Session = Depends(get_db)):
    order = _get_order_or_404(db, order_id)
    return crud_order.change_status(db, order, body.status, changed_by=body.changed_by)


@router.post("/orders/{order_id}/approve", response_model=schemas.OrderRead)
def decide_order_changes(order_id: int, decision: schemas.ApprovalDecision, db: Session = Depends(get_db)):
    """Customer portal: accept or reject the admin's changes to an order."""
    order = _get_order_or_404(db, order_id)
    if decision.approve:
        return crud_order.approve_order(db, order)
    return crud_order.reject_order(db, order, decision.reason)


@router.get("/units/{unit_id}/availability", response_model=schemas.AvailabilityRead)
def read_unit_availability(
    unit_id: int,
    start: date = Query(...),
    end: Optional[date] = Query(None),
    qty: int = Query(1, ge=1),
    exclude_order_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
):
    return check_unit_availability(db, unit_id, start, end, exclude_order_id=exclude_order_id, qty=qty)
