from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence
import logging

from sqlalchemy.orm import Session, selectinload

from .. import models, schemas
from ..models.order import OrderStatus
from ..services import distance_service
from ..services.errors import OrderPersistenceError, RentalsError
from ..services.geocode import geocode_address
from ..services.order_status import validate_transition
from ..services.order_summary import OrderSummaryDisplay, format_order_summary, item_key
from ..services.pricing import (
    CartItem,
    PriceBreakdown,
    PriceParams,
    PricingRules,
    calculate_deposit,
    calculate_price,
    count_rental_days,
)

logger = logging.getLogger(__name__)

# Waiver name -> Order flag column
WAIVER_FLAGS = {
    "travel": "travel_fee_waived",
    "surface": "surface_fee_waived",
    "same_day": "same_day_pickup_fee_waived",
    "generator": "generator_fee_waived",
    "tax": "tax_waived",
}

# Fields recorded in the changelog when an admin edits an order
TRACKED_FIELDS = (
    "event_date",
    "event_end_date",
    "location_type",
    "surface",
    "can_use_stakes",
    "pickup_preference",
    "generator_qty",
    "travel_total_miles",
    "subtotal_cents",
    "travel_fee_cents",
    "surface_fee_cents",
    "generator_fee_cents",
    "same_day_pickup_fee_cents",
    "tax_cents",
    "total_cents",
    "deposit_due_cents",
    "custom_deposit_cents",
)

_BREAKDOWN_FIELDS = (
    "subtotal_cents",
    "travel_fee_cents",
    "surface_fee_cents",
    "generator_fee_cents",
    "same_day_pickup_fee_cents",
    "tax_cents",
    "total_cents",
    "deposit_due_cents",
    "balance_due_cents",
    "travel_per_mile_cents",
    "travel_is_flat_fee",
)


@dataclass
class OrderBundle:
    order: models.Order
    items: List[models.OrderItem]
    discounts: List[models.OrderDiscount]
    custom_fees: List[models.OrderCustomFee]
    changelog: List[models.OrderChangelog]


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = getattr(value, "value", value)
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def save_changes(db: Session, what: str) -> None:
    try:
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.error("Failed to save %s: %s", what, exc, exc_info=True)
        raise OrderPersistenceError(
            "The order could not be saved. Please try again.",
            {"order": "save_failed"},
        )


def build_cart_items(db: Session, items_in: Sequence[schemas.CartItemIn]) -> List[CartItem]:
    """Price cart lines from the catalog, never from client-supplied prices."""
    ids = {int(i.unit_id) for i in items_in}
    units = {u.id: u for u in db.query(models.Unit).filter(models.Unit.id.in_(ids)).all()}
    errors: Dict[str, str] = {}
    items: List[CartItem] = []
    for index, item in enumerate(items_in):
        unit = units.get(int(item.unit_id))
        if unit is None or not unit.active:
            errors[f"items.{index}.unit_id"] = "not_found"
            continue
        mode = getattr(item.wet_or_dry, "value", item.wet_or_dry)
        if mode == "water" and unit.price_water_cents is None:
            errors[f"items.{index}.wet_or_dry"] = "water_mode_unavailable"
            continue
        items.append(
            CartItem(
                unit_id=unit.id,
                unit_name=unit.name,
                wet_or_dry=mode,
                unit_price_cents=unit.price_water_cents if mode == "water" else unit.price_dry_cents,
                qty=item.qty,
                price_dry_cents=unit.price_dry_cents,
                price_water_cents=unit.price_water_cents,
            )
        )
    if errors:
        raise RentalsError("Some cart items are unavailable", errors)
    return items


def waived_fees_of(order: models.Order) -> frozenset:
    return frozenset(name for name, flag in WAIVER_FLAGS.items() if getattr(order, flag, False))


def _set_waivers(order: models.Order, waived: Iterable[str]) -> None:
    waived = set(waived or ())
    for name, flag in WAIVER_FLAGS.items():
        setattr(order, flag, name in waived)


def price_params_for(order: models.Order, items: Sequence[Any], distance_miles: float) -> PriceParams:
    address = order.address
    return PriceParams(
        items=list(items),
        location_type=order.location_type,
        surface=order.surface,
        can_use_stakes=bool(order.can_use_stakes),
        pickup_preference=order.pickup_preference,
        num_days=count_rental_days(order.event_date, order.event_end_date),
        distance_miles=distance_miles,
        city=address.city if address else "",
        zip_code=address.zip if address else "",
        generator_qty=int(order.generator_qty or 0),
        apply_taxes=order.apply_taxes,
        waived_fees=waived_fees_of(order),
        custom_deposit_cents=order.custom_deposit_cents,
    )


def apply_breakdown(order: models.Order, breakdown: PriceBreakdown) -> None:
    for name in _BREAKDOWN_FIELDS:
        setattr(order, name, getattr(breakdown, name))
    order.travel_total_miles = Decimal(str(round(breakdown.travel_total_miles, 2)))
    order.travel_base_radius_miles = Decimal(str(round(breakdown.travel_base_radius_miles, 2)))
    order.travel_chargeable_miles = Decimal(str(round(breakdown.travel_chargeable_miles, 2)))


def _locate(address: models.Address) -> Optional[float]:
    """Miles from home base to ``address``, geocoding it when needed."""
    if address.lat is None or address.lng is None:
        found = geocode_address(address.one_line())
        if found is None:
            return None
        address.lat = Decimal(str(found.lat))
        address.lng = Decimal(str(found.lng))
    result = distance_service.resolve_from_home_base(float(address.lat), float(address.lng))
    if result.rough:
        logger.warning("Using straight-line distance for %s", address.one_line())
    return result.miles


def _get_or_create_customer(db: Session, customer_in: schemas.CustomerIn) -> models.Customer:
    email = customer_in.email.strip().lower()
    customer = db.query(models.Customer).filter(models.Customer.email == email).first()
    if customer is None:
        customer = models.Customer(email=email)
        db.add(customer)
    customer.first_name = customer_in.first_name.strip()
    customer.last_name = customer_in.last_name.strip()
    if customer_in.phone:
        customer.phone = customer_in.phone.strip()
    return customer


def create_order(db: Session, order_in: schemas.OrderCreate, rules: PricingRules) -> models.Order:
    """Price and persist a new draft order.

    Raises ``OrderPersistenceError`` when the commit fails; callers must not
    start a checkout for an order that was not saved.
    """
    items = build_cart_items(db, order_in.items)
    address = models.Address(**order_in.address.model_dump())

    miles = _locate(address)
    if miles is None:
        db.rollback()
        raise RentalsError("Event address could not be located", {"address": "not_found"})
    # Stored miles are rounded; price with the same value later repricing will see
    miles = round(float(miles), 2)

    customer = _get_or_create_customer(db, order_in.customer)
    order = models.Order(
        customer=customer,
        address=address,
        status=OrderStatus.DRAFT,
        event_date=order_in.event_date,
        event_end_date=order_in.event_end_date,
        start_window=order_in.start_window,
        end_window=order_in.end_window,
        location_type=order_in.location_type,
        surface=order_in.surface,
        can_use_stakes=order_in.can_use_stakes,
        pickup_preference=order_in.pickup_preference,
        generator_qty=order_in.generator_qty,
        tip_cents=order_in.tip_cents,
    )
    breakdown = calculate_price(price_params_for(order, items, miles), rules)
    apply_breakdown(order, breakdown)
    order.items = [
        models.OrderItem(
            unit_id=item.unit_id,
            unit_name=item.unit_name,
            wet_or_dry=item.mode,
            unit_price_cents=item.price_cents,
            qty=item.qty,
        )
        for item in items
    ]
    db.add(order)
    save_changes(db, "new order")
    db.refresh(order)
    logger.info("Order %s created (total=%s cents)", order.id, order.total_cents)
    return order


def get_order(db: Session, order_id: int) -> Optional[models.Order]:
    return (
        db.query(models.Order)
        .options(
            selectinload(models.Order.items),
            selectinload(models.Order.discounts),
            selectinload(models.Order.custom_fees),
            selectinload(models.Order.address),
        )
        .filter(models.Order.id == order_id)
        .first()
    )


def load_order_bundle(db: Session, order_id: int) -> Optional[OrderBundle]:
    order = get_order(db, order_id)
    if order is None:
        return None
    return OrderBundle(
        order=order,
        items=list(order.items),
        discounts=list(order.discounts),
        custom_fees=list(order.custom_fees),
        changelog=list(order.changelog),
    )


def log_change(
    db: Session,
    order: models.Order,
    field_name: str,
    old_value: Any,
    new_value: Any,
    change_type: str = "update",
    changed_by: Optional[str] = None,
) -> Optional[models.OrderChangelog]:
    old_text, new_text = _text(old_value), _text(new_value)
    if old_text == new_text:
        return None
    entry = models.OrderChangelog(
        field_name=field_name,
        old_value=old_text,
        new_value=new_text,
        change_type=change_type,
        changed_by=changed_by,
    )
    order.changelog.append(entry)
    return entry


def summarize(order: models.Order, rules: PricingRules, recompute_tax: bool = False) -> OrderSummaryDisplay:
    return format_order_summary(
        order,
        tax_rate=rules.tax_rate,
        taxes_by_default=rules.apply_taxes_by_default,
        recompute_tax=recompute_tax,
    )


def _fold_adjustments(
    db: Session,
    order: models.Order,
    rules: PricingRules,
    changed_by: Optional[str],
    log: bool = True,
) -> None:
    """Store totals that include discounts and custom fees."""
    summary = summarize(order, rules, recompute_tax=True)
    units = sum(int(i.qty or 0) for i in order.items)
    deposit = calculate_deposit(summary.total_cents, units, rules, order.custom_deposit_cents)
    for name, value in (
        ("tax_cents", summary.tax_cents),
        ("total_cents", summary.total_cents),
        ("deposit_due_cents", deposit),
        ("balance_due_cents", summary.total_cents - deposit),
    ):
        current = getattr(order, name)
        if current != value:
            if log:
                log_change(db, order, name, current, value, changed_by=changed_by)
            setattr(order, name, value)


def add_discount(
    db: Session,
    order: models.Order,
    discount_in: schemas.DiscountCreate,
    rules: PricingRules,
    changed_by: Optional[str] = "admin",
) -> models.OrderDiscount:
    discount = models.OrderDiscount(
        name=discount_in.name.strip(),
        amount_cents=discount_in.amount_cents,
        percentage=discount_in.percentage,
    )
    order.discounts.append(discount)
    shown = f"{discount_in.percentage}%" if discount_in.percentage is not None else discount_in.amount_cents
    log_change(db, order, f"discount:{discount.name}", None, shown, change_type="add", changed_by=changed_by)
    _fold_adjustments(db, order, rules, changed_by)
    save_changes(db, "discount")
    db.refresh(discount)
    return discount


def remove_discount(
    db: Session,
    order: models.Order,
    discount_id: int,
    rules: PricingRules,
    changed_by: Optional[str] = "admin",
) -> bool:
    discount = next((d for d in order.discounts if d.id == discount_id), None)
    if discount is None:
        return False
    shown = f"{discount.percentage}%" if discount.percentage is not None else discount.amount_cents
    order.discounts.remove(discount)
    log_change(db, order, f"discount:{discount.name}", shown, None, change_type="remove", changed_by=changed_by)
    _fold_adjustments(db, order, rules, changed_by)
    save_changes(db, "discount removal")
    return True


def add_custom_fee(
    db: Session,
    order: models.Order,
    fee_in: schemas.CustomFeeCreate,
    rules: PricingRules,
    changed_by: Optional[str] = "admin",
) -> models.OrderCustomFee:
    fee = models.OrderCustomFee(name=fee_in.name.strip(), amount_cents=fee_in.amount_cents)
    order.custom_fees.append(fee)
    log_change(db, order, f"custom_fee:{fee.name}", None, fee.amount_cents, change_type="add", changed_by=changed_by)
    _fold_adjustments(db, order, rules, changed_by)
    save_changes(db, "custom fee")
    db.refresh(fee)
    return fee


def remove_custom_fee(
    db: Session,
    order: models.Order,
    fee_id: int,
    rules: PricingRules,
    changed_by: Optional[str] = "admin",
) -> bool:
    fee = next((f for f in order.custom_fees if f.id == fee_id), None)
    if fee is None:
        return False
    order.custom_fees.remove(fee)
    log_change(db, order, f"custom_fee:{fee.name}", fee.amount_cents, None, change_type="remove", changed_by=changed_by)
    _fold_adjustments(db, order, rules, changed_by)
    save_changes(db, "custom fee removal")
    return True


def _replace_items(db: Session, order: models.Order, items: List[CartItem], changed_by: Optional[str]) -> None:
    old: Dict[str, int] = {}
    for i in order.items:
        key = item_key(i.unit_name, i.wet_or_dry)
        old[key] = old.get(key, 0) + i.qty
    new: Dict[str, int] = {}
    for item in items:
        key = item_key(item.unit_name, item.mode)
        new[key] = new.get(key, 0) + item.qty
    for key in sorted(set(old) | set(new)):
        change_type = "add" if key not in old else "remove" if key not in new else "update"
        log_change(db, order, key, old.get(key), new.get(key), change_type=change_type, changed_by=changed_by)
    order.items = [
        models.OrderItem(
            unit_id=item.unit_id,
            unit_name=item.unit_name,
            wet_or_dry=item.mode,
            unit_price_cents=item.price_cents,
            qty=item.qty,
        )
        for item in items
    ]


def reprice_order(
    db: Session,
    order: models.Order,
    rules: PricingRules,
    changes: schemas.OrderReprice,
) -> models.Order:
    """Apply admin edits, recompute the breakdown and log every changed field.

    Any money change sends a booked order back to the customer for approval
    unless ``changes.confirm`` is set.
    """
    # Resolve before editing: a first-time lookup commits the cached miles
    if changes.distance_miles is not None:
        miles = round(float(changes.distance_miles), 2)
    else:
        miles = distance_service.resolve_order_distance(db, order)
        if miles is None:
            raise RentalsError("Event address could not be located", {"address": "not_found"})

    before = {name: getattr(order, name) for name in TRACKED_FIELDS}
    who = changes.changed_by

    for name in (
        "event_date",
        "event_end_date",
        "location_type",
        "surface",
        "can_use_stakes",
        "pickup_preference",
        "generator_qty",
        "apply_taxes",
    ):
        value = getattr(changes, name)
        if value is not None:
            setattr(order, name, value)
    if "custom_deposit_cents" in changes.model_fields_set:
        order.custom_deposit_cents = changes.custom_deposit_cents
    if changes.waived_fees is not None:
        old_waived = sorted(waived_fees_of(order))
        _set_waivers(order, changes.waived_fees)
        log_change(db, order, "waived_fees", ",".join(old_waived), ",".join(sorted(changes.waived_fees)), changed_by=who)
    if changes.admin_message is not None:
        order.admin_message = changes.admin_message

    if changes.items is not None:
        items = build_cart_items(db, changes.items)
        _replace_items(db, order, items, who)
    else:
        items = [CartItem.from_source(i) for i in order.items]

    breakdown = calculate_price(price_params_for(order, items, miles), rules)
    apply_breakdown(order, breakdown)
    _fold_adjustments(db, order, rules, who, log=False)

    changed = False
    for name in TRACKED_FIELDS:
        if log_change(db, order, name, before[name], getattr(order, name), changed_by=who) is not None:
            changed = True

    if changes.confirm:
        order.status = validate_transition(order.status, OrderStatus.CONFIRMED, order)
    elif changed and order.status in (OrderStatus.PENDING_REVIEW, OrderStatus.CONFIRMED):
        order.status = validate_transition(order.status, OrderStatus.AWAITING_CUSTOMER_APPROVAL, order)

    db.add(order)
    save_changes(db, "repriced order")
    db.refresh(order)
    return order


def change_status(
    db: Session,
    order: models.Order,
    new_status: Any,
    changed_by: Optional[str] = "admin",
) -> models.Order:
    target = validate_transition(order.status, new_status, order)
    if target != order.status:
        log_change(db, order, "status", order.status, target, changed_by=changed_by)
        order.status = target
        db.add(order)
        save_changes(db, "status change")
    return order


def approve_order(db: Session, order: models.Order) -> models.Order:
    """Customer accepts the changes an admin made to their order."""
    if order.status != OrderStatus.AWAITING_CUSTOMER_APPROVAL:
        raise RentalsError("Order is not awaiting approval", {"status": order.status.value})
    return change_status(db, order, OrderStatus.CONFIRMED, changed_by="customer")


def reject_order(db: Session, order: models.Order, reason: Optional[str] = None) -> models.Order:
    if order.status != OrderStatus.AWAITING_CUSTOMER_APPROVAL:
        raise RentalsError("Order is not awaiting approval", {"status": order.status.value})
    if reason:
        order.admin_message = reason
    return change_status(db, order, OrderStatus.CANCELLED, changed_by="customer")
