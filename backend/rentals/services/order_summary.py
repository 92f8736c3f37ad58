"""Display-ready order summary shared by every surface that shows an order.

``format_order_summary`` is the only place that folds discounts and custom
fees back into an order's stored breakdown. Quote recap, checkout sidebar,
invoice, customer approval and receipt all render the resulting
:class:`OrderSummaryDisplay` as-is.

Adjusted totals use the pricing engine's own tax function
(:func:`rentals.services.pricing.calculate_tax`) on::

    taxable = subtotal + standard fees + custom fees - discounts

where percentage discounts are taken from the pre-discount taxable base.

Output is deterministic: no timestamps are generated and every list has a
stable order, so formatting the same inputs twice yields equal results.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import logging

from .pricing import (
    DEFAULT_TAX_RATE,
    CartItem,
    PriceBreakdown,
    calculate_tax,
    count_rental_days,
    format_currency,
    round_cents,
)

logger = logging.getLogger(__name__)

# Changelog field name -> display line it belongs to
FIELD_TARGETS: Dict[str, str] = {
    "subtotal_cents": "subtotal",
    "travel_fee_cents": "fee:travel",
    "travel_total_miles": "fee:travel",
    "address": "fee:travel",
    "surface": "fee:surface",
    "can_use_stakes": "fee:surface",
    "surface_fee_cents": "fee:surface",
    "pickup_preference": "fee:same_day",
    "location_type": "fee:same_day",
    "same_day_pickup_fee_cents": "fee:same_day",
    "generator_qty": "fee:generator",
    "generator_fee_cents": "fee:generator",
    "tax_cents": "tax",
    "tax_waived": "tax",
    "total_cents": "total",
    "deposit_due_cents": "deposit",
    "custom_deposit_cents": "deposit",
    "tip_cents": "tip",
    "event_date": "event",
    "event_end_date": "event",
    "start_window": "event",
    "end_window": "event",
    "order_items": "items",
}

# Prefixed field names ("item:Castle:dry", "discount:Promo") map to the line directly
_PREFIXED_TARGETS = ("item:", "discount:", "custom_fee:")

_FEE_LABELS = (
    ("travel", "travel_fee_cents", "travel_fee_waived", "Travel Fee"),
    ("surface", "surface_fee_cents", "surface_fee_waived", "Sandbag Fee"),
    ("same_day", "same_day_pickup_fee_cents", "same_day_pickup_fee_waived", "Same Day Pickup Fee"),
    ("generator", "generator_fee_cents", "generator_fee_waived", "Generator"),
)


def _get(source: Any, key: str, default: Any = None) -> Any:
    if source is None:
        return default
    if isinstance(source, Mapping):
        value = source.get(key, default)
    else:
        value = getattr(source, key, default)
    return default if value is None else value


def _cents(source: Any, key: str) -> int:
    return int(_get(source, key, 0) or 0)


def _value(value: Any) -> str:
    return str(getattr(value, "value", value) or "").strip().lower()


def item_key(unit_name: Any, wet_or_dry: Any) -> str:
    """Line key for an item; one unit may be booked both dry and with water."""
    mode = "water" if _value(wet_or_dry) == "water" else "dry"
    return f"item:{unit_name}:{mode}"


def _iso(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(getattr(value, "value", value))


# ─── Display types ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FieldChange:
    field: str
    old: Optional[str]
    new: Optional[str]
    # Display line key the change should highlight
    target: str


@dataclass(frozen=True)
class SummaryLine:
    key: str
    label: str
    amount_cents: int
    amount_display: str
    detail: str = ""
    qty: Optional[int] = None
    unit_price_cents: Optional[int] = None
    waived: bool = False
    changed: bool = False
    is_new: bool = False


@dataclass(frozen=True)
class OrderSummaryDisplay:
    items: Tuple[SummaryLine, ...]
    fees: Tuple[SummaryLine, ...]
    discounts: Tuple[SummaryLine, ...]
    custom_fees: Tuple[SummaryLine, ...]
    subtotal_cents: int
    fees_cents: int
    custom_fees_cents: int
    discount_cents: int
    taxable_cents: int
    tax_cents: int
    tax_waived: bool
    total_cents: int
    tip_cents: int
    total_with_tip_cents: int
    deposit_due_cents: int
    balance_due_cents: int
    amount_paid_cents: int
    amount_outstanding_cents: int
    stored_total_cents: int
    discrepancy_cents: int
    pickup_label: str
    event_date: Optional[str]
    event_end_date: Optional[str]
    rental_days: int
    changes: Tuple[FieldChange, ...] = ()

    @property
    def has_adjustments(self) -> bool:
        return bool(self.discounts or self.custom_fees)

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["has_adjustments"] = self.has_adjustments
        return data


# ─── Changelog diff ───────────────────────────────────────────────────────────


def target_for_field(field_name: str) -> str:
    if field_name.startswith(_PREFIXED_TARGETS):
        return field_name
    return FIELD_TARGETS.get(field_name, f"field:{field_name}")


def _replay_key(entry_id: Any, position: int) -> Tuple[int, int, str, int]:
    if entry_id is None:
        return (2, 0, "", position)
    text = str(entry_id).strip()
    if text.isdigit():
        return (0, int(text), "", position)
    return (1, 0, text, position)


def diff_changelog(changelog: Iterable[Any]) -> Tuple[FieldChange, ...]:
    """Collapse changelog rows into one net change per field.

    Rows are replayed oldest first (numeric ids in order, then other ids,
    then rows without an id in input order). The earliest ``old_value`` and
    the latest ``new_value`` win. Fields whose net change is a no-op are
    dropped. The result is sorted by target then field so repeated calls
    agree.
    """
    indexed = []
    for position, entry in enumerate(changelog or ()):
        field_name = str(_get(entry, "field_name", "") or "").strip()
        if not field_name:
            continue
        indexed.append((_replay_key(_get(entry, "id"), position), position, field_name, entry))
    indexed.sort(key=lambda row: row[0])

    first_old: Dict[str, Optional[str]] = {}
    last_new: Dict[str, Optional[str]] = {}
    for _, _, field_name, entry in indexed:
        if field_name not in first_old:
            first_old[field_name] = _text(_get(entry, "old_value"))
        last_new[field_name] = _text(_get(entry, "new_value"))

    changes = [
        FieldChange(field=name, old=first_old[name], new=last_new[name], target=target_for_field(name))
        for name in first_old
        if first_old[name] != last_new[name]
    ]
    changes.sort(key=lambda c: (c.target, c.field))
    return tuple(changes)


# ─── Line builders ────────────────────────────────────────────────────────────


def _item_lines(items: Sequence[Any], changes: Sequence[FieldChange]) -> List[SummaryLine]:
    changed_targets = {c.target: c for c in changes}
    lines: List[SummaryLine] = []
    for index, item in enumerate(items):
        name = str(_get(item, "unit_name", "") or _get(item, "name", "") or f"Unit {index + 1}")
        qty = int(_get(item, "qty", 1))
        price = item.price_cents if isinstance(item, CartItem) else int(_get(item, "unit_price_cents", 0))
        raw_mode = _get(item, "wet_or_dry", "dry")
        mode = "Water" if _value(raw_mode) == "water" else "Dry"
        key = item_key(name, raw_mode)
        change = changed_targets.get(key)
        lines.append(
            SummaryLine(
                key=key,
                label=name,
                detail=f"{mode} x {qty}",
                amount_cents=price * qty,
                amount_display=format_currency(price * qty),
                qty=qty,
                unit_price_cents=price,
                changed=change is not None or "items" in changed_targets,
                is_new=change is not None and not change.old,
            )
        )
    return lines


def _travel_detail(order: Any) -> str:
    miles = _get(order, "travel_total_miles")
    if miles is None or float(miles) <= 0:
        return ""
    if _get(order, "travel_is_flat_fee", False):
        return f"{float(miles):.1f} mi, flat zone rate"
    chargeable = _get(order, "travel_chargeable_miles")
    per_mile = _get(order, "travel_per_mile_cents")
    if chargeable and per_mile and float(chargeable) > 0:
        return f"{float(chargeable):.1f} mi x {format_currency(int(per_mile))}/mi"
    return f"{float(miles):.1f} mi"


def _fee_lines(order: Any, changes: Sequence[FieldChange]) -> List[SummaryLine]:
    changed_targets = {c.target for c in changes}
    lines: List[SummaryLine] = []
    for name, cents_field, waived_field, label in _FEE_LABELS:
        amount = _cents(order, cents_field)
        waived = bool(_get(order, waived_field, False))
        if amount <= 0 and not waived:
            continue
        detail = ""
        if name == "travel":
            detail = _travel_detail(order)
        elif name == "generator":
            qty = int(_get(order, "generator_qty", 0))
            detail = f"x {qty}" if qty else ""
        lines.append(
            SummaryLine(
                key=f"fee:{name}",
                label=label,
                detail="Waived" if waived else detail,
                amount_cents=0 if waived else amount,
                amount_display=format_currency(0 if waived else amount),
                waived=waived,
                changed=f"fee:{name}" in changed_targets,
            )
        )
    return lines


def _custom_fee_lines(custom_fees: Sequence[Any], changes: Sequence[FieldChange]) -> List[SummaryLine]:
    changed_targets = {c.target: c for c in changes}
    lines = []
    for fee in custom_fees:
        name = str(_get(fee, "name", "Fee"))
        amount = _cents(fee, "amount_cents")
        change = changed_targets.get(f"custom_fee:{name}")
        lines.append(
            SummaryLine(
                key=f"custom_fee:{name}",
                label=name,
                amount_cents=amount,
                amount_display=format_currency(amount),
                changed=change is not None,
                is_new=change is not None and not change.old,
            )
        )
    return lines


def resolve_discount_cents(discount: Any, base_cents: int) -> int:
    """Amount one discount row takes off ``base_cents`` (the pre-discount base)."""
    amount = _get(discount, "amount_cents")
    if amount is not None and int(amount) > 0:
        return int(amount)
    pct = _get(discount, "percentage")
    if pct is None:
        return 0
    pct = Decimal(str(pct))
    if pct <= 0:
        return 0
    return round_cents(Decimal(max(0, base_cents)) * pct / 100)


def _discount_lines(discounts: Sequence[Any], base_cents: int, changes: Sequence[FieldChange]) -> List[SummaryLine]:
    changed_targets = {c.target: c for c in changes}
    lines = []
    for discount in discounts:
        name = str(_get(discount, "name", "Discount"))
        amount = resolve_discount_cents(discount, base_cents)
        pct = _get(discount, "percentage")
        detail = ""
        if not _get(discount, "amount_cents") and pct is not None:
            detail = f"{Decimal(str(pct)).normalize():f}%"
        change = changed_targets.get(f"discount:{name}")
        lines.append(
            SummaryLine(
                key=f"discount:{name}",
                label=name,
                detail=detail,
                amount_cents=amount,
                amount_display=format_currency(-amount),
                changed=change is not None,
                is_new=change is not None and not change.old,
            )
        )
    return lines


def pickup_label(pickup_preference: Any, location_type: Any = None) -> str:
    if _value(pickup_preference) == "same_day" or _value(location_type) == "commercial":
        return "Same day pickup"
    return "Next morning pickup"


# ─── Public API ───────────────────────────────────────────────────────────────


def format_order_summary(
    order: Any,
    items: Optional[Sequence[Any]] = None,
    discounts: Optional[Sequence[Any]] = None,
    custom_fees: Optional[Sequence[Any]] = None,
    changelog: Optional[Iterable[Any]] = None,
    tax_rate: Any = None,
    taxes_by_default: bool = True,
    recompute_tax: bool = False,
) -> OrderSummaryDisplay:
    """Build the display summary for a stored order.

    ``items``/``discounts``/``custom_fees``/``changelog`` default to the
    order's own relationships when omitted. With no discounts or custom
    fees the stored tax is shown unchanged unless ``recompute_tax`` is set;
    otherwise tax is recomputed on the adjusted taxable amount at
    ``tax_rate``.
    """
    items = list(_get(order, "items", ()) if items is None else items)
    discounts = list(_get(order, "discounts", ()) if discounts is None else discounts)
    custom_fees = list(_get(order, "custom_fees", ()) if custom_fees is None else custom_fees)
    changelog = list(_get(order, "changelog", ()) if changelog is None else changelog)
    rate = DEFAULT_TAX_RATE if tax_rate is None else tax_rate

    changes = diff_changelog(changelog)
    item_lines = _item_lines(items, changes)
    fee_lines = _fee_lines(order, changes)
    custom_lines = _custom_fee_lines(custom_fees, changes)

    subtotal = _cents(order, "subtotal_cents")
    fees = sum(line.amount_cents for line in fee_lines)
    custom_total = sum(line.amount_cents for line in custom_lines)
    base = subtotal + fees + custom_total

    discount_lines = _discount_lines(discounts, base, changes)
    discount_total = min(base, sum(line.amount_cents for line in discount_lines))
    taxable = max(0, base - discount_total)

    tax_waived = bool(_get(order, "tax_waived", False))
    if recompute_tax or discount_lines or custom_lines:
        apply_taxes = _get(order, "apply_taxes")
        taxes_apply = taxes_by_default if apply_taxes is None else bool(apply_taxes)
        tax = calculate_tax(taxable, rate) if taxes_apply and not tax_waived else 0
    else:
        tax = 0 if tax_waived else _cents(order, "tax_cents")

    total = taxable + tax
    tip = _cents(order, "tip_cents")

    custom_deposit = _get(order, "custom_deposit_cents")
    deposit = int(custom_deposit) if custom_deposit is not None else _cents(order, "deposit_due_cents")
    deposit = max(0, min(deposit, total))

    paid = _cents(order, "deposit_paid_cents") + _cents(order, "balance_paid_cents")
    stored_total = _cents(order, "total_cents")
    discrepancy = total - stored_total
    if discrepancy:
        logger.warning(
            "Order total mismatch: stored=%s recomputed=%s",
            stored_total,
            total,
            extra={"order_id": _get(order, "id"), "discrepancy_cents": discrepancy},
        )

    event_date = _get(order, "event_date")
    event_end_date = _get(order, "event_end_date")
    return OrderSummaryDisplay(
        items=tuple(item_lines),
        fees=tuple(fee_lines),
        discounts=tuple(discount_lines),
        custom_fees=tuple(custom_lines),
        subtotal_cents=subtotal,
        fees_cents=fees,
        custom_fees_cents=custom_total,
        discount_cents=discount_total,
        taxable_cents=taxable,
        tax_cents=tax,
        tax_waived=tax_waived,
        total_cents=total,
        tip_cents=tip,
        total_with_tip_cents=total + tip,
        deposit_due_cents=deposit,
        balance_due_cents=total - deposit,
        amount_paid_cents=paid,
        amount_outstanding_cents=max(0, total - paid),
        stored_total_cents=stored_total,
        discrepancy_cents=discrepancy,
        pickup_label=pickup_label(_get(order, "pickup_preference"), _get(order, "location_type")),
        event_date=_iso(event_date),
        event_end_date=_iso(event_end_date),
        rental_days=count_rental_days(event_date, event_end_date) if event_date else 1,
        changes=changes,
    )


def build_quote_summary(
    breakdown: PriceBreakdown,
    cart_items: Sequence[Any],
    pickup_preference: Any = None,
    tip_cents: int = 0,
    location_type: Any = None,
) -> OrderSummaryDisplay:
    """Summary for a cart that has been priced but not saved as an order."""
    order = breakdown.as_dict()
    order.update(
        {
            "tip_cents": int(tip_cents or 0),
            "pickup_preference": pickup_preference,
            "location_type": location_type,
        }
    )
    return format_order_summary(order, items=cart_items, discounts=(), custom_fees=(), changelog=())
