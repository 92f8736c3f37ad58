from typing import List, Optional

from pydantic import BaseModel

from .pricing import PriceBreakdownRead


class SummaryLineRead(BaseModel):
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


class FieldChangeRead(BaseModel):
    field: str
    old: Optional[str] = None
    new: Optional[str] = None
    target: str


class OrderSummaryRead(BaseModel):
    items: List[SummaryLineRead]
    fees: List[SummaryLineRead]
    discounts: List[SummaryLineRead]
    custom_fees: List[SummaryLineRead]
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
    event_date: Optional[str] = None
    event_end_date: Optional[str] = None
    rental_days: int
    has_adjustments: bool
    changes: List[FieldChangeRead] = []


class QuoteResponse(BaseModel):
    breakdown: PriceBreakdownRead
    summary: OrderSummaryRead
    distance_rough: bool = False

