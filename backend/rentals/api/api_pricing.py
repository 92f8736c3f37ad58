import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import schemas
from ..crud import crud_order, crud_pricing
from ..services.distance_service import resolve_from_home_base
from ..services.order_summary import build_quote_summary
from ..services.pricing import PriceParams, PricingRules, calculate_price, count_rental_days
from ..utils import error_response
from .dependencies import get_db, get_rules

router = APIRouter(tags=["pricing"])
logger = logging.getLogger(__name__)


@router.get("/pricing-rules", response_model=schemas.PricingRulesRead)
def read_pricing_rules(db: Session = Depends(get_db)):
    record = crud_pricing.get_pricing_rules_record(db)
    if record is None:
        raise error_response(
            "Pricing rules are not configured",
            {"pricing_rules": "missing"},
            status.HTTP_404_NOT_FOUND,
        )
    return record


@router.put("/pricing-rules", response_model=schemas.PricingRulesRead)
def update_pricing_rules(rules_in: schemas.PricingRulesUpdate, db: Session = Depends(get_db)):
    return crud_pricing.update_pricing_rules(db, rules_in)


@router.post("/quote", response_model=schemas.QuoteResponse)
def quote(
    body: schemas.QuoteRequest,
    db: Session = Depends(get_db),
    rules: PricingRules = Depends(get_rules),
):
    """Price a cart without saving anything."""
    rough = False
    if body.distance_miles is not None:
        miles = body.distance_miles
    elif body.lat is not None and body.lng is not None:
        result = resolve_from_home_base(body.lat, body.lng)
        miles, rough = result.miles, result.rough
    else:
        raise error_response(
            "Provide distance_miles or lat/lng for the event location",
            {"distance_miles": "required"},
        )

    items = crud_order.build_cart_items(db, body.items)
    params = PriceParams(
        items=items,
        location_type=body.location_type,
        surface=body.surface,
        can_use_stakes=body.can_use_stakes,
        pickup_preference=body.pickup_preference,
        num_days=count_rental_days(body.event_date, body.event_end_date),
        distance_miles=round(float(miles), 2),
        city=body.city,
        zip_code=body.zip,
        generator_qty=body.generator_qty,
        apply_taxes=body.apply_taxes,
        waived_fees=frozenset(body.waived_fees),
        custom_deposit_cents=body.custom_deposit_cents,
    )
    breakdown = calculate_price(params, rules)
    summary = build_quote_summary(breakdown, items, body.pickup_preference, body.tip_cents, body.location_type)
    return {"breakdown": breakdown.as_dict(), "summary": summary.as_dict(), "distance_rough": rough}
