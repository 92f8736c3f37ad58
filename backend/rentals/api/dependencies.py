from sqlalchemy.orm import Session
from fastapi import Depends

from ..database import get_db
from ..crud.crud_pricing import get_pricing_rules
from ..services.cart import CartRepository, get_cart_repository
from ..services.payment_service import PaymentClient
from ..services.pricing import PricingRules

__all__ = ["get_db", "get_rules", "get_carts", "get_payment_client"]


def get_rules(db: Session = Depends(get_db)) -> PricingRules:
    return get_pricing_rules(db)


def get_carts() -> CartRepository:
    return get_cart_repository()


def get_payment_client() -> PaymentClient:
    return PaymentClient()
