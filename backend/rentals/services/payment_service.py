"""Hosted checkout sessions with Stripe.

``PaymentClient`` talks to the Stripe REST API directly over httpx
(form-encoded requests, bearer auth). ``check_payment_status`` reconciles an
order with its checkout session and is safe to call repeatedly: once an
order is marked paid no further writes happen.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
import logging

import httpx
from sqlalchemy.orm import Session

from rentals.core.config import settings
from rentals.models.order import Order, OrderStatus

from .errors import OrderPersistenceError, PaymentProviderError

logger = logging.getLogger(__name__)

PAID = "paid"
UNPAID = "unpaid"
EXPIRED = "expired"


class PaymentClient:
    def __init__(
        self,
        secret_key: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.secret_key = (secret_key if secret_key is not None else settings.STRIPE_SECRET_KEY).strip()
        self.api_base = (api_base or settings.STRIPE_API_BASE).rstrip("/")
        self.timeout = float(timeout or settings.STRIPE_TIMEOUT)
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def _request(
        self,
        method: str,
        path: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not self.configured:
            raise PaymentProviderError("Stripe not configured", {"stripe": "missing_secret_key"})
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                r = client.request(method, f"{self.api_base}{path}", data=data, params=params, headers=headers)
                r.raise_for_status()
                return r.json()
        except httpx.HTTPStatusError as exc:
            logger.error("Stripe %s %s failed: %s", method, path, exc.response.text)
            raise PaymentProviderError("Payment provider rejected the request", {"stripe": str(exc.response.status_code)})
        except httpx.HTTPError as exc:
            logger.error("Stripe %s %s error: %s", method, path, exc, exc_info=True)
            raise PaymentProviderError("Payment provider unavailable", {"stripe": "unavailable"})

    def create_checkout_session(
        self,
        order_id: int,
        amount_cents: int,
        email: str,
        name: str,
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, Any]:
        if int(amount_cents) <= 0:
            raise PaymentProviderError("Checkout amount must be positive", {"amount_cents": "must_be_positive"})
        data = {
            "mode": "payment",
            "customer_email": email,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": str(order_id),
            "metadata[order_id]": str(order_id),
            "payment_intent_data[setup_future_usage]": "off_session",
            "line_items[0][quantity]": "1",
            "line_items[0][price_data][currency]": "usd",
            "line_items[0][price_data][unit_amount]": str(int(amount_cents)),
            "line_items[0][price_data][product_data][name]": f"Deposit for order #{order_id}",
            "line_items[0][price_data][product_data][description]": name or email,
        }
        return self._request("POST", "/checkout/sessions", data)

    def get_checkout_session(self, session_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/checkout/sessions/{session_id}", params={"expand[]": "payment_intent"})


def _payment_method_id(session: Dict[str, Any]) -> Optional[str]:
    intent = session.get("payment_intent")
    if isinstance(intent, dict):
        return intent.get("payment_method")
    return None


def check_payment_status(db: Session, order: Order, client: PaymentClient) -> str:
    """Return ``paid``, ``unpaid`` or ``expired`` for the order's checkout.

    Marks the order paid the first time Stripe reports the session paid.
    """
    if order.is_paid:
        return PAID
    if not order.stripe_checkout_session_id:
        return UNPAID

    session = client.get_checkout_session(order.stripe_checkout_session_id)
    if session.get("status") == "expired":
        return EXPIRED
    if session.get("payment_status") != PAID:
        return UNPAID

    # Another request may have recorded the payment since we loaded the order
    db.refresh(order)
    if order.is_paid:
        return PAID
    amount = int(session.get("amount_total") or order.deposit_due_cents or 0)
    order.stripe_payment_status = PAID
    order.deposit_paid_cents = amount
    order.stripe_payment_method_id = _payment_method_id(session) or order.stripe_payment_method_id
    if order.status == OrderStatus.DRAFT:
        order.status = OrderStatus.PENDING_REVIEW
    try:
        db.add(order)
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.error("Failed to record payment for order %s: %s", order.id, exc, exc_info=True)
        raise OrderPersistenceError("Payment received but the order could not be updated", {"order": "save_failed"})
    logger.info("Order %s marked paid (%s cents)", order.id, amount)
    return PAID
