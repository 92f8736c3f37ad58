import asyncio
import logging

import anyio
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..core.config import settings
from ..crud import crud_order
from ..services.order_status import payment_state
from ..services.payment_poller import CancellationToken, PollOutcome, poll_until_paid
from ..services.payment_service import PaymentClient, check_payment_status
from ..utils import error_response
from .dependencies import get_db, get_payment_client

router = APIRouter(tags=["payments"])
logger = logging.getLogger(__name__)


def _get_order_or_404(db: Session, order_id: int) -> models.Order:
    order = crud_order.get_order(db, order_id)
    if order is None:
        raise error_response("Order not found", {"order_id": "not_found"}, status.HTTP_404_NOT_FOUND)
    return order


@router.post("/orders/{order_id}/checkout", response_model=schemas.CheckoutSessionRead)
def create_checkout(
    order_id: int,
    db: Session = Depends(get_db),
    client: PaymentClient = Depends(get_payment_client),
):
    """Start a hosted checkout for the order's deposit."""
    order = _get_order_or_404(db, order_id)
    if order.is_paid:
        raise error_response("Order is already paid", {"order_id": "already_paid"}, status.HTTP_409_CONFLICT)
    amount = int(order.deposit_due_cents or 0)
    if amount <= 0:
        raise error_response("No deposit is due for this order", {"deposit_due_cents": "zero"})

    customer = order.customer
    base = settings.FRONTEND_URL.rstrip("/")
    session = client.create_checkout_session(
        order_id=order.id,
        amount_cents=amount,
        email=customer.email if customer else "",
        name=customer.full_name if customer else "",
        success_url=f"{base}/checkout/success?order_id={order.id}",
        cancel_url=f"{base}/checkout/cancelled?order_id={order.id}",
    )
    session_id = session.get("id")
    if not session_id:
        raise error_response("Invalid payment provider response", {"stripe": "missing_session"}, status.HTTP_502_BAD_GATEWAY)
    order.stripe_checkout_session_id = session_id
    db.add(order)
    crud_order.save_changes(db, "checkout session")
    return {"order_id": order.id, "session_id": session_id, "url": session.get("url"), "amount_cents": amount}


async def _cancel_on_disconnect(request: Request, token: CancellationToken) -> None:
    while not token.cancelled:
        if await request.is_disconnected():
            token.cancel("client disconnected")
            return
        await asyncio.sleep(0.5)


@router.get("/orders/{order_id}/payment-status", response_model=schemas.PaymentStatusRead)
async def read_payment_status(
    order_id: int,
    request: Request,
    wait: bool = Query(False),
    db: Session = Depends(get_db),
    client: PaymentClient = Depends(get_payment_client),
):
    """Report payment status; with ``wait`` poll Stripe until paid or timed out."""
    order = await anyio.to_thread.run_sync(_get_order_or_404, db, order_id)

    if wait:
        token = CancellationToken()
        watcher = asyncio.create_task(_cancel_on_disconnect(request, token))
        try:
            outcome = await poll_until_paid(
                lambda: anyio.to_thread.run_sync(check_payment_status, db, order, client),
                token,
                interval=settings.PAYMENT_POLL_INTERVAL,
                max_attempts=settings.PAYMENT_POLL_MAX_ATTEMPTS,
            )
        finally:
            token.cancel("finished")
            watcher.cancel()
        result = "paid" if outcome == PollOutcome.PAID else outcome.value
    else:
        result = await anyio.to_thread.run_sync(check_payment_status, db, order, client)

    return {
        "order_id": order.id,
        "status": result,
        "payment_state": payment_state(order),
        "order_status": order.status.value,
    }
