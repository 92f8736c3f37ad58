from datetime import date
from urllib.parse import parse_qs

import httpx
import pytest

from rentals import models
from rentals.models import OrderStatus
from rentals.services.errors import PaymentProviderError
from rentals.services.payment_service import PaymentClient, check_payment_status


def client_for(handler):
    return PaymentClient(secret_key="sk_test_123", api_base="https://stripe.test/v1", transport=httpx.MockTransport(handler))


def draft_order(db, **values):
    order = models.Order(event_date=date(2026, 7, 4), deposit_due_cents=5000, total_cents=15900, **values)
    db.add(order)
    db.commit()
    return order


def test_checkout_session_is_form_encoded():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["path"] = request.url.path
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"id": "cs_1", "url": "https://checkout.test/cs_1"})

    session = client_for(handler).create_checkout_session(
        order_id=9,
        amount_cents=5000,
        email="dana@example.com",
        name="Dana Reyes",
        success_url="https://shop.test/ok",
        cancel_url="https://shop.test/cancel",
    )
    assert session["id"] == "cs_1"
    assert seen["auth"] == "Bearer sk_test_123"
    assert seen["path"] == "/v1/checkout/sessions"
    assert seen["form"]["line_items[0][price_data][unit_amount]"] == ["5000"]
    assert seen["form"]["metadata[order_id]"] == ["9"]


def test_checkout_rejects_zero_amount():
    with pytest.raises(PaymentProviderError):
        client_for(lambda r: httpx.Response(200, json={})).create_checkout_session(1, 0, "a@b.c", "", "u", "u")


def test_unconfigured_client_fails():
    client = PaymentClient(secret_key="")
    assert not client.configured
    with pytest.raises(PaymentProviderError) as exc:
        client.get_checkout_session("cs_1")
    assert exc.value.field_errors == {"stripe": "missing_secret_key"}


def test_provider_rejection_is_wrapped():
    client = client_for(lambda r: httpx.Response(402, json={"error": {"message": "card declined"}}))
    with pytest.raises(PaymentProviderError) as exc:
        client.get_checkout_session("cs_1")
    assert exc.value.field_errors == {"stripe": "402"}


def test_paid_session_marks_order_paid_once(db):
    order = draft_order(db, stripe_checkout_session_id="cs_1")
    calls = []

    def handler(request):
        calls.append(request.url.params.get("expand[]"))
        return httpx.Response(
            200,
            json={
                "id": "cs_1",
                "status": "complete",
                "payment_status": "paid",
                "amount_total": 5000,
                "payment_intent": {"id": "pi_1", "payment_method": "pm_1"},
            },
        )

    client = client_for(handler)
    assert check_payment_status(db, order, client) == "paid"
    assert order.deposit_paid_cents == 5000
    assert order.stripe_payment_method_id == "pm_1"
    assert order.status == OrderStatus.PENDING_REVIEW
    assert order.is_paid
    assert check_payment_status(db, order, client) == "paid"
    assert calls == ["payment_intent"]


def test_expired_and_open_sessions(db):
    order = draft_order(db, stripe_checkout_session_id="cs_2")
    expired = client_for(lambda r: httpx.Response(200, json={"status": "expired", "payment_status": "unpaid"}))
    assert check_payment_status(db, order, expired) == "expired"
    still_open = client_for(lambda r: httpx.Response(200, json={"status": "open", "payment_status": "unpaid"}))
    assert check_payment_status(db, order, still_open) == "unpaid"
    assert order.status == OrderStatus.DRAFT


def test_order_without_session_is_unpaid(db):
    order = draft_order(db)
    assert check_payment_status(db, order, client_for(lambda r: httpx.Response(500))) == "unpaid"
