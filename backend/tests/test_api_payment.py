import httpx
import pytest

from rentals.api.dependencies import get_payment_client
from rentals.main import app
from rentals.services.payment_service import PaymentClient


@pytest.fixture
def stripe(client):
    state = {"paid": False, "requests": []}

    def handler(request):
        state["requests"].append((request.method, request.url.path))
        if request.method == "POST":
            return httpx.Response(200, json={"id": "cs_test", "url": "https://checkout.test/cs_test"})
        return httpx.Response(
            200,
            json={
                "id": "cs_test",
                "status": "complete" if state["paid"] else "open",
                "payment_status": "paid" if state["paid"] else "unpaid",
                "amount_total": 5000,
                "payment_intent": {"payment_method": "pm_card"},
            },
        )

    payment_client = PaymentClient(secret_key="sk_test", api_base="https://stripe.test/v1", transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_payment_client] = lambda: payment_client
    return state


def create_order(client, payload):
    res = client.post("/api/v1/orders", json=payload)
    assert res.status_code == 201
    return res.json()["id"]


def test_checkout_and_payment_status(client, stripe, order_payload):
    order_id = create_order(client, order_payload())

    res = client.post(f"/api/v1/orders/{order_id}/checkout")
    assert res.status_code == 200
    assert res.json() == {
        "order_id": order_id,
        "session_id": "cs_test",
        "url": "https://checkout.test/cs_test",
        "amount_cents": 5000,
    }

    res = client.get(f"/api/v1/orders/{order_id}/payment-status")
    assert res.json()["status"] == "unpaid"
    assert res.json()["payment_state"] == "payment_due"

    stripe["paid"] = True
    res = client.get(f"/api/v1/orders/{order_id}/payment-status", params={"wait": True})
    assert res.status_code == 200
    assert res.json() == {
        "order_id": order_id,
        "status": "paid",
        "payment_state": "deposit_paid",
        "order_status": "pending_review",
    }

    res = client.post(f"/api/v1/orders/{order_id}/checkout")
    assert res.status_code == 409


def test_checkout_requires_deposit(client, stripe, order_payload):
    order_id = create_order(client, order_payload())
    res = client.post(f"/api/v1/orders/{order_id}/reprice", json={"custom_deposit_cents": 0})
    assert res.json()["deposit_due_cents"] == 0
    res = client.post(f"/api/v1/orders/{order_id}/checkout")
    assert res.status_code == 422
    assert stripe["requests"] == []


def test_provider_outage_is_bad_gateway(client, order_payload):
    def handler(request):
        raise httpx.ConnectError("stripe down")

    payment_client = PaymentClient(secret_key="sk_test", transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_payment_client] = lambda: payment_client
    order_id = create_order(client, order_payload())
    res = client.post(f"/api/v1/orders/{order_id}/checkout")
    assert res.status_code == 502
    assert res.json()["detail"]["field_errors"] == {"stripe": "unavailable"}
