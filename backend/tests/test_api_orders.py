def create(client, payload):
    res = client.post("/api/v1/orders", json=payload)
    assert res.status_code == 201, res.text
    return res.json()


def set_status(client, order_id, status):
    return client.post(f"/api/v1/orders/{order_id}/status", json={"status": status})


def test_create_order_prices_from_catalog(client, order_payload):
    order = create(client, order_payload())
    assert order["status"] == "draft"
    assert order["subtotal_cents"] == 15000
    assert order["tax_cents"] == 900
    assert order["total_cents"] == 15900
    assert order["deposit_due_cents"] == 5000
    assert order["balance_due_cents"] == 10900
    assert order["items"][0]["unit_name"] == "Castle"
    assert order["items"][0]["unit_price_cents"] == 15000


def test_create_order_resolves_distance_from_coordinates(client, order_payload):
    payload = order_payload()
    payload["address"].update({"lat": 42.3314, "lng": -83.0458})
    order = create(client, payload)
    assert float(order["travel_total_miles"]) > 10
    assert order["travel_fee_cents"] > 0


def test_create_order_with_unlocatable_address(client, order_payload):
    payload = order_payload()
    del payload["address"]["lat"], payload["address"]["lng"]
    res = client.post("/api/v1/orders", json=payload)
    assert res.status_code == 422
    assert res.json()["detail"]["field_errors"] == {"address": "not_found"}


def test_customer_order_cannot_carry_admin_overrides(client, order_payload):
    overrides = {
        "waived_fees": ["travel", "surface", "same_day", "tax"],
        "custom_deposit_cents": 0,
        "apply_taxes": False,
        "distance_miles": 0,
    }
    for field, value in overrides.items():
        res = client.post("/api/v1/orders", json=order_payload(**{field: value}))
        assert res.status_code == 422, field

    payload = order_payload(pickup_preference="same_day", can_use_stakes=False)
    payload["address"].update({"lat": 42.3314, "lng": -83.0458})
    order = create(client, payload)
    assert order["travel_fee_cents"] > 0
    assert order["surface_fee_cents"] == 2500
    assert order["same_day_pickup_fee_cents"] == 3000
    assert order["tax_cents"] > 0
    assert order["deposit_due_cents"] == 5000


def test_create_order_requires_items(client, order_payload):
    assert client.post("/api/v1/orders", json=order_payload(items=[])).status_code == 422


def test_booked_unit_cannot_be_double_booked(client, order_payload):
    first = create(client, order_payload())
    assert set_status(client, first["id"], "pending_review").status_code == 200

    res = client.post("/api/v1/orders", json=order_payload())
    assert res.status_code == 409
    assert res.json()["detail"]["field_errors"] == {"items.1": "unavailable"}

    res = client.get("/api/v1/units/1/availability", params={"start": "2026-07-04"})
    assert res.json()["is_available"] is False
    assert res.json()["conflicts"][0]["order_id"] == first["id"]
    res = client.get("/api/v1/units/1/availability", params={"start": "2026-07-04", "exclude_order_id": first["id"]})
    assert res.json()["is_available"] is True


def test_invalid_status_change(client, order_payload):
    order = create(client, order_payload())
    res = set_status(client, order["id"], "completed")
    assert res.status_code == 409
    assert res.json()["detail"]["field_errors"] == {"status": "invalid_transition"}


def test_percentage_discount_round_trip(client, order_payload):
    order = create(client, order_payload())
    res = client.post(f"/api/v1/orders/{order['id']}/discounts", json={"name": "Ten", "percentage": 10})
    assert res.status_code == 201
    discount_id = res.json()["id"]

    stored = client.get(f"/api/v1/orders/{order['id']}").json()
    assert stored["tax_cents"] == 810
    assert stored["total_cents"] == 14310
    assert stored["balance_due_cents"] == 9310

    summary = client.get(f"/api/v1/orders/{order['id']}/summary").json()
    assert summary["discount_cents"] == 1500
    assert summary["total_cents"] == 14310
    assert summary["discrepancy_cents"] == 0
    assert summary["has_adjustments"] is True
    assert summary["discounts"][0]["is_new"] is True
    assert "discount:Ten" in {c["field"] for c in summary["changes"]}

    res = client.delete(f"/api/v1/orders/{order['id']}/discounts/{discount_id}")
    assert res.status_code == 204
    stored = client.get(f"/api/v1/orders/{order['id']}").json()
    assert stored["tax_cents"] == 900
    assert stored["total_cents"] == 15900
    assert client.delete(f"/api/v1/orders/{order['id']}/discounts/{discount_id}").status_code == 404


def test_discount_needs_exactly_one_kind(client, order_payload):
    order = create(client, order_payload())
    url = f"/api/v1/orders/{order['id']}/discounts"
    assert client.post(url, json={"name": "Both", "percentage": 5, "amount_cents": 100}).status_code == 422
    assert client.post(url, json={"name": "Neither"}).status_code == 422


def test_custom_fee_is_taxed(client, order_payload):
    order = create(client, order_payload())
    res = client.post(f"/api/v1/orders/{order['id']}/custom-fees", json={"name": "Setup", "amount_cents": 2500})
    assert res.status_code == 201
    fee_id = res.json()["id"]
    summary = client.get(f"/api/v1/orders/{order['id']}/summary").json()
    assert summary["custom_fees_cents"] == 2500
    assert summary["tax_cents"] == 1050
    assert summary["total_cents"] == 18550
    assert summary["discrepancy_cents"] == 0

    assert client.delete(f"/api/v1/orders/{order['id']}/custom-fees/{fee_id}").status_code == 204
    assert client.get(f"/api/v1/orders/{order['id']}").json()["total_cents"] == 15900


def test_reprice_sends_order_for_customer_approval(client, order_payload):
    order = create(client, order_payload())
    set_status(client, order["id"], "pending_review")

    res = client.post(f"/api/v1/orders/{order['id']}/reprice", json={"generator_qty": 1, "admin_message": "Added a generator"})
    assert res.status_code == 200
    repriced = res.json()
    assert repriced["status"] == "awaiting_customer_approval"
    assert repriced["generator_fee_cents"] == 10000
    assert repriced["total_cents"] == 26500

    summary = client.get(f"/api/v1/orders/{order['id']}/summary").json()
    generator = next(line for line in summary["fees"] if line["key"] == "fee:generator")
    assert generator["changed"] is True
    changed = {c["field"]: c for c in summary["changes"]}
    assert changed["generator_qty"]["old"] == "0"
    assert changed["generator_qty"]["new"] == "1"
    assert changed["total_cents"]["new"] == "26500"

    # Deposit is still unpaid
    res = client.post(f"/api/v1/orders/{order['id']}/approve", json={"approve": True})
    assert res.status_code == 409
    assert res.json()["detail"]["field_errors"] == {"status": "payment_required"}

    client.post(f"/api/v1/orders/{order['id']}/reprice", json={"custom_deposit_cents": 0})
    res = client.post(f"/api/v1/orders/{order['id']}/approve", json={"approve": True})
    assert res.status_code == 200
    assert res.json()["status"] == "confirmed"


def test_reprice_without_changes_keeps_status(client, order_payload):
    order = create(client, order_payload())
    set_status(client, order["id"], "pending_review")
    res = client.post(f"/api/v1/orders/{order['id']}/reprice", json={})
    assert res.json()["status"] == "pending_review"
    assert res.json()["total_cents"] == 15900


def test_customer_can_reject_changes(client, order_payload):
    order = create(client, order_payload())
    set_status(client, order["id"], "pending_review")
    client.post(f"/api/v1/orders/{order['id']}/reprice", json={"surface": "concrete"})
    res = client.post(f"/api/v1/orders/{order['id']}/approve", json={"approve": False, "reason": "Too expensive"})
    assert res.status_code == 200
    assert res.json()["status"] == "cancelled"
    assert res.json()["admin_message"] == "Too expensive"


def test_approve_requires_pending_changes(client, order_payload):
    order = create(client, order_payload())
    res = client.post(f"/api/v1/orders/{order['id']}/approve", json={"approve": True})
    assert res.status_code == 422


def test_unknown_order(client):
    res = client.get("/api/v1/orders/999")
    assert res.status_code == 404
    assert res.json()["detail"]["field_errors"] == {"order_id": "not_found"}
