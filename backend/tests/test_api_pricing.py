from rentals import models


def quote_body(**overrides):
    body = {"event_date": "2026-07-04", "items": [{"unit_id": 1, "qty": 1}], "distance_miles": 25}
    body.update(overrides)
    return body


def test_read_and_update_pricing_rules(client):
    res = client.get("/api/v1/pricing-rules")
    assert res.status_code == 200
    assert float(res.json()["base_radius_miles"]) == 10
    assert res.json()["zone_overrides"] == [{"zip": "48111", "flat_cents": 4000}]

    res = client.put("/api/v1/pricing-rules", json={"per_mile_after_base_cents": 200, "included_cities": ["Wayne", "Westland"]})
    assert res.status_code == 200
    assert res.json()["per_mile_after_base_cents"] == 200
    assert res.json()["surface_sandbag_fee_cents"] == 2500

    res = client.post("/api/v1/quote", json=quote_body())
    assert res.json()["breakdown"]["travel_fee_cents"] == 3000


def test_quote_matches_summary(client):
    res = client.post("/api/v1/quote", json=quote_body(tip_cents=1000))
    assert res.status_code == 200
    data = res.json()
    assert data["breakdown"]["subtotal_cents"] == 15000
    assert data["breakdown"]["travel_fee_cents"] == 2250
    assert data["breakdown"]["total_cents"] == 18285
    assert data["summary"]["total_cents"] == 18285
    assert data["summary"]["total_with_tip_cents"] == 19285
    assert data["summary"]["pickup_label"] == "Next morning pickup"
    assert data["distance_rough"] is False


def test_quote_uses_catalog_water_price(client):
    res = client.post("/api/v1/quote", json=quote_body(items=[{"unit_id": 1, "qty": 1, "wet_or_dry": "water"}], distance_miles=0))
    assert res.json()["breakdown"]["subtotal_cents"] == 20000
    assert res.json()["summary"]["items"][0]["detail"] == "Water x 1"


def test_quote_rejects_water_for_dry_only_unit(client):
    res = client.post("/api/v1/quote", json=quote_body(items=[{"unit_id": 2, "wet_or_dry": "water"}]))
    assert res.status_code == 422
    assert res.json()["detail"]["field_errors"] == {"items.0.wet_or_dry": "water_mode_unavailable"}


def test_quote_unknown_unit(client):
    res = client.post("/api/v1/quote", json=quote_body(items=[{"unit_id": 404}]))
    assert res.status_code == 422
    assert res.json()["detail"]["field_errors"] == {"items.0.unit_id": "not_found"}


def test_quote_needs_a_location(client):
    res = client.post("/api/v1/quote", json=quote_body(distance_miles=None))
    assert res.status_code == 422
    assert res.json()["detail"]["field_errors"] == {"distance_miles": "required"}


def test_quote_from_coordinates_without_routing(client):
    res = client.post("/api/v1/quote", json=quote_body(distance_miles=None, lat=42.3314, lng=-83.0458))
    assert res.status_code == 200
    assert res.json()["distance_rough"] is True
    assert res.json()["breakdown"]["travel_total_miles"] > 10


def test_quote_rejects_unknown_waiver(client):
    res = client.post("/api/v1/quote", json=quote_body(waived_fees=["everything"]))
    assert res.status_code == 422


def test_missing_rules_block_pricing(client, db):
    db.query(models.PricingRulesRecord).delete()
    db.commit()
    res = client.post("/api/v1/quote", json=quote_body())
    assert res.status_code == 503
    assert res.json()["detail"]["field_errors"] == {"pricing_rules": "missing"}
    assert client.get("/api/v1/pricing-rules").status_code == 404

    res = client.put("/api/v1/pricing-rules", json={"per_mile_after_base_cents": 100})
    assert res.status_code == 422
    assert res.json()["detail"]["field_errors"]["base_radius_miles"] == "missing"


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}
