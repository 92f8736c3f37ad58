from datetime import date

import pytest

from rentals import models, schemas
from rentals.crud import crud_order, crud_pricing
from rentals.services.errors import OrderPersistenceError


class FailingSession:
    def __init__(self):
        self.rolled_back = False

    def commit(self):
        raise RuntimeError("disk I/O error")

    def rollback(self):
        self.rolled_back = True


def new_order(db, rules, order_payload):
    return crud_order.create_order(db, schemas.OrderCreate(**order_payload()), rules)


def test_failed_save_is_rolled_back_and_retryable():
    db = FailingSession()
    with pytest.raises(OrderPersistenceError) as exc:
        crud_order.save_changes(db, "new order")
    assert db.rolled_back
    assert exc.value.field_errors == {"order": "save_failed"}


def test_create_order_reuses_customer(db, catalog, rules, order_payload):
    first = new_order(db, rules, order_payload)
    second = crud_order.create_order(
        db,
        schemas.OrderCreate(**order_payload(event_date="2026-08-01")),
        rules,
    )
    assert first.customer_id == second.customer_id
    assert db.query(models.Customer).count() == 1


def test_log_change_skips_noops(db, catalog, rules, order_payload):
    order = new_order(db, rules, order_payload)
    assert crud_order.log_change(db, order, "generator_qty", 0, 0) is None
    entry = crud_order.log_change(db, order, "travel_total_miles", order.travel_total_miles, "7.25")
    assert entry.old_value == "5"
    assert entry.new_value == "7.25"


def test_load_order_bundle(db, catalog, rules, order_payload):
    order = new_order(db, rules, order_payload)
    crud_order.add_custom_fee(db, order, schemas.CustomFeeCreate(name="Setup", amount_cents=500), rules)
    bundle = crud_order.load_order_bundle(db, order.id)
    assert bundle.order.id == order.id
    assert [i.unit_name for i in bundle.items] == ["Castle"]
    assert [f.name for f in bundle.custom_fees] == ["Setup"]
    assert bundle.discounts == []
    assert {c.field_name for c in bundle.changelog} >= {"custom_fee:Setup", "total_cents"}
    assert crud_order.load_order_bundle(db, 999) is None


def test_reprice_item_change_is_logged(db, catalog, rules, order_payload):
    order = new_order(db, rules, order_payload)
    changes = schemas.OrderReprice(items=[{"unit_id": 2, "qty": 1}], event_end_date=date(2026, 7, 5))
    order = crud_order.reprice_order(db, order, rules, changes)
    assert order.subtotal_cents == 22500
    fields = {c.field_name: c for c in order.changelog}
    assert fields["item:Castle:dry"].change_type == "remove"
    assert fields["item:Combo:dry"].change_type == "add"
    assert fields["event_end_date"].new_value == "2026-07-05"
    # Drafts are still editable by the customer
    assert order.status == models.OrderStatus.DRAFT


def test_admin_settings(db):
    assert crud_pricing.get_admin_setting(db, "season_banner", "none") == "none"
    crud_pricing.set_admin_setting(db, "season_banner", "Summer specials")
    assert crud_pricing.get_admin_setting(db, "season_banner") == "Summer specials"
    crud_pricing.set_admin_setting(db, "season_banner", None)
    assert crud_pricing.get_admin_setting(db, "season_banner", "none") == "none"


def test_get_pricing_rules_uses_configured_tax_rate(db, catalog):
    rules = crud_pricing.get_pricing_rules(db)
    assert rules.included_cities == ("Wayne",)
    assert rules.zone_overrides == {"48111": 4000}
    assert float(rules.tax_rate) == 0.06
