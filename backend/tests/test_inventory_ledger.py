# Overview: Pytest coverage for the inventory ledger and derived low-stock flag.

import logging

import pytest

from backoffice.models import InventoryMovement, Product
from backoffice.services.inventory_service import (
    adjust_stock,
    apply_delta,
    create_product,
    get_movements,
    list_low_stock_products,
    set_reorder_threshold,
)
from backoffice.validation import NotFoundError, ValidationError


@pytest.fixture
def boundary_product(db_session, store_a):
    """Stock exactly at the reorder threshold."""
    product = Product(store_id=store_a.id, name="Lawn Suit", price_cents=7500, stock_quantity=10, reorder_threshold=10)
    db_session.add(product)
    db_session.commit()
    return product


class TestLowStock:

    def test_low_stock_scenario_at_and_above_threshold(self, db_session, store_a, boundary_product):
        assert boundary_product.low_stock is True

        product = apply_delta(store_a.id, boundary_product.id, 1, reason="ADJUST")

        assert product.stock_quantity == 11
        assert product.low_stock is False

    def test_low_stock_is_not_settable(self, db_session, boundary_product):
        with pytest.raises(AttributeError):
            boundary_product.low_stock = False

    def test_threshold_change_rederives_low_stock(self, db_session, store_a, product_a):
        assert product_a.low_stock is False

        product = set_reorder_threshold(store_a.id, product_a.id, 25)

        assert product.low_stock is True

    def test_low_stock_query_uses_same_rule(self, db_session, store_a, product_a, boundary_product):
        low = list_low_stock_products(store_a.id)

        assert [p.id for p in low] == [boundary_product.id]

    def test_negative_threshold_rejected(self, db_session, store_a, product_a):
        with pytest.raises(ValidationError):
            set_reorder_threshold(store_a.id, product_a.id, -1)


class TestApplyDelta:

    def test_records_a_movement_per_delta(self, db_session, store_a, product_a):
        apply_delta(store_a.id, product_a.id, -3, reason="ORDER", reference_type="order", reference_id=1)
        apply_delta(store_a.id, product_a.id, 2, reason="RETURN", reference_type="return", reference_id=7)

        movements = get_movements(store_a.id, product_a.id)

        assert product_a.stock_quantity == 19
        assert sorted(m.quantity_delta for m in movements) == [-3, 2]
        assert {m.reason for m in movements} == {"ORDER", "RETURN"}
        resulting = {m.reason: m.resulting_quantity for m in movements}
        assert resulting == {"ORDER": 17, "RETURN": 19}

    def test_unknown_reason_rejected(self, db_session, store_a, product_a):
        with pytest.raises(ValidationError):
            apply_delta(store_a.id, product_a.id, 1, reason="GIFT")

    def test_oversell_goes_negative_by_default(self, db_session, store_a, product_a, caplog):
        with caplog.at_level(logging.WARNING):
            product = apply_delta(store_a.id, product_a.id, -25, reason="ORDER")

        assert product.stock_quantity == -5
        assert product.low_stock is True
        assert "oversold" in caplog.text

    def test_oversell_rejected_when_negative_stock_disabled(self, app, db_session, store_a, product_a, monkeypatch):
        monkeypatch.setitem(app.config, "INVENTORY_ALLOW_NEGATIVE_STOCK", False)

        with pytest.raises(ValidationError):
            apply_delta(store_a.id, product_a.id, -25, reason="ORDER")

        db_session.rollback()
        assert db_session.get(Product, product_a.id).stock_quantity == 20
        assert db_session.query(InventoryMovement).count() == 0

    def test_product_from_other_store_is_not_found(self, db_session, store_a, product_b):
        with pytest.raises(NotFoundError):
            apply_delta(store_a.id, product_b.id, 1, reason="ADJUST")


class TestAdminStock:

    def test_adjust_stock(self, db_session, store_a, product_a):
        product = adjust_stock(store_a.id, product_a.id, -4, note="Damaged")

        assert product.stock_quantity == 16
        movement = get_movements(store_a.id, product_a.id)[0]
        assert movement.reason == "ADJUST"
        assert movement.note == "Damaged"

    def test_zero_adjustment_rejected(self, db_session, store_a, product_a):
        with pytest.raises(ValidationError):
            adjust_stock(store_a.id, product_a.id, 0)

    def test_create_product_uses_default_threshold(self, app, db_session, store_a):
        product = create_product(store_a.id, "  Silk Dupatta ", 3000, stock_quantity=4)

        assert product.name == "Silk Dupatta"
        assert product.reorder_threshold == app.config["DEFAULT_REORDER_THRESHOLD"]
        assert product.low_stock is True

    def test_create_product_rejects_negative_price(self, db_session, store_a):
        with pytest.raises(ValidationError):
            create_product(store_a.id, "Broken", -1)
