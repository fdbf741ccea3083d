# Overview: Pytest coverage for the stock ledger engine.

"""
Stock Ledger Tests

Every stock change is one movement row, and replaying the movements of a
product reproduces its stored stock.

Test Coverage:
- Signed deltas per movement type
- Movement recording and the running stock
- Oversell (recorded, or rejected when negative stock is disabled)
- Append-only enforcement
- Replay and low-stock queries
"""

import pytest

from sillon.errors import (
    ImmutableRecordError,
    InsufficientStock,
    InvalidMovementType,
    InvalidQuantity,
    NotFound,
)
from sillon.models import Product, StockMovement
from sillon.services import stock_service


class TestSignedDelta:
    @pytest.mark.parametrize("movement_type", ["purchase", "return", "consignment_in", "sale_reversal"])
    def test_additive_types(self, movement_type):
        assert stock_service.signed_delta(movement_type, 4) == 4

    @pytest.mark.parametrize("movement_type", ["sale", "loss", "consignment_out"])
    def test_subtractive_types(self, movement_type):
        assert stock_service.signed_delta(movement_type, 4) == -4

    @pytest.mark.parametrize("movement_type", ["adjustment", "sale_adjustment"])
    def test_signed_types_keep_their_sign(self, movement_type):
        assert stock_service.signed_delta(movement_type, -3) == -3
        assert stock_service.signed_delta(movement_type, 2) == 2

    def test_unknown_type(self):
        with pytest.raises(InvalidMovementType):
            stock_service.signed_delta("theft", 1)

    def test_directional_type_needs_positive_quantity(self):
        with pytest.raises(InvalidQuantity):
            stock_service.signed_delta("sale", -2)
        with pytest.raises(InvalidQuantity):
            stock_service.signed_delta("purchase", 0)

    def test_signed_type_rejects_zero(self):
        with pytest.raises(InvalidQuantity):
            stock_service.signed_delta("adjustment", 0)


class TestApplyMovement:
    def test_sale_records_before_and_after(self, db_session, make_product):
        """Stock 10, sale of 3 -> movement 10 -> 7."""
        product = make_product(stock=10)

        movement = stock_service.apply_movement(product.id, "sale", 3)

        assert movement.type == "sale"
        assert movement.quantity == 3
        assert movement.stock_before == 10
        assert movement.stock_after == 7
        assert stock_service.get_stock(product.id) == 7

    def test_every_row_satisfies_the_ledger_invariant(self, db_session, make_product):
        product = make_product(stock=5)
        stock_service.apply_movement(product.id, "sale", 2)
        stock_service.apply_movement(product.id, "loss", 1)
        stock_service.apply_movement(product.id, "adjustment", 4)
        stock_service.apply_movement(product.id, "consignment_out", 3)

        for mv in db_session.query(StockMovement).filter_by(product_id=product.id):
            assert mv.stock_after == mv.stock_before + stock_service.signed_delta(mv.type, mv.quantity)

        assert stock_service.get_stock(product.id) == 3

    def test_links_are_stored(self, db_session, make_supplier, make_product):
        supplier = make_supplier(type="purchase")
        product = make_product(stock=0, supplier=supplier)

        movement = stock_service.apply_movement(
            product.id, "purchase", 12, unit_cost_cents=850, reference="PO-7", reason="Restock"
        )

        assert movement.supplier_id == supplier.id
        assert movement.unit_cost_cents == 850
        assert movement.reference == "PO-7"

    def test_invalid_type_changes_nothing(self, db_session, make_product):
        product = make_product(stock=4)
        count_before = db_session.query(StockMovement).count()

        with pytest.raises(InvalidMovementType):
            stock_service.apply_movement(product.id, "gift", 1)

        assert db_session.query(StockMovement).count() == count_before
        assert stock_service.get_stock(product.id) == 4

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFound):
            stock_service.apply_movement(424242, "purchase", 1)

    def test_oversell_is_recorded_truthfully(self, db_session, make_product):
        product = make_product(stock=1)

        movement = stock_service.apply_movement(product.id, "sale", 3)

        assert movement.stock_before == 1
        assert movement.stock_after == -2
        assert stock_service.get_stock(product.id) == -2

    def test_oversell_rejected_when_negative_stock_disabled(self, app, db_session, make_product):
        product = make_product(stock=1)
        app.config["SILLON_ALLOW_NEGATIVE_STOCK"] = False
        try:
            with pytest.raises(InsufficientStock):
                stock_service.apply_movement(product.id, "sale", 3)
        finally:
            app.config["SILLON_ALLOW_NEGATIVE_STOCK"] = True

        assert stock_service.get_stock(product.id) == 1

    def test_product_version_moves_with_stock(self, db_session, make_product):
        product = make_product(stock=3)
        version = db_session.get(Product, product.id).version_id

        stock_service.apply_movement(product.id, "purchase", 1)

        assert db_session.get(Product, product.id).version_id == version + 1


class TestAppendOnly:
    def test_movement_cannot_be_edited(self, db_session, make_product):
        product = make_product(stock=2)
        movement = db_session.query(StockMovement).filter_by(product_id=product.id).first()

        movement.quantity = 99
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

    def test_movement_cannot_be_deleted(self, db_session, make_product):
        product = make_product(stock=2)
        movement = db_session.query(StockMovement).filter_by(product_id=product.id).first()

        db_session.delete(movement)
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()


class TestAdjustAndQueries:
    def test_adjust_to_counted_value(self, db_session, make_product):
        product = make_product(stock=10)

        movement = stock_service.adjust_stock(product.id, 6, reason="Count")

        assert movement.type == "adjustment"
        assert movement.quantity == -4
        assert stock_service.get_stock(product.id) == 6

    def test_adjust_to_same_value_is_a_no_op(self, db_session, make_product):
        product = make_product(stock=10)
        assert stock_service.adjust_stock(product.id, 10) is None

    def test_adjust_rejects_negative_count(self, db_session, make_product):
        product = make_product(stock=10)
        with pytest.raises(InvalidQuantity):
            stock_service.adjust_stock(product.id, -1)

    def test_replay_matches_stock(self, db_session, make_product):
        product = make_product(stock=8)
        stock_service.apply_movement(product.id, "sale", 5)
        stock_service.apply_movement(product.id, "return", 1)
        stock_service.apply_movement(product.id, "sale_adjustment", -2)

        report = stock_service.replay_stock(product.id)

        assert report.consistent
        assert report.movement_count == 4
        assert report.opening_stock == 0
        assert report.replayed_stock == 2 == report.current_stock

    def test_replay_detects_counter_drift(self, db_session, make_product):
        product = make_product(stock=8)
        # Bypass the ledger on purpose
        db_session.query(Product).filter_by(id=product.id).update({"stock": 11})
        db_session.commit()

        report = stock_service.replay_stock(product.id)

        assert not report.consistent
        assert report.replayed_stock == 8
        assert report.current_stock == 11

    def test_list_movements_newest_first(self, db_session, make_product):
        product = make_product(stock=3)
        stock_service.apply_movement(product.id, "sale", 1)

        movements = stock_service.list_movements(product_id=product.id)

        assert [m.type for m in movements] == ["sale", "purchase"]
        assert [m.type for m in stock_service.list_movements(product_id=product.id, movement_type="sale")] == ["sale"]

    def test_low_stock(self, db_session, make_product):
        low = make_product(stock=1, stock_threshold=2)
        make_product(stock=9, stock_threshold=2)

        assert [p.id for p in stock_service.list_low_stock()] == [low.id]
        assert len(stock_service.list_low_stock(threshold=10)) == 2
