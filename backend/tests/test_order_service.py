# Overview: Pytest coverage for order status commands and the auto-cancel cascade.

"""
Order Status Coordinator Tests

Test Coverage:
- Order creation (numbering, totals)
- Generic status setter and its timestamps
- Ship / cancel / refund commands
- Terminal orders and over-long reasons are rejected
- Auto-cancel when the last active item is cancelled, exactly once
"""

import pytest

from sillon.errors import InvalidOrderStatus, MissingReason, NotFound, ValidationError
from sillon.models import LedgerEvent, Order, StockMovement
from sillon.services import order_item_service, order_service, stock_service


def _auto_cancel_events(db_session, order_id):
    return (
        db_session.query(LedgerEvent)
        .filter_by(entity_type="order", entity_id=order_id, event_type="order.auto_cancelled")
        .count()
    )


class TestCreateOrder:
    def test_numbers_are_sequential(self, db_session, make_product, make_order):
        product = make_product(stock=10)

        first = make_order([(product, 1)])
        second = make_order([(product, 1)])

        assert first.order_number == "CMD-000001"
        assert second.order_number == "CMD-000002"

    def test_totals(self, db_session, make_product, make_order):
        product = make_product(stock=10, selling_price_cents=2000)

        order = make_order([(product, 2)], discount_cents=500, shipping_cents=690, tax_cents=100)

        assert order.subtotal_cents == 4000
        assert order.total_cents == 4000 - 500 + 690 + 100
        assert order.status == "pending"
        assert order.payment_status == "pending"

    def test_failed_item_rolls_back_whole_order(self, db_session, make_product):
        product = make_product(stock=10)

        with pytest.raises(NotFound):
            order_service.create_order([
                {"product_id": product.id, "quantity": 1},
                {"product_id": 987654, "quantity": 1},
            ])

        assert db_session.query(Order).count() == 0
        assert stock_service.get_stock(product.id) == 10

    def test_rejects_unknown_payment_status(self, db_session):
        with pytest.raises(ValidationError):
            order_service.create_order([], payment_status="maybe")


class TestSetStatus:
    def test_stamps_transition_time(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])

        order = order_service.set_status(order.id, "confirmed")
        assert order.status == "confirmed"
        assert order.confirmed_at is not None

        order = order_service.set_status(order.id, "delivered")
        assert order.delivered_at is not None

    def test_any_recognized_move_is_accepted(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])
        order_service.set_status(order.id, "processing")

        order = order_service.set_status(order.id, "pending")

        assert order.status == "pending"

    def test_unknown_status(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])
        with pytest.raises(InvalidOrderStatus):
            order_service.set_status(order.id, "lost")

    @pytest.mark.parametrize("status", ["cancelled", "refunded"])
    def test_reason_statuses_need_their_command(self, db_session, make_product, make_order, status):
        product = make_product(stock=10)
        order = make_order([(product, 1)])
        with pytest.raises(InvalidOrderStatus):
            order_service.set_status(order.id, status)
        assert db_session.get(Order, order.id).status == "pending"

    def test_unknown_order(self, db_session):
        with pytest.raises(NotFound):
            order_service.set_status(404, "confirmed")


class TestCommands:
    def test_ship_with_tracking(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])

        order = order_service.ship_order(order.id, "LP123FR", "https://track.example/LP123FR")

        assert order.status == "shipped"
        assert order.shipped_at is not None
        assert order.tracking_number == "LP123FR"

    def test_ship_without_tracking(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])

        order = order_service.ship_order(order.id)

        assert order.status == "shipped"
        assert order.tracking_number is None

    def test_refund_allocates_credit_note(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])

        order = order_service.refund_order(order.id, "Never arrived")

        assert order.status == "refunded"
        assert order.payment_status == "refunded"
        assert order.refunded_at is not None
        assert order.credit_note_number == "AV-000001"
        # Items and stock are untouched
        assert order.items[0].status == "active"
        assert stock_service.get_stock(product.id) == 9

    def test_refund_twice_keeps_one_credit_note(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])

        order_service.refund_order(order.id)
        order = order_service.refund_order(order.id)

        assert order.credit_note_number == "AV-000001"

    def test_cancel_order_reverses_every_active_item(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 2), (product, 3)])
        order_item_service.return_item(order.items[0].id, "Scratched")

        order = order_service.cancel_order(order.id, "Customer request")

        assert order.status == "cancelled"
        assert order.cancel_reason == "Customer request"
        assert order.cancelled_at is not None
        assert [i.status for i in order.items] == ["returned", "cancelled"]
        assert stock_service.get_stock(product.id) == 10
        reversals = db_session.query(StockMovement).filter_by(order_id=order.id, type="sale_reversal").count()
        assert reversals == 2

    def test_cancel_order_requires_reason(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])
        with pytest.raises(MissingReason):
            order_service.cancel_order(order.id, "")

    def test_cancel_order_is_idempotent(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])

        order_service.cancel_order(order.id, "Duplicate")
        order = order_service.cancel_order(order.id, "Duplicate")

        assert order.status == "cancelled"
        assert stock_service.get_stock(product.id) == 10

    def test_refunded_order_cannot_be_cancelled(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])
        order_service.refund_order(order.id)

        with pytest.raises(InvalidOrderStatus):
            order_service.cancel_order(order.id, "Too late")

    def test_delivered_order_cannot_be_cancelled(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 5)])
        order_service.set_status(order.id, "delivered")

        with pytest.raises(InvalidOrderStatus):
            order_service.cancel_order(order.id, "Changed mind after delivery")

        order = db_session.get(Order, order.id)
        assert order.status == "delivered"
        assert order.items[0].status == "active"
        assert stock_service.get_stock(product.id) == 5

    @pytest.mark.parametrize("terminal", ["cancel", "deliver"])
    def test_terminal_order_cannot_be_refunded(self, db_session, make_product, make_order, terminal):
        product = make_product(stock=10)
        order = make_order([(product, 1)])
        if terminal == "cancel":
            order_service.cancel_order(order.id, "Duplicate")
        else:
            order_service.set_status(order.id, "delivered")
        status = db_session.get(Order, order.id).status

        with pytest.raises(InvalidOrderStatus):
            order_service.refund_order(order.id, "Too late")

        order = db_session.get(Order, order.id)
        assert order.status == status
        assert order.credit_note_number is None

    def test_over_long_reasons_are_rejected(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])
        reason = "x" * 256

        with pytest.raises(ValidationError):
            order_service.cancel_order(order.id, reason)
        with pytest.raises(ValidationError):
            order_service.refund_order(order.id, reason)
        with pytest.raises(ValidationError):
            order_service.request_refund(order.id, reason)

        order = db_session.get(Order, order.id)
        assert order.status == "pending"
        assert order.refund_reason is None

    def test_reason_at_max_length_is_kept_whole(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])

        order = order_service.cancel_order(order.id, "y" * 255)

        assert order.cancel_reason == "y" * 255

    def test_request_refund(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])

        order = order_service.request_refund(order.id, "Wrong pressing")

        assert order.refund_requested is True
        assert order.refund_reason == "Wrong pressing"
        assert order.status == "pending"

    def test_payment_status_paid_stamps_paid_at(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])

        order = order_service.set_payment_status(order.id, "paid")

        assert order.payment_status == "paid"
        assert order.paid_at is not None


class TestAutoCancel:
    def test_cancelling_every_item_cancels_the_order(self, db_session, make_product, make_order):
        """Order with 2 active items; cancel both -> order pending -> cancelled."""
        product = make_product(stock=10)
        order = make_order([(product, 1), (product, 2)])
        first, second = (i.id for i in order.items)

        order_item_service.cancel_item(first)
        assert db_session.get(Order, order.id).status == "pending"

        order_item_service.cancel_item(second)
        order = db_session.get(Order, order.id)
        assert order.status == "cancelled"
        assert order.cancelled_at is not None
        assert _auto_cancel_events(db_session, order.id) == 1

    def test_order_of_cancellation_does_not_matter(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1), (product, 1), (product, 1)])
        ids = [i.id for i in order.items]

        for item_id in reversed(ids):
            order_item_service.cancel_item(item_id)

        assert db_session.get(Order, order.id).status == "cancelled"
        assert _auto_cancel_events(db_session, order.id) == 1

    def test_re_evaluation_is_a_no_op(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])
        order_item_service.cancel_item(order.items[0].id)
        cancelled_at = db_session.get(Order, order.id).cancelled_at

        assert order_service.handle_item_terminal(order.id, "cancelled") is False

        order = db_session.get(Order, order.id)
        assert order.cancelled_at == cancelled_at
        assert _auto_cancel_events(db_session, order.id) == 1

    def test_returned_last_item_leaves_order_alone(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1), (product, 1)])
        order_item_service.cancel_item(order.items[0].id)
        order_item_service.return_item(order.items[1].id, "Wrong colour")

        assert db_session.get(Order, order.id).status == "pending"

    def test_delivered_order_is_not_auto_cancelled(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])
        order_service.set_status(order.id, "delivered")

        order_item_service.cancel_item(order.items[0].id)

        assert db_session.get(Order, order.id).status == "delivered"
        assert _auto_cancel_events(db_session, order.id) == 0

    def test_refunded_order_is_not_auto_cancelled(self, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])
        order_service.refund_order(order.id)

        order_item_service.cancel_item(order.items[0].id)

        assert db_session.get(Order, order.id).status == "refunded"
        assert _auto_cancel_events(db_session, order.id) == 0
