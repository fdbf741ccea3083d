# Overview: Thread-based race tests against a file-backed SQLite database.

"""
Concurrency Tests

Two workers (separate app contexts, so separate sessions and connections)
issue commands against the same rows at the same time. SQLite serializes the
writes; the compare-and-set guards decide who wins.

Test Coverage:
- Two cancellations of one item: one succeeds, one reversal movement
- Cancelling the last two items of an order concurrently: one auto-cancel
- Concurrent sales on one product: no lost update
"""

import threading

import pytest

from sillon import create_app
from sillon.config import TestConfig
from sillon.errors import ConcurrentConflict, ItemNotActive
from sillon.extensions import db
from sillon.models import LedgerEvent, Order, Product, StockMovement
from sillon.services import order_item_service, order_service, stock_service
from sillon.services.concurrency import run_with_retry


@pytest.fixture
def race_app(tmp_path):
    class RaceConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'race.sqlite3'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}}

    app = create_app(RaceConfig)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def _run_concurrently(app, jobs):
    """Run each job in its own thread and app context; return (results, errors)."""
    barrier = threading.Barrier(len(jobs))
    results, errors = [], []
    lock = threading.Lock()

    def _worker(job):
        with app.app_context():
            barrier.wait()
            try:
                value = job()
                with lock:
                    results.append(value)
            except Exception as exc:  # collected and asserted on by the test
                with lock:
                    errors.append(exc)

    threads = [threading.Thread(target=_worker, args=(job,)) for job in jobs]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results, errors


def _seed(app, stock, quantities):
    with app.app_context():
        product = Product(sku="RACE-1", title="Race Record", stock=0, selling_price_cents=1500)
        db.session.add(product)
        db.session.commit()
        stock_service.apply_movement(product.id, "purchase", stock)
        order = order_service.create_order(
            [{"product_id": product.id, "quantity": q} for q in quantities]
        )
        return product.id, order.id, [i.id for i in order.items]


def test_double_cancel_reverses_once(race_app):
    product_id, order_id, (item_id, _other) = _seed(race_app, 10, [3, 1])

    results, errors = _run_concurrently(
        race_app,
        [lambda: order_item_service.cancel_item(item_id).id] * 2,
    )

    assert len(results) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], (ItemNotActive, ConcurrentConflict))

    with race_app.app_context():
        reversals = db.session.query(StockMovement).filter_by(order_item_id=item_id, type="sale_reversal").count()
        assert reversals == 1
        assert stock_service.get_stock(product_id) == 9
        assert stock_service.replay_stock(product_id).consistent


def test_last_two_cancellations_auto_cancel_once(race_app):
    _product_id, order_id, item_ids = _seed(race_app, 10, [1, 1])

    def _cancel(item_id):
        return lambda: run_with_retry(lambda: order_item_service.cancel_item(item_id).id, attempts=5)

    results, errors = _run_concurrently(race_app, [_cancel(i) for i in item_ids])

    assert errors == []
    assert sorted(results) == sorted(item_ids)
    with race_app.app_context():
        assert db.session.get(Order, order_id).status == "cancelled"
        events = db.session.query(LedgerEvent).filter_by(
            entity_type="order", entity_id=order_id, event_type="order.auto_cancelled"
        ).count()
        assert events == 1


def test_concurrent_sales_do_not_lose_updates(race_app):
    product_id, _order_id, _items = _seed(race_app, 20, [1])

    def _sell():
        return run_with_retry(lambda: stock_service.apply_movement(product_id, "sale", 2).id, attempts=5)

    results, errors = _run_concurrently(race_app, [_sell] * 4)

    assert errors == []
    assert len(results) == 4
    with race_app.app_context():
        assert stock_service.get_stock(product_id) == 20 - 1 - 4 * 2
        assert stock_service.replay_stock(product_id).consistent
