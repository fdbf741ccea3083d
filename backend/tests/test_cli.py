# Overview: Pytest coverage for the flask CLI groups (ledger, settlements).

from sillon.models import Product
from sillon.services import settlement_service
from sillon.time_utils import utcnow


class TestLedgerCommands:
    def test_verify_clean_ledger(self, app, db_session, make_product):
        make_product(stock=5)
        make_product(stock=0)

        result = app.test_cli_runner().invoke(args=["ledger", "verify"])

        assert result.exit_code == 0
        assert "Checked 2 product(s), 0 inconsistent." in result.output

    def test_verify_reports_drift(self, app, db_session, make_product):
        product = make_product(stock=5)
        db_session.query(Product).filter_by(id=product.id).update({"stock": 9})
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["ledger", "verify"])

        assert result.exit_code == 1
        assert f"FAIL product {product.id}" in result.output

    def test_low_stock(self, app, db_session, make_product):
        make_product(stock=1, stock_threshold=2, title="Rare Pressing")

        result = app.test_cli_runner().invoke(args=["ledger", "low-stock"])

        assert "Rare Pressing" in result.output


class TestSettlementCommands:
    def test_report(self, app, db_session, make_supplier, make_product, make_order):
        supplier = make_supplier(name="Dépôt Nord", type="consignment", commission_rate="0.30")
        product = make_product(stock=3, selling_price_cents=10000, supplier=supplier)
        make_order([(product, 1)])
        today = utcnow().date().isoformat()

        result = app.test_cli_runner().invoke(args=["settlements", "report", "--start", today, "--end", today])

        assert result.exit_code == 0
        assert "Dépôt Nord" in result.output
        assert "commission=30.00" in result.output

    def test_report_rejects_bad_period(self, app, db_session):
        result = app.test_cli_runner().invoke(
            args=["settlements", "report", "--start", "2024-03-31", "--end", "2024-03-01"]
        )
        assert result.exit_code != 0

    def test_payouts_listing(self, app, db_session, make_supplier):
        supplier = make_supplier()
        settlement_service.create_payout(supplier.id, "2024-03-01", "2024-03-31", payout_cents=7000)

        result = app.test_cli_runner().invoke(args=["settlements", "payouts", "--status", "pending"])

        assert result.exit_code == 0
        assert "Pending 70.00 / Paid 0.00" in result.output
