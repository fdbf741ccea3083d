# Overview: Flask CLI command groups for bootstrap, ledger checks and settlement reports.

# backend/sillon/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create missing tables (idempotent). Use `flask db upgrade` where migrations are managed.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock ledger:
# - python -m flask ledger verify [--product-id 12]
#   Replay every product's movements and compare with the stored stock. Exits 1 on mismatch.
# - python -m flask ledger low-stock [--threshold 2]
#   List products at or below their stock threshold.
#
# Settlements:
# - python -m flask settlements report --start 2024-03-01 --end 2024-03-31
#   Per-supplier gross, commission and payout for the period.
# - python -m flask settlements payouts [--status pending]
#   List payouts with pending/paid totals.

import click
from flask.cli import with_appcontext

from .errors import SettlementError
from .extensions import db
from .services import settlement_service, stock_service


def _cents(value: int) -> str:
    sign = "-" if value < 0 else ""
    value = abs(value)
    return f"{sign}{value // 100}.{value % 100:02d}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, stock ledger included!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection commands."""


@ledger_group.command('verify')
@click.option('--product-id', type=int, default=None, help='Only check this product')
@with_appcontext
def verify_ledger(product_id):
    """Replay stock movements and report products whose stock does not match."""
    try:
        if product_id is not None:
            reports = [stock_service.replay_stock(product_id)]
        else:
            reports = stock_service.verify_all_products()
    except SettlementError as e:
        raise click.ClickException(e.message)

    bad = [r for r in reports if not r.consistent]
    for report in bad:
        click.echo(f"FAIL product {report.product_id}:")
        for problem in report.problems:
            click.echo(f"  - {problem}")

    click.echo(f"Checked {len(reports)} product(s), {len(bad)} inconsistent.")
    if bad:
        raise SystemExit(1)


@ledger_group.command('low-stock')
@click.option('--threshold', type=int, default=None, help='Override every product threshold')
@with_appcontext
def low_stock(threshold):
    """List products at or below their stock threshold."""
    products = stock_service.list_low_stock(threshold)
    if not products:
        click.echo("No products below threshold.")
        return
    for p in products:
        click.echo(f"{p.sku:<16} {p.title[:40]:<40} stock={p.stock} threshold={p.stock_threshold}")


@click.group('settlements')
def settlements_group():
    """Supplier settlement reports and payouts."""


@settlements_group.command('report')
@click.option('--start', required=True, help='Period start (YYYY-MM-DD, inclusive)')
@click.option('--end', required=True, help='Period end (YYYY-MM-DD, inclusive)')
@with_appcontext
def settlements_report(start, end):
    """Per-supplier settlement for a period."""
    try:
        report = settlement_service.supplier_sales_report(start, end)
    except SettlementError as e:
        raise click.ClickException(e.message)

    click.echo(f"Supplier sales {report['period_start']} -> {report['period_end']}")
    for row in report["suppliers"]:
        click.echo(
            f"  {row['supplier_name'] or row['supplier_id']:<30} {row['supplier_type']:<12} "
            f"gross={_cents(row['gross_sales_cents'])} "
            f"commission={_cents(row['commission_cents'])} "
            f"payout={_cents(row['payout_cents'])}"
        )
    totals = report["totals"]
    click.echo(
        f"TOTAL gross={_cents(totals['gross_sales_cents'])} "
        f"commission={_cents(totals['commission_cents'])} "
        f"payout={_cents(totals['payout_cents'])} "
        f"margin={_cents(totals['our_margin_cents'])}"
    )


@settlements_group.command('payouts')
@click.option('--status', type=click.Choice(['pending', 'paid']), default=None)
@with_appcontext
def list_payouts(status):
    """List supplier payouts."""
    payouts = settlement_service.list_payouts(status=status)
    for p in payouts:
        click.echo(
            f"#{p.id:<5} supplier={p.supplier_id:<5} {p.period_start} -> {p.period_end} "
            f"{_cents(p.payout_cents):>10} {p.status:<8} {p.invoice_number or ''}"
        )
    totals = settlement_service.payout_totals()
    click.echo(f"Pending {_cents(totals['pending_cents'])} / Paid {_cents(totals['paid_cents'])}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(settlements_group)
