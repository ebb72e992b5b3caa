# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/partspos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Insert demo customers, products and lots (skips if products exist).
#
# Ledger maintenance:
# - python -m flask ledger reconcile-totals [--fix]
#   Compare quotation/credit header totals with their lines; --fix rewrites drifted headers.
# - python -m flask ledger verify-lots
#   Audit lot status, lot movements, product stock and default costs. Exits 1 on issues.

from datetime import timedelta

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Customer, Lot, Product
from .models.inventory import LOT_STATUS_ACTIVE
from .services.fifo_service import fifo_head_cost
from .services.ledger_service import verify_lots
from .services.line_item_service import reconcile_all_totals
from .time_utils import utcnow


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Existing data is untouched."""
    db.create_all()
    click.echo("PASS Database tables ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for sample data.")


# name, document number, phone, credit enabled
DEMO_CUSTOMERS = [
    ("Rosa Quispe", "45871236", "987654321", False),
    ("Taller Mecanico El Rapido", "20481234567", "014561234", True),
]

# code, name, brand, min price, default price, lots as (quantity, unit cost, days ago)
DEMO_PRODUCTS = [
    ("FLT-001", "Oil filter", "Bosch", 1800, 2500, [(10, 1200, 30), (15, 1350, 5)]),
    ("BRK-010", "Brake pads (front)", "Brembo", 9000, 12000, [(4, 7000, 60), (6, 7400, 20), (8, 7600, 2)]),
    ("SPK-220", "Spark plug", "NGK", 900, 1500, [(40, 600, 10)]),
]


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Insert demo customers, products and FIFO lots."""
    if db.session.query(Product).count():
        click.echo("WARN  Products already exist, skipping demo seed.")
        return

    for name, document_number, phone, credit_enabled in DEMO_CUSTOMERS:
        db.session.add(Customer(
            name=name, document_number=document_number, phone=phone, credit_enabled=credit_enabled
        ))

    now = utcnow()
    for code, name, brand, min_price, default_price, lot_specs in DEMO_PRODUCTS:
        product = Product(
            code=code,
            name=name,
            brand=brand,
            min_price_cents=min_price,
            default_price_cents=default_price,
            stock_on_hand=sum(qty for qty, _, _ in lot_specs),
        )
        db.session.add(product)
        db.session.flush()

        lots = []
        for i, (qty, cost, days_ago) in enumerate(lot_specs, start=1):
            lot = Lot(
                product_id=product.id,
                lot_number=f"{code}-L{i:02d}",
                received_at=now - timedelta(days=days_ago),
                quantity_received=qty,
                quantity_remaining=qty,
                unit_cost_cents=cost,
                status=LOT_STATUS_ACTIVE,
            )
            db.session.add(lot)
            lots.append(lot)
        product.default_cost_cents = fifo_head_cost(lots)
        click.echo(f"PASS Product {code} with {len(lots)} lot(s), stock {product.stock_on_hand}")

    db.session.commit()
    click.echo("DONE Demo data seeded.")


@click.group('ledger')
def ledger_group():
    """Ledger consistency commands."""


@ledger_group.command('reconcile-totals')
@click.option('--fix', is_flag=True, help='Rewrite drifted header totals from their lines')
@with_appcontext
def reconcile_totals_command(fix):
    """Compare quotation and credit header totals with Σ lines."""
    drifted = reconcile_all_totals(fix=fix)
    if not drifted:
        click.echo("PASS All header totals match their lines.")
        return

    for report in drifted:
        status = "FIXED" if report["fixed"] else "DRIFT"
        click.echo(
            f"{status} {report['kind']} {report['document_number']} (id {report['id']}): "
            f"total {report['stored_total_cents']} vs {report['computed_total_cents']}, "
            f"margin {report['stored_margin_total_cents']} vs {report['computed_margin_total_cents']}"
        )
    if not fix:
        raise click.ClickException(f"{len(drifted)} document(s) with drifted totals")


@ledger_group.command('verify-lots')
@with_appcontext
def verify_lots_command():
    """Audit lots, movements and product stock."""
    issues = verify_lots()
    if not issues:
        click.echo("PASS Lots, movements and product stock are consistent.")
        return

    for issue in issues:
        detail = ", ".join(f"{k}={v}" for k, v in issue.items() if k != "check")
        click.echo(f"FAIL {issue['check']}: {detail}")
    raise click.ClickException(f"{len(issues)} ledger issue(s) found")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
