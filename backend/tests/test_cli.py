from partspos.extensions import db
from partspos.models import Customer, Lot, Product, Quotation
from partspos.services import confirmation_service


def test_seed_demo_is_consistent_and_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "seed-demo"])
    assert result.exit_code == 0, result.output
    assert db.session.query(Product).count() == 3
    assert db.session.query(Customer).count() == 2

    brake_pads = db.session.query(Product).filter_by(code="BRK-010").one()
    assert brake_pads.stock_on_hand == 18
    assert brake_pads.default_cost_cents == 7000

    result = runner.invoke(args=["system", "seed-demo"])
    assert "skipping" in result.output
    assert db.session.query(Lot).count() == 6

    result = runner.invoke(args=["ledger", "verify-lots"])
    assert result.exit_code == 0, result.output
    assert "PASS" in result.output


def test_init_db_is_idempotent(app, db_session):
    result = app.test_cli_runner().invoke(args=["system", "init-db"])
    assert result.exit_code == 0
    assert "PASS" in result.output


def test_reset_db_asks_for_confirmation(app, make_product):
    make_product([(1, 100)])

    result = app.test_cli_runner().invoke(args=["system", "reset-db"], input="n\n")

    assert result.exit_code == 1
    assert db.session.query(Product).count() == 1


def test_verify_lots_after_confirmations(app, make_product, quotation_with):
    product = make_product([(3, 100), (4, 250)])
    quotation = quotation_with((product, 5, 400))
    confirmation_service.confirm_quotation(quotation.id)

    result = app.test_cli_runner().invoke(args=["ledger", "verify-lots"])
    assert result.exit_code == 0, result.output


def test_verify_lots_flags_stock_mismatch(app, make_product, db_session):
    product = make_product([(3, 100)])
    db_session.get(Product, product.id).stock_on_hand = 9
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["ledger", "verify-lots"])

    assert result.exit_code == 1
    assert "product_stock" in result.output


def test_reconcile_totals_reports_then_fixes(app, make_product, quotation_with, db_session):
    product = make_product([(3, 100)])
    quotation = quotation_with((product, 2, 400))
    db_session.get(Quotation, quotation.id).margin_total_cents = 0
    db_session.commit()
    runner = app.test_cli_runner()

    result = runner.invoke(args=["ledger", "reconcile-totals"])
    assert result.exit_code == 1
    assert "DRIFT" in result.output

    result = runner.invoke(args=["ledger", "reconcile-totals", "--fix"])
    assert result.exit_code == 0
    assert "FIXED" in result.output
    assert db.session.get(Quotation, quotation.id).margin_total_cents == 600

    result = runner.invoke(args=["ledger", "reconcile-totals"])
    assert result.exit_code == 0
    assert "PASS" in result.output
