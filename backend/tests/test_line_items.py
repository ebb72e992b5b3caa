"""
Line-item materialization and header accumulator tests.
"""

import random

import pytest

from partspos.errors import InsufficientStockError, LifecycleError, NotFoundError
from partspos.models import Quotation, QuotationLine
from partspos.services import document_service, lifecycle_service, line_item_service
from partspos.services.fifo_service import LotAllocation
from partspos.validation import ValidationError


def _lines(quotation_id):
    return document_service.load_lines("QUOTATION", quotation_id)


def _assert_header_matches_lines(quotation_id):
    quotation = document_service.load_document("QUOTATION", quotation_id)
    lines = _lines(quotation_id)
    assert quotation.total_cents == sum(line.subtotal_cents for line in lines)
    assert quotation.margin_total_cents == sum(line.margin_total_cents for line in lines)


def test_single_lot_fit_creates_one_line(make_product, quotation_with, lots_of):
    product = make_product([(10, 300)])
    quotation = quotation_with((product, 4, 500))

    lines = _lines(quotation.id)
    assert len(lines) == 1
    line = lines[0]
    assert line.lot_id == lots_of(product.id)[0].id
    assert (line.quantity, line.unit_price_cents, line.subtotal_cents) == (4, 500, 2000)
    assert (line.unit_cost_cents, line.unit_margin_cents, line.margin_total_cents) == (300, 200, 800)

    header = document_service.load_document("QUOTATION", quotation.id)
    assert header.total_cents == 2000
    assert header.margin_total_cents == 800


def test_split_lines_share_price_and_carry_lot_cost(make_product, quotation_with, lots_of):
    product = make_product([(5, 100), (5, 200)])
    first, second = lots_of(product.id)

    quotation = quotation_with((product, 7, 500))

    lines = _lines(quotation.id)
    assert [(l.lot_id, l.quantity, l.unit_cost_cents) for l in lines] == [(first.id, 5, 100), (second.id, 2, 200)]
    assert {l.unit_price_cents for l in lines} == {500}
    assert sum(l.quantity for l in lines) == 7

    header = document_service.load_document("QUOTATION", quotation.id)
    assert header.total_cents == 3500
    assert header.margin_total_cents == 5 * 400 + 2 * 300


def test_second_add_continues_down_the_queue(make_product, quotation_with, lots_of):
    product = make_product([(5, 100), (5, 200)])
    first, second = lots_of(product.id)

    quotation = quotation_with((product, 4, 500), (product, 3, 500))

    lines = _lines(quotation.id)
    assert [(l.lot_id, l.quantity) for l in lines] == [(first.id, 4), (first.id, 1), (second.id, 2)]


def test_add_beyond_stock_writes_nothing(make_product, quotation_with):
    product = make_product([(3, 100)])
    quotation = quotation_with()

    with pytest.raises(InsufficientStockError) as excinfo:
        line_item_service.add_product("QUOTATION", quotation.id, product.id, 5, 500)

    assert excinfo.value.shortfall == 2
    assert _lines(quotation.id) == []
    assert document_service.load_document("QUOTATION", quotation.id).total_cents == 0


def test_price_defaults_to_product_default(make_product, quotation_with):
    product = make_product([(5, 100)], default_price_cents=750)
    quotation = quotation_with((product, 2))

    assert _lines(quotation.id)[0].unit_price_cents == 750


def test_price_below_minimum_rejected(make_product, quotation_with):
    product = make_product([(5, 100)], min_price_cents=400)
    quotation = quotation_with()

    with pytest.raises(ValidationError):
        line_item_service.add_product("QUOTATION", quotation.id, product.id, 1, 399)

    lines = line_item_service.add_product("QUOTATION", quotation.id, product.id, 1, 400)
    assert lines[0].unit_price_cents == 400


def test_inactive_product_rejected(make_product, quotation_with):
    product = make_product([(5, 100)], is_active=False)
    quotation = quotation_with()

    with pytest.raises(ValidationError):
        line_item_service.add_product("QUOTATION", quotation.id, product.id, 1, 500)


def test_unknown_document_and_product(make_product, quotation_with):
    product = make_product([(5, 100)])
    quotation = quotation_with()

    with pytest.raises(NotFoundError):
        line_item_service.add_product("QUOTATION", 424242, product.id, 1, 500)
    with pytest.raises(NotFoundError):
        line_item_service.add_product("QUOTATION", quotation.id, 424242, 1, 500)


def test_update_line_applies_delta(make_product, quotation_with):
    product = make_product([(10, 300)])
    quotation = quotation_with((product, 2, 500))
    line = _lines(quotation.id)[0]

    line_item_service.update_line("QUOTATION", quotation.id, line.id, quantity=5, unit_price_cents=600)

    header = document_service.load_document("QUOTATION", quotation.id)
    assert header.total_cents == 3000
    assert header.margin_total_cents == 5 * 300
    _assert_header_matches_lines(quotation.id)


def test_update_line_cannot_exceed_bound_lot(make_product, quotation_with, lots_of):
    product = make_product([(5, 100), (5, 200)])
    quotation = quotation_with((product, 3, 500))
    line = _lines(quotation.id)[0]

    with pytest.raises(InsufficientStockError) as excinfo:
        line_item_service.update_line("QUOTATION", quotation.id, line.id, quantity=6)

    assert excinfo.value.lot_id == lots_of(product.id)[0].id
    assert excinfo.value.available == 5
    assert _lines(quotation.id)[0].quantity == 3


def test_update_line_counts_other_lines_on_the_same_lot(make_product, quotation_with):
    product = make_product([(5, 100)])
    quotation = quotation_with((product, 2, 500), (product, 2, 500))
    first = _lines(quotation.id)[0]

    with pytest.raises(InsufficientStockError):
        line_item_service.update_line("QUOTATION", quotation.id, first.id, quantity=4)

    line_item_service.update_line("QUOTATION", quotation.id, first.id, quantity=3)
    _assert_header_matches_lines(quotation.id)


def test_update_requires_a_change(make_product, quotation_with):
    product = make_product([(5, 100)])
    quotation = quotation_with((product, 1, 500))
    line = _lines(quotation.id)[0]

    with pytest.raises(ValidationError):
        line_item_service.update_line("QUOTATION", quotation.id, line.id)


def test_remove_line_subtracts_amounts(make_product, quotation_with):
    product = make_product([(5, 100), (5, 200)])
    quotation = quotation_with((product, 7, 500))
    first, second = _lines(quotation.id)

    line_item_service.remove_line("QUOTATION", quotation.id, first.id)

    header = document_service.load_document("QUOTATION", quotation.id)
    assert header.total_cents == 1000
    assert header.margin_total_cents == 600
    assert [l.id for l in _lines(quotation.id)] == [second.id]


def test_line_of_another_document_not_found(make_product, quotation_with):
    product = make_product([(5, 100)])
    q1 = quotation_with((product, 1, 500))
    q2 = quotation_with()
    line = _lines(q1.id)[0]

    with pytest.raises(NotFoundError):
        line_item_service.remove_line("QUOTATION", q2.id, line.id)


def test_cancelled_document_is_not_editable(make_product, quotation_with):
    product = make_product([(5, 100)])
    quotation = quotation_with((product, 1, 500))
    lifecycle_service.save_quotation(quotation.id)
    lifecycle_service.cancel_quotation(quotation.id, reason="customer left")

    with pytest.raises(LifecycleError):
        line_item_service.add_product("QUOTATION", quotation.id, product.id, 1, 500)
    with pytest.raises(LifecycleError):
        line_item_service.remove_line("QUOTATION", quotation.id, _lines(quotation.id)[0].id)


def test_materialize_rejects_mismatched_allocation(make_product):
    product = make_product([(5, 100)])
    allocations = [LotAllocation(lot_id=1, product_id=product.id, lot_number="L01",
                                 received_at=None, unit_cost_cents=100, quantity=2)]

    with pytest.raises(ValidationError):
        line_item_service.materialize(product, 3, 500, allocations, QuotationLine, quotation_id=1)


def test_reconcile_totals_reports_and_fixes_drift(make_product, quotation_with, db_session):
    product = make_product([(5, 100)])
    quotation = quotation_with((product, 2, 500))

    clean = line_item_service.reconcile_totals("QUOTATION", quotation.id)
    assert clean["drift"] is False

    header = db_session.get(Quotation, quotation.id)
    header.total_cents += 123
    db_session.commit()

    report = line_item_service.reconcile_totals("QUOTATION", quotation.id)
    assert report["drift"] is True
    assert report["fixed"] is False

    fixed = line_item_service.reconcile_totals("QUOTATION", quotation.id, fix=True)
    assert fixed["fixed"] is True
    _assert_header_matches_lines(quotation.id)
    assert line_item_service.reconcile_all_totals() == []


def test_header_matches_lines_under_random_edits(make_product, quotation_with):
    rng = random.Random(7)
    products = [
        make_product([(20, 100), (20, 150), (20, 220)]),
        make_product([(15, 80), (30, 95)]),
        make_product([(50, 40)]),
    ]
    quotation = quotation_with()

    for _ in range(60):
        lines = _lines(quotation.id)
        action = rng.choice(["add", "add", "update", "remove"]) if lines else "add"
        try:
            if action == "add":
                product = rng.choice(products)
                line_item_service.add_product(
                    "QUOTATION", quotation.id, product.id, rng.randint(1, 12), rng.randint(300, 900)
                )
            elif action == "update":
                line = rng.choice(lines)
                line_item_service.update_line(
                    "QUOTATION", quotation.id, line.id,
                    quantity=rng.randint(1, 8),
                    unit_price_cents=rng.randint(300, 900),
                )
            else:
                line_item_service.remove_line("QUOTATION", quotation.id, rng.choice(lines).id)
        except InsufficientStockError:
            pass

        _assert_header_matches_lines(quotation.id)

    assert line_item_service.reconcile_totals("QUOTATION", quotation.id)["drift"] is False
