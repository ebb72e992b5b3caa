"""
FIFO selector tests.

Lots are consumed oldest intake first; a shortfall raises before anything
is written.
"""

import random
from datetime import datetime
from types import SimpleNamespace

import pytest

from partspos.errors import InsufficientStockError, NotFoundError
from partspos.extensions import db
from partspos.models.inventory import LOT_STATUS_ACTIVE, LOT_STATUS_DEPLETED
from partspos.services import fifo_service
from partspos.validation import ValidationError


def test_single_lot_fit_uses_oldest_lot(make_product, lots_of):
    product = make_product([(5, 100), (5, 200)])
    first, _ = lots_of(product.id)

    allocations = fifo_service.select_lots(product.id, 3)

    assert [(a.lot_id, a.quantity, a.unit_cost_cents) for a in allocations] == [(first.id, 3, 100)]


def test_split_across_lots_in_fifo_order(make_product, lots_of):
    product = make_product([(5, 100), (5, 200), (5, 300)])
    first, second, _ = lots_of(product.id)

    allocations = fifo_service.select_lots(product.id, 7)

    assert [(a.lot_id, a.quantity) for a in allocations] == [(first.id, 5), (second.id, 2)]
    assert sum(a.quantity for a in allocations) == 7


def test_order_follows_received_at_not_insertion(make_product, lots_of):
    product = make_product([
        (5, 300, datetime(2026, 3, 1)),
        (5, 100, datetime(2026, 1, 1)),
    ])
    newer, older = lots_of(product.id)

    allocations = fifo_service.select_lots(product.id, 6)

    assert [(a.lot_id, a.quantity) for a in allocations] == [(older.id, 5), (newer.id, 1)]


def test_same_received_at_breaks_tie_on_id(make_product, lots_of):
    received = datetime(2026, 2, 1, 12, 0, 0)
    product = make_product([(2, 100, received), (2, 200, received)])
    first, second = lots_of(product.id)

    allocations = fifo_service.select_lots(product.id, 3)

    assert [a.lot_id for a in allocations] == [first.id, second.id]


def test_shortfall_raises_with_counts(make_product):
    product = make_product([(4, 100), (6, 200)])

    with pytest.raises(InsufficientStockError) as excinfo:
        fifo_service.select_lots(product.id, 12)

    err = excinfo.value
    assert err.requested == 12
    assert err.available == 10
    assert err.shortfall == 2
    assert err.details["product_id"] == product.id


def test_consumed_units_are_skipped(make_product, lots_of):
    product = make_product([(5, 100), (5, 200)])
    first, second = lots_of(product.id)

    allocations = fifo_service.select_lots(product.id, 3, consumed={first.id: 4})

    assert [(a.lot_id, a.quantity) for a in allocations] == [(first.id, 1), (second.id, 2)]


def test_depleted_lots_are_not_available(make_product, lots_of, db_session):
    product = make_product([(5, 100), (5, 200)])
    first, second = lots_of(product.id)
    first.quantity_remaining = 0
    first.status = LOT_STATUS_DEPLETED
    db_session.commit()

    assert [lot.id for lot in fifo_service.get_available_lots(product.id)] == [second.id]
    assert fifo_service.select_lots(product.id, 5)[0].lot_id == second.id


@pytest.mark.parametrize("quantity", [0, -1, "1.5", 2.0, True, None, "abc"])
def test_invalid_quantity_rejected(make_product, quantity):
    product = make_product([(5, 100)])

    with pytest.raises(ValidationError):
        fifo_service.select_lots(product.id, quantity)


def test_unknown_product(db_session):
    with pytest.raises(NotFoundError):
        fifo_service.select_lots(999999, 1)


def test_select_lots_is_read_only(make_product, lots_of):
    product = make_product([(5, 100)])

    fifo_service.select_lots(product.id, 5)
    db.session.rollback()

    assert [lot.quantity_remaining for lot in lots_of(product.id)] == [5]


def test_fifo_head_cost_skips_consumed_lots():
    lots = [
        SimpleNamespace(id=1, status=LOT_STATUS_ACTIVE, quantity_remaining=3, unit_cost_cents=100),
        SimpleNamespace(id=2, status=LOT_STATUS_ACTIVE, quantity_remaining=3, unit_cost_cents=250),
    ]

    assert fifo_service.fifo_head_cost(lots) == 100
    assert fifo_service.fifo_head_cost(lots, {1: 3}) == 250
    assert fifo_service.fifo_head_cost(lots, {1: 3, 2: 3}) == 0
    assert fifo_service.fifo_head_cost([]) == 0


def test_allocate_partitions_random_queues():
    rng = random.Random(20261018)

    for _ in range(200):
        lots = [
            SimpleNamespace(
                id=i + 1,
                lot_number=f"L{i + 1}",
                received_at=None,
                status=LOT_STATUS_ACTIVE,
                quantity_remaining=rng.randint(1, 9),
                unit_cost_cents=rng.randint(50, 500),
            )
            for i in range(rng.randint(1, 6))
        ]
        total = sum(lot.quantity_remaining for lot in lots)
        quantity = rng.randint(1, total)

        allocations = fifo_service.allocate(1, lots, quantity)

        assert sum(a.quantity for a in allocations) == quantity
        # Touched lots are a prefix of the queue; all but the last are drained
        assert [a.lot_id for a in allocations] == [lot.id for lot in lots[:len(allocations)]]
        for allocation, lot in zip(allocations[:-1], lots):
            assert allocation.quantity == lot.quantity_remaining
        assert 0 < allocations[-1].quantity <= lots[len(allocations) - 1].quantity_remaining

        with pytest.raises(InsufficientStockError):
            fifo_service.allocate(1, lots, total + 1)
