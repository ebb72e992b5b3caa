"""
Manual stock withdrawal tests: FIFO consumption, ledger rows, rollback on
shortfall, and the HTTP surface.
"""

import pytest

from partspos.errors import InsufficientStockError, NotFoundError
from partspos.extensions import db
from partspos.models import LotMovement, Product, StockWithdrawal, StockWithdrawalLine
from partspos.models.inventory import LOT_STATUS_DEPLETED
from partspos.services import ledger_service, withdrawal_service
from partspos.validation import ValidationError


def test_withdrawal_consumes_lots_fifo(make_product, lots_of):
    product = make_product([(3, 100), (5, 200)])
    first, second = lots_of(product.id)

    result = withdrawal_service.withdraw_stock(product.id, 4, "water damage", actor="storekeeper")

    assert result.kind == "WITHDRAWAL"
    assert result.sale_id is None

    first, second = lots_of(product.id)
    assert (first.quantity_remaining, first.status) == (0, LOT_STATUS_DEPLETED)
    assert second.quantity_remaining == 4

    refreshed = db.session.get(Product, product.id)
    assert refreshed.stock_on_hand == 4
    assert refreshed.default_cost_cents == 200

    withdrawal = db.session.get(StockWithdrawal, result.document_id)
    assert withdrawal.document_number == "SAL-000001"
    assert withdrawal.status == "CONFIRMED"
    assert withdrawal.reason == "water damage"
    assert withdrawal.cost_total_cents == 3 * 100 + 1 * 200
    assert (withdrawal.total_cents, withdrawal.margin_total_cents) == (0, -500)
    assert [(l.lot_id, l.quantity, l.unit_cost_cents) for l in withdrawal.lines] == [
        (first.id, 3, 100),
        (second.id, 1, 200),
    ]


def test_withdrawal_writes_movements(make_product, lots_of):
    product = make_product([(3, 100), (5, 200)])
    first, second = lots_of(product.id)

    result = withdrawal_service.withdraw_stock(product.id, 4, "internal use")

    movements = db.session.query(LotMovement).order_by(LotMovement.id).all()
    assert [(m.movement_type, m.lot_id, m.quantity, m.lot_remaining_after) for m in movements] == [
        ("WITHDRAWAL", first.id, 3, 0),
        ("WITHDRAWAL", second.id, 1, 4),
    ]
    assert {m.withdrawal_id for m in movements} == {result.document_id}
    assert {m.quotation_id for m in movements} == {None}
    assert ledger_service.verify_lots() == []


def test_shortfall_leaves_nothing_behind(make_product, lots_of):
    product = make_product([(3, 100)])

    with pytest.raises(InsufficientStockError) as excinfo:
        withdrawal_service.withdraw_stock(product.id, 5, "audit adjustment")

    assert excinfo.value.details["shortfall"] == 2
    assert db.session.query(StockWithdrawal).count() == 0
    assert db.session.query(StockWithdrawalLine).count() == 0
    assert db.session.query(LotMovement).count() == 0
    assert lots_of(product.id)[0].quantity_remaining == 3

    # The failed attempt did not burn a document number
    result = withdrawal_service.withdraw_stock(product.id, 1, "audit adjustment")
    assert db.session.get(StockWithdrawal, result.document_id).document_number == "SAL-000001"


@pytest.mark.parametrize("quantity,reason", [
    (0, "broken"),
    (-1, "broken"),
    ("2.5", "broken"),
    (1, None),
    (1, "   "),
])
def test_invalid_withdrawals_rejected(make_product, quantity, reason):
    product = make_product([(3, 100)])

    with pytest.raises(ValidationError):
        withdrawal_service.withdraw_stock(product.id, quantity, reason)
    assert db.session.get(Product, product.id).stock_on_hand == 3


def test_unknown_product(db_session):
    with pytest.raises(NotFoundError):
        withdrawal_service.withdraw_stock(404, 1, "lost")
    assert db.session.query(StockWithdrawal).count() == 0


def test_withdrawals_over_http(client, make_product, lots_of):
    product = make_product([(2, 100), (4, 250)])
    other = make_product([(1, 100)])

    response = client.post(
        "/api/withdrawals",
        json={"product_id": product.id, "quantity": 3, "reason": "display sample", "actor": "ana"},
    )
    assert response.status_code == 201
    body = response.get_json()
    assert body["withdrawal"]["cost_total_cents"] == 2 * 100 + 1 * 250
    assert [l["quantity"] for l in body["lines"]] == [2, 1]
    assert len(body["confirmation"]["movements"]) == 2
    withdrawal_id = body["withdrawal"]["id"]

    client.post("/api/withdrawals", json={"product_id": other.id, "quantity": 1, "reason": "lost"})

    response = client.get(f"/api/withdrawals?product_id={product.id}")
    assert [w["id"] for w in response.get_json()["withdrawals"]] == [withdrawal_id]

    response = client.get(f"/api/withdrawals/{withdrawal_id}")
    assert response.status_code == 200
    assert response.get_json()["withdrawal"]["reason"] == "display sample"

    response = client.post(
        "/api/withdrawals",
        json={"product_id": product.id, "quantity": 10, "reason": "display sample"},
    )
    assert response.status_code == 409

    assert client.post("/api/withdrawals", json={"product_id": product.id, "quantity": 1}).status_code == 400
    assert client.get("/api/withdrawals/987654").status_code == 404
    assert sum(lot.quantity_remaining for lot in lots_of(product.id)) == 3
