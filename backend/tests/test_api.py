"""
HTTP surface tests: status codes and error payloads.
"""

from partspos.extensions import db
from partspos.models import Quotation


def test_health(client, db_session):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json()["checks"]["database"]["status"] == "healthy"


def test_quotation_flow_over_http(client, make_product, lots_of):
    product = make_product([(5, 100), (5, 200)])
    first, second = lots_of(product.id)

    response = client.post("/api/quotations/", json={"created_by": "ana", "vehicle_plate": "XYZ-987"})
    assert response.status_code == 201
    quotation_id = response.get_json()["quotation"]["id"]

    response = client.post(
        f"/api/quotations/{quotation_id}/lines",
        json={"product_id": product.id, "quantity": 7, "unit_price_cents": 500},
    )
    assert response.status_code == 201
    body = response.get_json()
    assert [l["lot_id"] for l in body["added_lines"]] == [first.id, second.id]
    assert body["quotation"]["total_cents"] == 3500

    response = client.post(f"/api/quotations/{quotation_id}/save", json={"payment_method": "TRANSFER"})
    assert response.status_code == 200
    assert response.get_json()["quotation"]["status"] == "PENDING"

    response = client.post(f"/api/quotations/{quotation_id}/confirm", json={"actor": "ana"})
    assert response.status_code == 200
    body = response.get_json()
    assert body["quotation"]["status"] == "CONFIRMED"
    assert body["sale"]["total_cents"] == 3500
    assert [p["method"] for p in body["sale_payments"]] == ["TRANSFER"]
    assert len(body["confirmation"]["movements"]) == 2

    response = client.get(f"/api/movements?product_id={product.id}")
    assert response.status_code == 200
    assert sorted(m["quantity"] for m in response.get_json()["movements"]) == [2, 5]

    response = client.post(f"/api/quotations/{quotation_id}/confirm")
    assert response.status_code == 409


def test_edit_and_remove_lines_over_http(client, make_product, quotation_with):
    product = make_product([(10, 100)])
    quotation = quotation_with((product, 2, 500))
    line_id = client.get(f"/api/quotations/{quotation.id}").get_json()["lines"][0]["id"]

    response = client.patch(f"/api/quotations/{quotation.id}/lines/{line_id}", json={"quantity": 4})
    assert response.status_code == 200
    assert response.get_json()["quotation"]["total_cents"] == 2000

    response = client.delete(f"/api/quotations/{quotation.id}/lines/{line_id}")
    assert response.status_code == 200
    assert response.get_json()["lines"] == []
    assert response.get_json()["quotation"]["total_cents"] == 0


def test_insufficient_stock_is_409_with_details(client, make_product, quotation_with):
    product = make_product([(3, 100)])
    quotation = quotation_with()

    response = client.post(
        f"/api/quotations/{quotation.id}/lines",
        json={"product_id": product.id, "quantity": 5, "unit_price_cents": 500},
    )

    assert response.status_code == 409
    details = response.get_json()["details"]
    assert (details["requested"], details["available"], details["shortfall"]) == (5, 3, 2)


def test_validation_and_not_found_codes(client, make_product, quotation_with):
    product = make_product([(3, 100)])
    quotation = quotation_with()

    response = client.post(
        f"/api/quotations/{quotation.id}/lines",
        json={"product_id": product.id, "quantity": "2.5"},
    )
    assert response.status_code == 400

    assert client.get("/api/quotations/987654").status_code == 404
    assert client.get("/api/products/987654/lots").status_code == 404
    assert client.post("/api/quotations/987654/confirm").status_code == 404


def test_cancel_draft_is_409(client, make_product, quotation_with):
    product = make_product([(3, 100)])
    quotation = quotation_with((product, 1, 500))

    response = client.post(f"/api/quotations/{quotation.id}/cancel", json={"reason": "test"})

    assert response.status_code == 409
    assert db.session.get(Quotation, quotation.id).status == "DRAFT"


def test_product_lots_and_allocation_preview(client, make_product, lots_of):
    product = make_product([(2, 100), (4, 200)])
    first, second = lots_of(product.id)

    lots = client.get(f"/api/products/{product.id}/lots").get_json()["lots"]
    assert [lot["id"] for lot in lots] == [first.id, second.id]

    response = client.get(f"/api/products/{product.id}/allocation?quantity=3")
    assert response.status_code == 200
    assert [(a["lot_id"], a["quantity"]) for a in response.get_json()["allocations"]] == [
        (first.id, 2),
        (second.id, 1),
    ]

    assert client.get(f"/api/products/{product.id}/allocation?quantity=7").status_code == 409
    assert client.get(f"/api/products/{product.id}/allocation").status_code == 400


def test_credit_and_payments_over_http(client, make_product, make_customer):
    product = make_product([(10, 300)])
    customer = make_customer()

    response = client.post("/api/credits/", json={"customer_id": customer.id, "due_date": "2026-11-30"})
    assert response.status_code == 201
    credit = response.get_json()["credit"]
    assert credit["due_date"] == "2026-11-30"

    client.post(
        f"/api/credits/{credit['id']}/lines",
        json={"product_id": product.id, "quantity": 2, "unit_price_cents": 5000},
    )
    response = client.post(f"/api/credits/{credit['id']}/confirm")
    assert response.status_code == 200

    balance = client.get(f"/api/customers/{customer.id}/balance").get_json()
    assert balance["outstanding_cents"] == 10000

    response = client.post(f"/api/customers/{customer.id}/payments", json={"amount_cents": 4000})
    assert response.status_code == 201
    payment_id = response.get_json()["payment"]["id"]
    assert response.get_json()["outstanding_cents"] == 6000

    response = client.post(f"/api/payments/{payment_id}/cancel")
    assert response.status_code == 200
    assert response.get_json()["outstanding_cents"] == 10000

    response = client.post(f"/api/customers/{customer.id}/payments", json={"amount_cents": 20000})
    assert response.status_code == 400


def test_credit_requires_valid_due_date(client, make_customer):
    customer = make_customer()

    response = client.post("/api/credits/", json={"customer_id": customer.id, "due_date": "30/11/2026"})

    assert response.status_code == 400


def test_unexpected_error_is_500(client, make_product, quotation_with, monkeypatch):
    from partspos.services import confirmation_service

    product = make_product([(3, 100)])
    quotation = quotation_with((product, 1, 500))

    def boom(plan, actor=None):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(confirmation_service, "apply_confirmation", boom)

    response = client.post(f"/api/quotations/{quotation.id}/confirm")
    assert response.status_code == 500
    assert response.get_json() == {"error": "Internal server error"}


def test_credit_for_customer_without_credit_is_400(client, make_customer):
    customer = make_customer(credit_enabled=False)

    response = client.post("/api/credits/", json={"customer_id": customer.id})

    assert response.status_code == 400
    assert response.get_json()["details"] == {"customer_id": customer.id}
