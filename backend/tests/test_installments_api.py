# Overview: Pytest coverage for the installment ledger HTTP endpoints.

"""
Installment API Tests

Drive /api/installments through the Flask test client and check both the
JSON shapes and the mapping of ledger errors to HTTP status codes.
"""

from closet.extensions import db
from closet.models import Installment, Sale


def _first_installment_id(sale_id):
    db.session.expire_all()
    return db.session.get(Sale, sale_id).installments[0].id


class TestScheduleEndpoint:

    def test_create_schedule(self, client, db_session, make_product):
        product = make_product(price_cents=30000)
        sale = client.post("/api/sales/", json={
            "items": [{"product_id": product.id, "quantity": 1}],
            "payment_method": "fiado_parcelado",
        }).get_json()

        response = client.post("/api/installments/create", json={
            "sale_id": sale["id"],
            "num_installments": 3,
            "entry_payment": "30.00",
            "start_date": "2024-01-15",
        })

        assert response.status_code == 201
        body = response.get_json()
        assert [i["amount_due_cents"] for i in body["installments"]] == [9000, 9000, 9000]
        assert [i["due_date"] for i in body["installments"]] == ["2024-02-15", "2024-03-15", "2024-04-15"]
        assert body["paid_cents"] == 3000
        assert body["remaining_cents"] == 27000

    def test_missing_fields(self, client, db_session):
        response = client.post("/api/installments/create", json={"sale_id": 1})
        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"

    def test_tiny_principal_still_splits(self, client, db_session, make_product):
        product = make_product(price_cents=2)
        sale = client.post("/api/sales/", json={
            "items": [{"product_id": product.id, "quantity": 1}],
            "payment_method": "fiado",
        }).get_json()

        response = client.post("/api/installments/create", json={
            "sale_id": sale["id"], "num_installments": 3, "start_date": "2024-01-01",
        })

        assert response.status_code == 201
        body = response.get_json()
        assert [i["amount_due_cents"] for i in body["installments"]] == [0, 0, 2]
        assert [i["status"] for i in body["installments"]] == ["paid", "paid", "pending"]
        assert body["remaining_cents"] == 2

    def test_too_many_installments(self, client, db_session, make_product):
        product = make_product(price_cents=50000)
        sale = client.post("/api/sales/", json={
            "items": [{"product_id": product.id, "quantity": 1}],
            "payment_method": "fiado",
        }).get_json()

        response = client.post("/api/installments/create", json={"sale_id": sale["id"], "num_installments": 500})

        assert response.status_code == 400
        assert response.get_json()["code"] == "INVALID_SCHEDULE"

    def test_unknown_sale(self, client, db_session):
        response = client.post("/api/installments/create", json={"sale_id": 999999, "num_installments": 2})
        assert response.status_code == 404


class TestPaymentEndpoints:

    def test_payment_in_reais(self, client, db_session, credit_sale):
        installment_id = _first_installment_id(credit_sale.id)

        response = client.post(f"/api/installments/{installment_id}/payment", json={
            "amount": "100.00",
            "date": "2024-02-01",
            "method": "pix",
            "created_by": "caixa",
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body["installment"]["status"] == "paid"
        assert body["sale"]["remaining_cents"] == 20000
        assert body["payment"]["amount_cents"] == 10000
        assert body["payment"]["payment_method"] == "pix"
        assert body["warnings"] == []
        assert body["duplicate"] is False

    def test_duplicate_submission_returns_200(self, client, db_session, credit_sale):
        installment_id = _first_installment_id(credit_sale.id)
        payload = {"amount_cents": 2500, "date": "2024-02-01"}

        first = client.post(f"/api/installments/{installment_id}/payment", json=payload)
        second = client.post(f"/api/installments/{installment_id}/payment", json=payload)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.get_json()["duplicate"] is True
        assert second.get_json()["payment"]["id"] == first.get_json()["payment"]["id"]

    def test_overpayment_warning(self, client, db_session, credit_sale):
        installment_id = _first_installment_id(credit_sale.id)

        response = client.post(f"/api/installments/{installment_id}/payment", json={"amount_cents": 10500})

        assert response.status_code == 201
        assert len(response.get_json()["warnings"]) == 1

    def test_error_mapping(self, client, db_session, credit_sale):
        installment_id = _first_installment_id(credit_sale.id)

        zero = client.post(f"/api/installments/{installment_id}/payment", json={"amount_cents": 0})
        assert zero.status_code == 400
        assert zero.get_json()["code"] == "INVALID_AMOUNT"

        garbage = client.post(f"/api/installments/{installment_id}/payment", json={"amount": "abc"})
        assert garbage.status_code == 400

        missing = client.post("/api/installments/999999/payment", json={"amount_cents": 100})
        assert missing.status_code == 404
        assert missing.get_json()["code"] == "NOT_FOUND"

        client.post(f"/api/installments/{installment_id}/payment", json={"amount_cents": 10000, "date": "2024-02-01"})
        settled = client.post(f"/api/installments/{installment_id}/payment", json={"amount_cents": 100})
        assert settled.status_code == 409
        assert settled.get_json()["code"] == "ALREADY_SETTLED"

    def test_huge_amounts_are_rejected(self, client, db_session, credit_sale):
        installment_id = _first_installment_id(credit_sale.id)

        for payload in ({"amount": "1e30"}, {"amount": "9" * 40}, {"amount_cents": 10 ** 20}, {"amount_cents": 1_000_000_000}):
            response = client.post(f"/api/installments/{installment_id}/payment", json=payload)
            assert response.status_code == 400, payload
            assert response.get_json()["code"] == "INVALID_AMOUNT"

        db.session.expire_all()
        assert db.session.get(Installment, installment_id).amount_paid_cents == 0

    def test_bad_date(self, client, db_session, credit_sale):
        installment_id = _first_installment_id(credit_sale.id)
        response = client.post(f"/api/installments/{installment_id}/payment", json={"amount_cents": 100, "date": "01/02/2024"})
        assert response.status_code == 400

    def test_edit_and_delete(self, client, db_session, credit_sale):
        installment_id = _first_installment_id(credit_sale.id)
        created = client.post(f"/api/installments/{installment_id}/payment", json={
            "amount_cents": 10000, "date": "2024-02-01",
        }).get_json()
        payment_id = created["payment"]["id"]

        edited = client.put(f"/api/installments/payments/{payment_id}", json={"amount": "40.00", "notes": "corrigido"})
        assert edited.status_code == 200
        assert edited.get_json()["installment"]["status"] == "partial"
        assert edited.get_json()["payment"]["notes"] == "corrigido"

        deleted = client.delete(f"/api/installments/payments/{payment_id}")
        assert deleted.status_code == 200
        assert deleted.get_json()["installment"]["status"] == "pending"
        assert deleted.get_json()["payment"] is None

        db.session.expire_all()
        assert db.session.get(Installment, installment_id).amount_paid_cents == 0
        assert client.delete(f"/api/installments/payments/{payment_id}").status_code == 404

    def test_pay_full(self, client, db_session, credit_sale):
        response = client.put(f"/api/installments/{credit_sale.id}/pay-full", json={"date": "2024-03-10"})

        assert response.status_code == 200
        body = response.get_json()
        assert body["settled_cents"] == 30000
        assert body["sale"]["payment_status"] == "paid"
        assert {p["payment_method"] for p in body["payments"]} == {"full-settlement"}

        again = client.put(f"/api/installments/{credit_sale.id}/pay-full")
        assert again.status_code == 409
        assert again.get_json()["code"] == "ALREADY_SETTLED"

    def test_payment_on_cancelled_sale(self, client, db_session, credit_sale):
        installment_id = _first_installment_id(credit_sale.id)
        client.post(f"/api/sales/{credit_sale.id}/cancel", json={"reason": "troca"})

        response = client.post(f"/api/installments/{installment_id}/payment", json={"amount_cents": 100})

        assert response.status_code == 409
        assert response.get_json()["code"] == "INVALID_STATE"


class TestQueryEndpoints:

    def test_details(self, client, db_session, credit_sale):
        response = client.get(f"/api/installments/{credit_sale.id}/details?today=2024-03-02")

        assert response.status_code == 200
        body = response.get_json()
        assert body["overdue_count"] == 2
        assert [i["display_status"] for i in body["installments"]] == ["overdue", "overdue", "pending"]
        assert body["sale"]["customer_name"] == "Maria Souza"
        assert client.get("/api/installments/999999/details").status_code == 404

    def test_list_and_metrics(self, client, db_session, credit_sale):
        listing = client.get("/api/installments/?status=todas&today=2024-01-05")
        assert listing.status_code == 200
        assert listing.get_json()["total"] == 1
        assert listing.get_json()["items"][0]["overdue_count"] == 0

        metrics = client.get("/api/installments/metrics?today=2024-02-02").get_json()
        assert metrics["count"] == 1
        assert metrics["total_due_cents"] == 30000
        assert metrics["overdue_count"] == 1

        assert client.get("/api/installments/?status=abertas").status_code == 400
        assert client.get("/api/installments/?today=amanha").status_code == 400

    def test_upcoming(self, client, db_session, credit_sale):
        # Thursday 2024-02-01 is the first due date
        body = client.get("/api/installments/upcoming?today=2024-02-01").get_json()

        assert body["today"] == "2024-02-01"
        assert body["week_end"] == "2024-02-04"
        assert [e["installment_number"] for e in body["due_today"]] == [1]
        assert body["total_due_today_cents"] == 10000
        assert body["due_this_week"] == []
        assert body["overdue_count"] == 0

    def test_overdue(self, client, db_session, credit_sale):
        body = client.get("/api/installments/overdue?today=2024-03-15").get_json()

        assert body["count"] == 2
        assert [e["installment_number"] for e in body["items"]] == [1, 2]
        assert [e["days_late"] for e in body["items"]] == [43, 14]
        assert body["total_overdue_cents"] == 20000

    def test_overdue_bad_date(self, client, db_session):
        response = client.get("/api/installments/overdue?today=amanha")

        assert response.status_code == 400
