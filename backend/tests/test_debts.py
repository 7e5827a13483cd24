"""
Customer debt tests: derived status, payment bounds and the running
customer balance.
"""

from datetime import timedelta

import pytest

from quickpos.extensions import db
from quickpos.models import Customer, Debt
from quickpos.services import debt_service
from quickpos.time_utils import utctoday


@pytest.fixture
def customer(db_session, staff_user):
    record = debt_service.find_or_create_customer(phone="0911111111", name="Chi Lan", user_id=staff_user.id)
    db.session.commit()
    return record


@pytest.fixture
def make_debt(customer, staff_user):
    def _make(total=50000, due_in_days=30, name=None):
        debt = debt_service.create_debt_inner(
            customer,
            total_amount=total,
            due_date=utctoday() + timedelta(days=due_in_days),
            customer_name=name,
            user_id=staff_user.id,
        )
        db.session.commit()
        return debt

    return _make


def _pay(client, headers, debt_id, amount, **extra):
    payload = {"amount": amount}
    payload.update(extra)
    return client.post(f"/api/debts/{debt_id}/payments", json=payload, headers=headers)


class TestDebtModel:

    def test_new_debt_is_pending(self, make_debt):
        debt = make_debt(total=50000)

        assert debt.status == "pending"
        assert debt.remaining_amount == 50000
        assert debt.paid_amount == 0

    def test_status_recomputed_on_save(self, make_debt):
        debt = make_debt(total=50000)

        debt.paid_amount = 10000
        db.session.commit()
        assert debt.status == "partial"
        assert debt.remaining_amount == 40000

        debt.paid_amount = 50000
        db.session.commit()
        assert debt.status == "paid"
        assert debt.remaining_amount == 0


class TestPayments:

    def test_partial_then_full_payment(self, client, staff_headers, make_debt, customer):
        debt = make_debt(total=50000)

        first = _pay(client, staff_headers, debt.id, 20000, paymentMethod="momo")
        assert first.status_code == 201
        assert first.json["data"]["status"] == "partial"
        assert first.json["data"]["remainingAmount"] == 30000
        assert first.json["data"]["payments"][0]["paymentMethod"] == "momo"
        assert db.session.get(Customer, customer.id).total_debt == 30000

        second = _pay(client, staff_headers, debt.id, 30000)
        assert second.status_code == 201
        assert second.json["data"]["status"] == "paid"
        assert second.json["data"]["remainingAmount"] == 0
        assert len(second.json["data"]["payments"]) == 2
        assert db.session.get(Customer, customer.id).total_debt == 0

    def test_overpayment_rejected(self, client, staff_headers, make_debt):
        debt = make_debt(total=50000)

        response = _pay(client, staff_headers, debt.id, 60000)

        assert response.status_code == 400
        assert response.json["remainingAmount"] == 50000
        refreshed = db.session.get(Debt, debt.id)
        assert refreshed.paid_amount == 0
        assert refreshed.status == "pending"

    @pytest.mark.parametrize("amount", [0, -100])
    def test_non_positive_payment_rejected(self, client, staff_headers, make_debt, amount):
        debt = make_debt(total=50000)

        response = _pay(client, staff_headers, debt.id, amount)

        assert response.status_code == 400
        assert db.session.get(Debt, debt.id).paid_amount == 0

    def test_non_string_payment_method_rejected(self, client, staff_headers, make_debt):
        debt = make_debt(total=50000)

        response = _pay(client, staff_headers, debt.id, 10000, paymentMethod=5)

        assert response.status_code == 400
        assert db.session.get(Debt, debt.id).paid_amount == 0

    def test_payment_after_paid_rejected(self, client, staff_headers, make_debt):
        debt = make_debt(total=10000)
        _pay(client, staff_headers, debt.id, 10000)

        response = _pay(client, staff_headers, debt.id, 1)

        assert response.status_code == 400

    def test_payment_on_missing_debt(self, client, staff_headers):
        response = _pay(client, staff_headers, 999999, 1000)

        assert response.status_code == 404


class TestDebtCrud:

    def test_create_debt(self, client, staff_headers, customer):
        response = client.post("/api/debts", json={
            "customerId": customer.id,
            "customerName": "Chi Lan",
            "phone": "0911111111",
            "totalAmount": 120000,
            "description": "Mua chiu",
        }, headers=staff_headers)

        assert response.status_code == 201
        data = response.json["data"]
        assert data["status"] == "pending"
        assert data["remainingAmount"] == 120000
        assert data["dueDate"] == (utctoday() + timedelta(days=30)).isoformat()
        assert data["customer"]["id"] == customer.id
        assert db.session.get(Customer, customer.id).total_debt == 120000

    def test_create_debt_requires_fields(self, client, staff_headers, customer):
        response = client.post("/api/debts", json={"customerId": customer.id}, headers=staff_headers)

        assert response.status_code == 400

    def test_create_debt_unknown_customer(self, client, staff_headers):
        response = client.post("/api/debts", json={
            "customerId": 999999,
            "customerName": "Nobody",
            "phone": "0900000000",
            "totalAmount": 1000,
        }, headers=staff_headers)

        assert response.status_code == 404

    def test_update_due_date_and_description(self, client, staff_headers, make_debt):
        debt = make_debt()
        new_due = (utctoday() + timedelta(days=5)).isoformat()

        response = client.put(f"/api/debts/{debt.id}", json={
            "dueDate": new_due,
            "description": "Hen tuan sau",
        }, headers=staff_headers)

        assert response.status_code == 200
        assert response.json["data"]["dueDate"] == new_due
        assert response.json["data"]["description"] == "Hen tuan sau"

    def test_status_cannot_be_set(self, client, staff_headers, make_debt):
        debt = make_debt()

        response = client.put(f"/api/debts/{debt.id}", json={"status": "paid"}, headers=staff_headers)

        assert response.status_code == 400
        assert db.session.get(Debt, debt.id).status == "pending"

    def test_get_missing_debt(self, client, staff_headers):
        response = client.get("/api/debts/999999", headers=staff_headers)

        assert response.status_code == 404


class TestDebtQueries:

    def test_list_with_filters_and_pagination(self, client, staff_headers, make_debt):
        make_debt(total=10000, name="Chi Lan")
        make_debt(total=20000, name="Chi Lan")
        paid = make_debt(total=30000, name="Anh Tuan")
        _pay(client, staff_headers, paid.id, 30000)

        response = client.get("/api/debts?limit=2", headers=staff_headers)
        assert response.status_code == 200
        assert len(response.json["data"]) == 2
        assert response.json["pagination"] == {"total": 3, "page": 1, "pages": 2, "limit": 2}

        only_paid = client.get("/api/debts?status=paid", headers=staff_headers)
        assert [d["id"] for d in only_paid.json["data"]] == [paid.id]

        by_name = client.get("/api/debts?customer=tuan", headers=staff_headers)
        assert [d["id"] for d in by_name.json["data"]] == [paid.id]

    def test_list_rejects_unknown_status(self, client, staff_headers):
        response = client.get("/api/debts?status=forgiven", headers=staff_headers)

        assert response.status_code == 400

    def test_stats(self, client, staff_headers, make_debt):
        make_debt(total=10000, due_in_days=-3)
        make_debt(total=20000, due_in_days=2)
        make_debt(total=40000, due_in_days=30)
        settled = make_debt(total=5000, due_in_days=-10)
        _pay(client, staff_headers, settled.id, 5000)

        response = client.get("/api/debts/stats", headers=staff_headers)

        assert response.status_code == 200
        stats = response.json["data"]
        assert stats["totalDebt"] == 70000
        assert stats["totalDebts"] == 3
        assert stats["totalCustomers"] == 1
        assert stats["overdueDebt"] == 10000
        assert stats["overdueCustomers"] == 1
        assert stats["dueThisWeek"] == 20000
        assert stats["dueThisWeekCustomers"] == 1

    def test_debts_require_auth(self, client):
        assert client.get("/api/debts").status_code == 401
