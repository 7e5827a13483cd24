"""
Checkout and order status tests.

Covers:
- Totals, change and order numbering at checkout
- All-or-nothing stock decrements across cart lines
- Deferred-payment (debt) checkout, including a failing debt step
- Cancel / refund restoring stock exactly once
"""

from quickpos.extensions import db
from quickpos.models import Customer, Debt, InventoryMovement, Order, Product
from quickpos.services import debt_service, products_service


def _checkout(client, headers, items, **extra):
    payload = {"items": items, "paymentMethod": "cash"}
    payload.update(extra)
    return client.post("/api/orders", json=payload, headers=headers)


class TestCheckout:

    def test_cash_checkout_decrements_stock_and_computes_totals(self, client, staff_headers, product):
        response = _checkout(
            client, staff_headers,
            [{"product": product.id, "quantity": 2, "price": 25000}],
            customerPayment=50000,
        )

        assert response.status_code == 201
        body = response.json
        assert body["success"] is True
        assert body["debtCreated"] is False
        order = body["data"]
        assert order["orderNumber"] == "ORD-0001"
        assert order["subtotal"] == 50000
        assert order["total"] == 50000
        assert order["change"] == 0
        assert order["status"] == "completed"
        assert order["customer"]["name"] == "Khách lẻ"
        assert order["items"][0]["name"] == "Mi Hao Hao"

        assert db.session.get(Product, product.id).stock == 8
        sale = db.session.query(InventoryMovement).filter_by(product_id=product.id, type="sale").one()
        assert sale.quantity_delta == -2
        assert sale.order_number == "ORD-0001"

    def test_change_and_discount(self, client, staff_headers, product):
        response = _checkout(
            client, staff_headers,
            [{"product": product.id, "quantity": 2, "price": 25000}],
            discount=5000,
            customerPayment=100000,
        )

        assert response.status_code == 201
        order = response.json["data"]
        assert order["subtotal"] == 50000
        assert order["total"] == 45000
        assert order["change"] == 55000

    def test_discount_larger_than_subtotal_gives_negative_total(self, client, staff_headers, product):
        response = _checkout(
            client, staff_headers,
            [{"product": product.id, "quantity": 1, "price": 25000}],
            discount=30000,
        )

        assert response.status_code == 201
        assert response.json["data"]["total"] == -5000
        # change = max(0, payment - total) with payment 0
        assert response.json["data"]["change"] == 5000

    def test_order_numbers_increase(self, client, staff_headers, product):
        first = _checkout(client, staff_headers, [{"product": product.id, "quantity": 1, "price": 25000}])
        second = _checkout(client, staff_headers, [{"productId": product.id, "quantity": 1, "price": 25000}])

        assert first.json["data"]["orderNumber"] == "ORD-0001"
        assert second.json["data"]["orderNumber"] == "ORD-0002"

    def test_failing_line_rolls_back_earlier_lines(self, client, staff_headers, make_product):
        plenty = make_product(name="Sua Vinamilk", stock=5)
        scarce = make_product(name="Banh Mi", stock=1)

        response = _checkout(client, staff_headers, [
            {"product": plenty.id, "quantity": 2, "price": 25000},
            {"product": scarce.id, "quantity": 3, "price": 25000},
        ])

        assert response.status_code == 400
        assert response.json["success"] is False
        assert response.json["currentStock"] == 1
        assert response.json["productId"] == scarce.id

        assert db.session.get(Product, plenty.id).stock == 5
        assert db.session.get(Product, scarce.id).stock == 1
        assert db.session.query(Order).count() == 0
        assert db.session.query(InventoryMovement).filter_by(type="sale").count() == 0

        # The order number allocated by the failed attempt is released
        ok = _checkout(client, staff_headers, [{"product": plenty.id, "quantity": 1, "price": 25000}])
        assert ok.json["data"]["orderNumber"] == "ORD-0001"

    def test_unknown_product_is_404(self, client, staff_headers):
        response = _checkout(client, staff_headers, [{"product": 999999, "quantity": 1, "price": 1000}])

        assert response.status_code == 404
        assert "999999" in response.json["message"]

    def test_empty_cart_rejected(self, client, staff_headers):
        response = _checkout(client, staff_headers, [])

        assert response.status_code == 400

    def test_zero_quantity_rejected(self, client, staff_headers, product):
        response = _checkout(client, staff_headers, [{"product": product.id, "quantity": 0, "price": 25000}])

        assert response.status_code == 400
        assert db.session.get(Product, product.id).stock == 10

    def test_unknown_payment_method_rejected(self, client, staff_headers, product):
        response = _checkout(
            client, staff_headers,
            [{"product": product.id, "quantity": 1, "price": 25000}],
            paymentMethod="bitcoin",
        )

        assert response.status_code == 400

    def test_non_string_payment_method_rejected(self, client, staff_headers, product):
        response = _checkout(
            client, staff_headers,
            [{"product": product.id, "quantity": 1, "price": 25000}],
            paymentMethod=5,
        )

        assert response.status_code == 400
        assert "paymentMethod" in response.json["message"]
        assert db.session.query(Order).count() == 0

    def test_non_string_customer_name_rejected(self, client, staff_headers, product):
        response = _checkout(
            client, staff_headers,
            [{"product": product.id, "quantity": 1, "price": 25000}],
            customer={"name": 12345, "phone": "0911111111"},
        )

        assert response.status_code == 400
        assert db.session.query(Order).count() == 0
        assert db.session.get(Product, product.id).stock == 10

    def test_checkout_requires_auth(self, client, product):
        response = client.post("/api/orders", json={
            "items": [{"product": product.id, "quantity": 1, "price": 25000}],
        })

        assert response.status_code == 401


class TestDebtCheckout:

    def test_debt_checkout_creates_customer_and_debt(self, client, staff_headers, product):
        response = _checkout(
            client, staff_headers,
            [{"product": product.id, "quantity": 2, "price": 25000}],
            paymentMethod="debt",
            customerPayment=20000,
            customer={"name": "Chi Lan", "phone": "0911111111"},
        )

        assert response.status_code == 201
        body = response.json
        assert body["debtCreated"] is True
        assert body["data"]["customerPayment"] == 0
        assert body["data"]["change"] == 0

        debt = db.session.get(Debt, body["debtId"])
        assert debt.total_amount == 50000
        assert debt.remaining_amount == 50000
        assert debt.status == "pending"
        assert debt.order_number == "ORD-0001"
        assert debt.description == "Công nợ từ đơn hàng #ORD-0001"

        customer = db.session.query(Customer).filter_by(phone="0911111111").one()
        assert customer.name == "Chi Lan"
        assert customer.total_debt == 50000

    def test_second_debt_reuses_customer(self, client, staff_headers, product):
        for _ in range(2):
            _checkout(
                client, staff_headers,
                [{"product": product.id, "quantity": 1, "price": 25000}],
                paymentMethod="debt",
                customer={"name": "Chi Lan", "phone": "0911111111"},
            )

        customer = db.session.query(Customer).filter_by(phone="0911111111").one()
        assert customer.total_debt == 50000
        assert db.session.query(Debt).filter_by(customer_id=customer.id).count() == 2

    def test_debt_checkout_without_phone_creates_no_debt(self, client, staff_headers, product):
        response = _checkout(
            client, staff_headers,
            [{"product": product.id, "quantity": 1, "price": 25000}],
            paymentMethod="debt",
            customer={"name": "Chi Lan"},
        )

        assert response.status_code == 201
        assert response.json["debtCreated"] is False
        assert "debtError" not in response.json
        assert db.session.query(Debt).count() == 0

    def test_bad_due_date_rejected_before_anything_is_written(self, client, staff_headers, product):
        response = _checkout(
            client, staff_headers,
            [{"product": product.id, "quantity": 2, "price": 25000}],
            paymentMethod="debt",
            customer={"name": "Chi Lan", "phone": "0911111111", "dueDate": "next tuesday"},
        )

        assert response.status_code == 400
        assert "dueDate" in response.json["message"]
        assert db.session.query(Order).count() == 0
        assert db.session.query(Debt).count() == 0
        assert db.session.query(Customer).count() == 0
        assert db.session.get(Product, product.id).stock == 10

    def test_due_date_carried_onto_debt(self, client, staff_headers, product):
        response = _checkout(
            client, staff_headers,
            [{"product": product.id, "quantity": 1, "price": 25000}],
            paymentMethod="debt",
            customer={"name": "Chi Lan", "phone": "0911111111", "dueDate": "2031-01-15"},
        )

        assert response.json["debtCreated"] is True
        assert db.session.get(Debt, response.json["debtId"]).due_date.isoformat() == "2031-01-15"

    def test_failed_debt_step_keeps_the_order(self, client, staff_headers, product, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("debt ledger unavailable")

        monkeypatch.setattr(debt_service, "create_debt_inner", boom)

        response = _checkout(
            client, staff_headers,
            [{"product": product.id, "quantity": 2, "price": 25000}],
            paymentMethod="debt",
            customer={"name": "Chi Lan", "phone": "0911111111"},
        )

        assert response.status_code == 201
        assert response.json["debtCreated"] is False
        assert response.json["debtError"] == "debt ledger unavailable"

        assert db.session.query(Order).count() == 1
        assert db.session.get(Product, product.id).stock == 8
        assert db.session.query(Debt).count() == 0
        assert db.session.query(Customer).count() == 0


class TestOrderStatus:

    def _order(self, client, headers, product, quantity=3):
        response = _checkout(client, headers, [{"product": product.id, "quantity": quantity, "price": 25000}])
        return response.json["data"]

    def test_cancel_restores_stock_once(self, client, admin_headers, product):
        order = self._order(client, admin_headers, product)
        assert db.session.get(Product, product.id).stock == 7

        response = client.patch(f"/api/orders/{order['id']}/status", json={"status": "cancelled"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json["data"]["status"] == "cancelled"
        assert db.session.get(Product, product.id).stock == 10

        returns = db.session.query(InventoryMovement).filter_by(type="sale_return").all()
        assert len(returns) == 1
        assert returns[0].quantity_delta == 3
        assert returns[0].order_number == order["orderNumber"]

        again = client.patch(f"/api/orders/{order['id']}/status", json={"status": "cancelled"}, headers=admin_headers)
        assert again.status_code == 400
        assert again.json["currentStatus"] == "cancelled"
        assert db.session.get(Product, product.id).stock == 10

    def test_refund_restores_stock(self, client, admin_headers, product):
        order = self._order(client, admin_headers, product, quantity=4)

        response = client.patch(f"/api/orders/{order['id']}/status", json={"status": "REFUNDED"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json["data"]["status"] == "refunded"
        assert db.session.get(Product, product.id).stock == 10

    def test_non_restocking_transition_rejected(self, client, admin_headers, product):
        order = self._order(client, admin_headers, product)

        response = client.patch(f"/api/orders/{order['id']}/status", json={"status": "pending"}, headers=admin_headers)

        assert response.status_code == 400
        assert db.session.get(Order, order["id"]).status == "completed"

    def test_unknown_status_rejected(self, client, admin_headers, product):
        order = self._order(client, admin_headers, product)

        response = client.patch(f"/api/orders/{order['id']}/status", json={"status": "lost"}, headers=admin_headers)

        assert response.status_code == 400

    def test_cancel_skips_deleted_products(self, client, admin_headers, admin_user, product):
        order = self._order(client, admin_headers, product)
        products_service.delete_product(product.id)

        response = client.patch(f"/api/orders/{order['id']}/status", json={"status": "cancelled"}, headers=admin_headers)

        assert response.status_code == 200
        assert db.session.query(InventoryMovement).filter_by(type="sale_return").count() == 0

    def test_status_change_requires_admin(self, client, staff_headers, product):
        order = self._order(client, staff_headers, product)

        response = client.patch(f"/api/orders/{order['id']}/status", json={"status": "cancelled"}, headers=staff_headers)

        assert response.status_code == 403
        assert db.session.get(Product, product.id).stock == 7

    def test_missing_order_is_404(self, client, admin_headers):
        response = client.patch("/api/orders/999999/status", json={"status": "cancelled"}, headers=admin_headers)

        assert response.status_code == 404


class TestOrderQueries:

    def test_list_filters_by_status_and_search(self, client, admin_headers, product):
        _checkout(client, admin_headers, [{"product": product.id, "quantity": 1, "price": 25000}],
                  customer={"name": "Anh Minh", "phone": "0922222222"})
        second = _checkout(client, admin_headers, [{"product": product.id, "quantity": 1, "price": 25000}])
        client.patch(f"/api/orders/{second.json['data']['id']}/status", json={"status": "cancelled"}, headers=admin_headers)

        everything = client.get("/api/orders", headers=admin_headers)
        assert everything.json["total"] == 2
        # Newest first
        assert everything.json["data"][0]["orderNumber"] == "ORD-0002"

        cancelled = client.get("/api/orders?status=cancelled", headers=admin_headers)
        assert [o["orderNumber"] for o in cancelled.json["data"]] == ["ORD-0002"]

        by_phone = client.get("/api/orders?search=0922222222", headers=admin_headers)
        assert [o["orderNumber"] for o in by_phone.json["data"]] == ["ORD-0001"]

    def test_list_paginates(self, client, staff_headers, product):
        for _ in range(3):
            _checkout(client, staff_headers, [{"product": product.id, "quantity": 1, "price": 25000}])

        response = client.get("/api/orders?limit=2&page=2", headers=staff_headers)

        assert response.json["total"] == 3
        assert response.json["totalPages"] == 2
        assert len(response.json["data"]) == 1

    def test_get_order(self, client, staff_headers, staff_user, product):
        created = _checkout(client, staff_headers, [{"product": product.id, "quantity": 1, "price": 25000}])

        response = client.get(f"/api/orders/{created.json['data']['id']}", headers=staff_headers)

        assert response.status_code == 200
        assert response.json["data"]["staff"]["email"] == staff_user.email

    def test_get_missing_order(self, client, staff_headers):
        response = client.get("/api/orders/999999", headers=staff_headers)

        assert response.status_code == 404
