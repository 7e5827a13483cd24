"""
Notification tests: alerts emitted by stock changes, same-day
de-duplication, and the per-user inbox.
"""

from datetime import timedelta

from quickpos.extensions import db
from quickpos.models import Notification
from quickpos.services import notification_service
from quickpos.time_utils import utctoday


def _import(client, headers, product_id, quantity=1, **extra):
    payload = {"quantity": quantity}
    payload.update(extra)
    return client.post(f"/api/inventory/import/{product_id}", json=payload, headers=headers)


def _of_type(user_id, notification_type):
    return db.session.query(Notification).filter_by(user_id=user_id, type=notification_type).all()


class TestStockAlerts:

    def test_import_emits_confirmation_and_low_stock(self, client, staff_headers, staff_user, make_product):
        product = make_product(name="Bot Giat", stock=2)

        _import(client, staff_headers, product.id, quantity=1)

        updates = _of_type(staff_user.id, "inventory_update")
        assert len(updates) == 1
        assert updates[0].details["action"] == "import"
        assert updates[0].details["newStock"] == 3

        low = _of_type(staff_user.id, "low_stock")
        assert len(low) == 1
        assert low[0].dedupe_key == f"low_stock:{product.id}:{utctoday().isoformat()}"
        assert low[0].details == {"currentStock": 3, "threshold": 10}

    def test_low_stock_deduplicated_within_a_day(self, client, staff_headers, staff_user, make_product):
        product = make_product(name="Bot Giat", stock=2)

        _import(client, staff_headers, product.id, quantity=1)
        low = _of_type(staff_user.id, "low_stock")[0]
        notification_service.mark_read(staff_user.id, low.id)

        _import(client, staff_headers, product.id, quantity=1)

        low_rows = _of_type(staff_user.id, "low_stock")
        assert len(low_rows) == 1
        # Refreshed with the latest figures and unread again
        assert low_rows[0].details["currentStock"] == 4
        assert low_rows[0].is_read is False
        assert len(_of_type(staff_user.id, "inventory_update")) == 2

    def test_no_low_stock_above_threshold(self, client, staff_headers, staff_user, product):
        _import(client, staff_headers, product.id, quantity=5)

        assert _of_type(staff_user.id, "low_stock") == []

    def test_product_threshold_overrides_default(self, client, staff_headers, staff_user, make_product):
        product = make_product(name="Gao ST25", stock=40, lowStockThreshold=50)

        _import(client, staff_headers, product.id, quantity=5)

        assert len(_of_type(staff_user.id, "low_stock")) == 1

    def test_export_emits_alerts(self, client, staff_headers, staff_user, product):
        client.post(f"/api/inventory/export/{product.id}", json={"quantity": 2}, headers=staff_headers)

        updates = _of_type(staff_user.id, "inventory_update")
        assert updates[0].details["action"] == "export"
        assert len(_of_type(staff_user.id, "low_stock")) == 1

    def test_expiring_soon_alert(self, client, staff_headers, staff_user, make_product):
        expiry = utctoday() + timedelta(days=10)
        product = make_product(name="Sua Tuoi", stock=50, expiryDate=expiry.isoformat())

        _import(client, staff_headers, product.id, quantity=1)

        alerts = _of_type(staff_user.id, "expiring_soon")
        assert len(alerts) == 1
        assert alerts[0].details["daysUntilExpiry"] == 10
        assert _of_type(staff_user.id, "expired") == []

    def test_expired_alert(self, client, staff_headers, staff_user, make_product):
        expiry = utctoday() - timedelta(days=2)
        product = make_product(name="Sua Tuoi", stock=50, expiryDate=expiry.isoformat())

        _import(client, staff_headers, product.id, quantity=1)

        alerts = _of_type(staff_user.id, "expired")
        assert len(alerts) == 1
        assert alerts[0].details["daysOverdue"] == 2
        assert _of_type(staff_user.id, "expiring_soon") == []

    def test_alerts_roll_back_with_failed_export(self, client, staff_headers, staff_user, product):
        client.post(f"/api/inventory/export/{product.id}", json={"quantity": 99}, headers=staff_headers)

        assert db.session.query(Notification).count() == 0


class TestInbox:

    def _seed(self, client, headers, make_product):
        product = make_product(name="Bot Giat", stock=2)
        _import(client, headers, product.id, quantity=1)
        return product

    def test_list_with_unread_count(self, client, staff_headers, make_product):
        self._seed(client, staff_headers, make_product)

        response = client.get("/api/notifications", headers=staff_headers)

        assert response.status_code == 200
        assert response.json["unreadCount"] == 2
        types = sorted(n["type"] for n in response.json["data"])
        assert types == ["inventory_update", "low_stock"]
        assert all(n["read"] is False for n in response.json["data"])

    def test_mark_one_read(self, client, staff_headers, make_product):
        self._seed(client, staff_headers, make_product)
        first = client.get("/api/notifications", headers=staff_headers).json["data"][0]

        response = client.put(f"/api/notifications/{first['id']}/read", headers=staff_headers)

        assert response.status_code == 200
        assert response.json["data"]["read"] is True
        assert response.json["unreadCount"] == 1

    def test_mark_all_read(self, client, staff_headers, staff_user, make_product):
        self._seed(client, staff_headers, make_product)

        response = client.put("/api/notifications/read-all", headers=staff_headers)

        assert response.status_code == 200
        assert notification_service.unread_count(staff_user.id) == 0

    def test_delete_and_clear(self, client, staff_headers, staff_user, make_product):
        self._seed(client, staff_headers, make_product)
        first = client.get("/api/notifications", headers=staff_headers).json["data"][0]

        deleted = client.delete(f"/api/notifications/{first['id']}", headers=staff_headers)
        assert deleted.status_code == 200
        assert deleted.json["unreadCount"] == 1

        cleared = client.delete("/api/notifications", headers=staff_headers)
        assert cleared.status_code == 200
        assert cleared.json["deleted"] == 1
        assert db.session.query(Notification).filter_by(user_id=staff_user.id).count() == 0

    def test_other_users_notifications_are_invisible(self, client, staff_headers, admin_headers, make_product):
        self._seed(client, staff_headers, make_product)
        staff_item = client.get("/api/notifications", headers=staff_headers).json["data"][0]

        assert client.get("/api/notifications", headers=admin_headers).json["data"] == []
        assert client.put(f"/api/notifications/{staff_item['id']}/read", headers=admin_headers).status_code == 404
        assert client.delete(f"/api/notifications/{staff_item['id']}", headers=admin_headers).status_code == 404

    def test_dedupe_key_only_for_alert_types(self):
        assert notification_service.dedupe_key_for("inventory_update", 5) is None
        assert notification_service.dedupe_key_for("low_stock", None) is None
        assert notification_service.dedupe_key_for("expired", 5).startswith("expired:5:")
