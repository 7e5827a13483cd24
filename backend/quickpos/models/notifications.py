from __future__ import annotations

from ..extensions import db
from quickpos.time_utils import to_utc_z

NOTIFICATION_TYPES = ("low_stock", "expiring_soon", "expired", "inventory_update", "other")

# Types that are upserted by dedupe key instead of appended
ALERT_TYPES = ("low_stock", "expiring_soon", "expired")


class Notification(db.Model):
    """
    User-facing alert records produced by inventory changes.

    DEDUPLICATION:
    Alert types carry dedupe_key = "<type>:<product_id>:<YYYY-MM-DD>" (UTC).
    One recipient has at most one row per key; re-emitting refreshes it.
    inventory_update confirmations have no key and are always inserted.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.UniqueConstraint("user_id", "dedupe_key", name="uq_notifications_user_dedupe"),
        db.Index("ix_notifications_user_created", "user_id", "created_at"),
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(32), nullable=False, default="other")
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)

    # Nulled when the product is deleted
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)

    # "metadata" is reserved on declarative classes, so the attribute is renamed
    details = db.Column("metadata", db.JSON, nullable=False, default=dict)

    dedupe_key = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "product": self.product.to_ref() if self.product else None,
            "user": self.user_id,
            "read": self.is_read,
            "metadata": dict(self.details or {}),
            "dedupeKey": self.dedupe_key,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
