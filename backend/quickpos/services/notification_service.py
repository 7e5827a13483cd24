# Overview: Notification emitter for inventory side effects, plus recipient inbox operations.

"""
Notifications are written in the caller's transaction (emit does not
commit) so an import/export and its alerts commit or roll back together.

Alert types (low_stock, expiring_soon, expired) are de-duplicated per
recipient by dedupe_key "<type>:<product_id>:<UTC date>": a repeat emission
on the same day refreshes the existing row and marks it unread again.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Notification, Product
from ..models.notifications import ALERT_TYPES, NOTIFICATION_TYPES
from ..validation import NotFoundError, ValidationError
from quickpos.time_utils import utctoday

INBOX_LIMIT = 50


def dedupe_key_for(notification_type: str, product_id: int | None) -> str | None:
    if notification_type not in ALERT_TYPES or product_id is None:
        return None
    return f"{notification_type}:{product_id}:{utctoday().isoformat()}"


def _find_by_key(user_id: int, key: str) -> Notification | None:
    return db.session.query(Notification).filter_by(user_id=user_id, dedupe_key=key).first()


def _refresh(existing: Notification, *, title: str, message: str, details: dict) -> Notification:
    existing.title = title
    existing.message = message
    existing.details = details
    existing.is_read = False
    return existing


def emit(
    user_id: int,
    *,
    type: str,
    title: str,
    message: str,
    product_id: int | None = None,
    details: dict | None = None,
) -> Notification:
    if type not in NOTIFICATION_TYPES:
        raise ValidationError(f"Unknown notification type: {type}")
    details = dict(details or {})

    key = dedupe_key_for(type, product_id)
    if key is not None:
        existing = _find_by_key(user_id, key)
        if existing is not None:
            return _refresh(existing, title=title, message=message, details=details)

    notification = Notification(
        type=type,
        title=title,
        message=message,
        product_id=product_id,
        user_id=user_id,
        details=details,
        dedupe_key=key,
        is_read=False,
    )
    try:
        with db.session.begin_nested():
            db.session.add(notification)
    except IntegrityError:
        # Concurrent emitter inserted the same key first
        existing = _find_by_key(user_id, key)
        if existing is None:
            raise
        return _refresh(existing, title=title, message=message, details=details)
    return notification


def _low_stock_threshold(product: Product) -> int:
    if product.low_stock_threshold is not None:
        return product.low_stock_threshold
    return current_app.config["LOW_STOCK_THRESHOLD"]


def emit_stock_alerts(user_id: int, product: Product) -> list[Notification]:
    """Low-stock and expiry alerts for a product after its stock changed."""
    emitted = []

    threshold = _low_stock_threshold(product)
    if product.stock <= threshold:
        emitted.append(emit(
            user_id,
            type="low_stock",
            title="Low stock warning",
            message=f"{product.name} is running low. In stock: {product.stock} {product.unit}",
            product_id=product.id,
            details={"currentStock": product.stock, "threshold": threshold},
        ))

    if product.expiry_date is not None:
        days_until = (product.expiry_date - utctoday()).days
        if days_until <= 0:
            emitted.append(emit(
                user_id,
                type="expired",
                title="Product expired",
                message=f"{product.name} expired {abs(days_until)} days ago",
                product_id=product.id,
                details={
                    "expiryDate": product.expiry_date.isoformat(),
                    "daysOverdue": abs(days_until),
                },
            ))
        elif days_until <= current_app.config["EXPIRY_WARNING_DAYS"]:
            emitted.append(emit(
                user_id,
                type="expiring_soon",
                title="Product expiring soon",
                message=(
                    f"{product.name} expires in {days_until} days "
                    f"({product.expiry_date.strftime('%d/%m/%Y')})"
                ),
                product_id=product.id,
                details={
                    "expiryDate": product.expiry_date.isoformat(),
                    "daysUntilExpiry": days_until,
                },
            ))

    return emitted


def unread_count(user_id: int) -> int:
    return db.session.query(Notification).filter_by(user_id=user_id, is_read=False).count()


def list_notifications(user_id: int, *, limit: int = INBOX_LIMIT) -> tuple[list[Notification], int]:
    items = (
        db.session.query(Notification)
        .filter_by(user_id=user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )
    return items, unread_count(user_id)


def _get_owned(user_id: int, notification_id: int) -> Notification:
    notification = (
        db.session.query(Notification)
        .filter_by(id=notification_id, user_id=user_id)
        .first()
    )
    if notification is None:
        raise NotFoundError("Notification not found")
    return notification


def mark_read(user_id: int, notification_id: int) -> Notification:
    notification = _get_owned(user_id, notification_id)
    notification.is_read = True
    db.session.commit()
    return notification


def mark_all_read(user_id: int) -> int:
    updated = (
        db.session.query(Notification)
        .filter_by(user_id=user_id, is_read=False)
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.session.commit()
    return updated


def delete_notification(user_id: int, notification_id: int) -> None:
    notification = _get_owned(user_id, notification_id)
    db.session.delete(notification)
    db.session.commit()


def clear_notifications(user_id: int) -> int:
    deleted = (
        db.session.query(Notification)
        .filter_by(user_id=user_id)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
