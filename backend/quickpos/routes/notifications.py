# backend/quickpos/routes/notifications.py
"""
Notification inbox routes. Every route is scoped to g.current_user.
"""
from flask import Blueprint, g

from ..services import notification_service
from ..validation import NotFoundError
from ..decorators import require_auth
from ..responses import ok, fail


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    items, unread = notification_service.list_notifications(g.current_user.id)
    return ok([n.to_dict() for n in items], unreadCount=unread)


@notifications_bp.put("/read-all")
@require_auth
def read_all_route():
    notification_service.mark_all_read(g.current_user.id)
    return ok(message="All notifications marked as read", unreadCount=0)


@notifications_bp.put("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    try:
        notification = notification_service.mark_read(g.current_user.id, notification_id)
    except NotFoundError as e:
        return fail(str(e), 404)
    return ok(
        notification.to_dict(),
        unreadCount=notification_service.unread_count(g.current_user.id),
    )


@notifications_bp.delete("/<int:notification_id>")
@require_auth
def delete_route(notification_id: int):
    try:
        notification_service.delete_notification(g.current_user.id, notification_id)
    except NotFoundError as e:
        return fail(str(e), 404)
    return ok(
        message="Notification deleted",
        unreadCount=notification_service.unread_count(g.current_user.id),
    )


@notifications_bp.delete("")
@require_auth
def clear_route():
    deleted = notification_service.clear_notifications(g.current_user.id)
    return ok(message="All notifications deleted", deleted=deleted, unreadCount=0)
