# backend/quickpos/routes/orders.py
"""
Order routes.

SECURITY: All routes require authentication; status changes require an admin.

Checkout response:
- data: the order
- debtCreated / debtError: outcome of the deferred-payment debt step. The
  order is committed even when debtCreated is false.
"""
from flask import Blueprint, request, g

from ..services import order_service
from ..services.inventory_service import InsufficientStockError
from ..services.order_service import OrderError
from ..validation import NotFoundError, ValidationError
from ..decorators import require_auth, require_admin
from ..responses import ok, fail, pagination_args, date_arg


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
def checkout_route():
    payload = request.get_json(silent=True) or {}
    try:
        result = order_service.checkout(payload, user_id=g.current_user.id)
    except NotFoundError as e:
        return fail(str(e), 404)
    except InsufficientStockError as e:
        return fail(str(e), 400, **e.details)
    except ValidationError as e:
        return fail(str(e), 400)

    extra = {"debtCreated": result.debt_created}
    if result.debt_id is not None:
        extra["debtId"] = result.debt_id
    if result.debt_error:
        extra["debtError"] = result.debt_error
    return ok(result.order.to_dict(), status=201, **extra)


@orders_bp.get("")
@require_auth
def list_orders_route():
    try:
        page, limit = pagination_args()
        result = order_service.list_orders(
            status=request.args.get("status") or None,
            start_date=date_arg("startDate"),
            end_date=date_arg("endDate"),
            search=(request.args.get("search") or "").strip() or None,
            page=page,
            limit=limit,
        )
    except ValidationError as e:
        return fail(str(e), 400)

    return ok(
        [o.to_dict() for o in result["items"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
        totalPages=result["pages"],
    )


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        return ok(order_service.get_order(order_id).to_dict())
    except NotFoundError as e:
        return fail(str(e), 404)


@orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_admin
def update_status_route(order_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        order = order_service.update_status(order_id, payload.get("status"), user_id=g.current_user.id)
    except NotFoundError as e:
        return fail(str(e), 404)
    except OrderError as e:
        return fail(str(e), 400, **e.details)
    return ok(order.to_dict())
