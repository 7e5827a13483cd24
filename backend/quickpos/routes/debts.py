# backend/quickpos/routes/debts.py
"""
Customer debt routes.

SECURITY: All routes require authentication.
"""
from flask import Blueprint, request, g

from ..services import debt_service
from ..services.debt_service import DebtPaymentError
from ..validation import NotFoundError, ValidationError
from ..decorators import require_auth
from ..responses import ok, fail, pagination_args, date_arg


debts_bp = Blueprint("debts", __name__, url_prefix="/api/debts")


@debts_bp.get("")
@require_auth
def list_debts_route():
    try:
        page, limit = pagination_args()
        result = debt_service.list_debts(
            start_date=date_arg("startDate"),
            end_date=date_arg("endDate"),
            customer=(request.args.get("customer") or "").strip() or None,
            status=request.args.get("status") or None,
            page=page,
            limit=limit,
        )
    except ValidationError as e:
        return fail(str(e), 400)

    return ok([d.to_dict() for d in result["items"]], pagination=result["pagination"])


@debts_bp.get("/stats")
@require_auth
def debt_stats_route():
    return ok(debt_service.debt_stats())


@debts_bp.post("")
@require_auth
def create_debt_route():
    payload = request.get_json(silent=True) or {}
    try:
        debt = debt_service.create_debt(payload, user_id=g.current_user.id)
    except NotFoundError as e:
        return fail(str(e), 404)
    except ValidationError as e:
        return fail(str(e), 400)
    return ok(debt.to_dict(), status=201)


@debts_bp.get("/<int:debt_id>")
@require_auth
def get_debt_route(debt_id: int):
    try:
        return ok(debt_service.get_debt(debt_id).to_dict())
    except NotFoundError as e:
        return fail(str(e), 404)


@debts_bp.put("/<int:debt_id>")
@require_auth
def update_debt_route(debt_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        debt = debt_service.update_debt(debt_id, payload)
    except NotFoundError as e:
        return fail(str(e), 404)
    except ValidationError as e:
        return fail(str(e), 400)
    return ok(debt.to_dict())


@debts_bp.post("/<int:debt_id>/payments")
@require_auth
def debt_payment_route(debt_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        debt = debt_service.record_payment(debt_id, payload, user_id=g.current_user.id)
    except NotFoundError as e:
        return fail(str(e), 404)
    except DebtPaymentError as e:
        return fail(str(e), 400, **e.details)
    except ValidationError as e:
        return fail(str(e), 400)
    return ok(debt.to_dict(), status=201)
