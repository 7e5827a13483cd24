# backend/quickpos/routes/inventory.py
"""
Inventory ledger routes.

SECURITY: All routes require authentication.

Import may split off a new product variant (different barcode or expiry);
the response says so via isNewProduct / newProduct.
"""
from flask import Blueprint, request, g

from ..services import inventory_service
from ..services.inventory_service import InsufficientStockError
from ..validation import NotFoundError, ValidationError
from ..decorators import require_auth
from ..responses import ok, fail, pagination_args, date_arg


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/import/<int:product_id>")
@require_auth
def import_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        result = inventory_service.import_stock(product_id, payload, user_id=g.current_user.id)
    except NotFoundError as e:
        return fail(str(e), 404)
    except ValidationError as e:
        return fail(str(e), 400)

    product = result["product"]
    is_new = result["is_new_product"]
    return ok(
        result["movement"].to_dict(),
        status=201,
        message="New product variant created and stock imported" if is_new else "Stock imported",
        isNewProduct=is_new,
        newProduct=product.to_dict() if is_new else None,
        newStock=product.stock,
    )


@inventory_bp.post("/export/<int:product_id>")
@require_auth
def export_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        result = inventory_service.export_stock(product_id, payload, user_id=g.current_user.id)
    except NotFoundError as e:
        return fail(str(e), 404)
    except InsufficientStockError as e:
        return fail(str(e), 400, currentStock=e.current_stock)
    except ValidationError as e:
        return fail(str(e), 400)

    return ok(
        result["movement"].to_dict(),
        status=201,
        message="Stock exported",
        newStock=result["product"].stock,
    )


@inventory_bp.get("/history/<int:product_id>")
@require_auth
def history_route(product_id: int):
    try:
        page, limit = pagination_args()
        result = inventory_service.get_history(
            product_id,
            type=request.args.get("type") or None,
            start_date=date_arg("startDate"),
            end_date=date_arg("endDate"),
            batch_number=request.args.get("batchNumber") or None,
            page=page,
            limit=limit,
        )
    except NotFoundError as e:
        return fail(str(e), 404)
    except ValidationError as e:
        return fail(str(e), 400)

    return ok({
        "docs": [m.to_dict(include_refs=True) for m in result["docs"]],
        "totalDocs": result["total"],
        "limit": result["limit"],
        "page": result["page"],
        "totalPages": result["pages"],
        "hasPrevPage": result["page"] > 1,
        "hasNextPage": result["page"] * result["limit"] < result["total"],
        "summary": result["summary"],
    })


@inventory_bp.delete("/<int:movement_id>")
@require_auth
def void_route(movement_id: int):
    try:
        inventory_service.void_movement(movement_id, user_id=g.current_user.id)
    except NotFoundError as e:
        return fail(str(e), 404)
    return ok(message="Inventory record deleted")
