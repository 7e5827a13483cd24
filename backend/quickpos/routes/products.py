# backend/quickpos/routes/products.py
"""
Product catalog routes.

SECURITY:
- GET / and GET /search are public (storefront / POS lookup)
- Reading a single product and the expiry list require authentication
- Create, update, delete and stock changes require an admin
"""
from flask import Blueprint, request, g

from ..services import products_service
from ..services.inventory_service import InsufficientStockError
from ..validation import NotFoundError, ValidationError, coerce_int
from ..decorators import require_auth, require_admin
from ..responses import ok, fail, pagination_args


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    try:
        page, limit = pagination_args()
        result = products_service.list_products(
            category=request.args.get("category") or None,
            search=(request.args.get("search") or "").strip() or None,
            sort=request.args.get("sort") or None,
            page=page,
            limit=limit,
        )
    except ValidationError as e:
        return fail(str(e), 400)

    return ok(
        [p.to_dict() for p in result["items"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
        totalPages=result["pages"],
    )


@products_bp.get("/search")
def search_products_route():
    try:
        limit = request.args.get("limit")
        limit = coerce_int(limit, "limit") if limit else 10
        products = products_service.search_products(request.args.get("q"), limit=max(1, min(limit, 50)))
    except ValidationError as e:
        return fail(str(e), 400)
    return ok([p.to_dict() for p in products])


@products_bp.get("/expiring")
@require_auth
def expiring_products_route():
    rows = products_service.expiring_products()
    return ok(rows, count=len(rows))


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return ok(products_service.get_product(product_id).to_dict())
    except NotFoundError as e:
        return fail(str(e), 404)


@products_bp.post("")
@require_auth
@require_admin
def create_product_route():
    payload = request.get_json(silent=True)
    try:
        product = products_service.create_product(payload, user_id=g.current_user.id)
    except ValidationError as e:
        return fail(str(e), 400)
    return ok(product.to_dict(), status=201)


@products_bp.put("/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    payload = request.get_json(silent=True)
    try:
        product = products_service.update_product(product_id, payload, user_id=g.current_user.id)
    except NotFoundError as e:
        return fail(str(e), 404)
    except InsufficientStockError as e:
        return fail(str(e), 400, **e.details)
    except ValidationError as e:
        return fail(str(e), 400)
    return ok(product.to_dict())


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
    except NotFoundError as e:
        return fail(str(e), 404)
    return ok({}, message="Product deleted")


@products_bp.patch("/<int:product_id>/stock")
@require_auth
@require_admin
def change_stock_route(product_id: int):
    payload = request.get_json(silent=True)
    try:
        product = products_service.change_stock(product_id, payload, user_id=g.current_user.id)
    except NotFoundError as e:
        return fail(str(e), 404)
    except InsufficientStockError as e:
        return fail(str(e), 400, **e.details)
    except ValidationError as e:
        return fail(str(e), 400)
    return ok(product.to_dict())
