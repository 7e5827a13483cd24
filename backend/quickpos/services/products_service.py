# backend/quickpos/services/products_service.py
"""
Products Service

Catalog CRUD. Product.stock is never assigned here: opening stock on create,
stock edits on update and PATCH /stock all become `adjust` movements via
inventory_service so the ledger stays the source of truth.
"""
from __future__ import annotations
from sqlalchemy import or_

from ..extensions import db
from ..models import InventoryMovement, Notification, Product
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_product,
    require_positive_quantity,
    validate_payload,
)
from quickpos.time_utils import utctoday
from . import inventory_service
from .concurrency import run_with_retry

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "price", "cost", "stock", "barcode", "category",
        "unit", "expiry_date", "supplier", "batch_number", "images", "is_active",
        "low_stock_threshold",
    },
    required_on_create={"name", "price"},
    aliases={
        "expiryDate": "expiry_date",
        "batchNumber": "batch_number",
        "isActive": "is_active",
        "lowStockThreshold": "low_stock_threshold",
    },
    ignored_fields={"id", "_id", "createdAt", "updatedAt", "variantOfId", "__v"},
)

SORT_OPTIONS = {
    "price_asc": (Product.price.asc(),),
    "price_desc": (Product.price.desc(),),
    "name_asc": (Product.name.asc(),),
    "name_desc": (Product.name.desc(),),
}
DEFAULT_SORT = (Product.created_at.desc(), Product.id.desc())

# Days-to-expiry at or below which an expiring product is flagged "warning"
EXPIRY_WARNING_WINDOW = 7


def _barcode_taken(barcode: str, *, exclude_id: int | None = None) -> bool:
    q = db.session.query(Product.id).filter(Product.barcode == barcode)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    return q.first() is not None


def _batch_taken(name: str, batch_number: str, *, exclude_id: int | None = None) -> bool:
    q = db.session.query(Product.id).filter(
        Product.name == name,
        Product.batch_number == batch_number,
    )
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    return q.first() is not None


def list_products(
    *,
    category: str | None = None,
    search: str | None = None,
    sort: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    q = db.session.query(Product)
    if category:
        q = q.filter(Product.category == category)
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(
            Product.name.ilike(pattern),
            Product.description.ilike(pattern),
            Product.barcode == search,
        ))

    total = q.count()
    items = (
        q.order_by(*SORT_OPTIONS.get(sort or "", DEFAULT_SORT))
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit if limit else 0,
    }


def search_products(term: str | None, *, limit: int = 10) -> list[Product]:
    term = (term or "").strip()
    if not term:
        raise ValidationError("Search term is required")
    pattern = f"%{term}%"
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .filter(or_(
            Product.name.ilike(pattern),
            Product.barcode == term,
            Product.description.ilike(pattern),
        ))
        .order_by(Product.name.asc(), Product.id.asc())
        .limit(limit)
        .all()
    )


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def expiring_products() -> list[dict]:
    """In-stock products with an expiry date, soonest first, with days remaining."""
    today = utctoday()
    products = (
        db.session.query(Product)
        .filter(Product.expiry_date.isnot(None), Product.stock > 0)
        .order_by(Product.expiry_date.asc(), Product.id.asc())
        .all()
    )
    rows = []
    for product in products:
        remaining = (product.expiry_date - today).days
        if remaining < 0:
            status = "expired"
        elif remaining <= EXPIRY_WARNING_WINDOW:
            status = "warning"
        else:
            status = "safe"
        row = product.to_dict()
        row["remainingDays"] = remaining
        row["status"] = status
        rows.append(row)
    return rows


def create_product(payload: dict, *, user_id: int) -> Product:
    """
    Create a catalog entry. Non-zero opening stock is written as an adjust
    movement in the same transaction.
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    opening_stock = patch.pop("stock", None) or 0

    def _op():
        if patch.get("barcode") and _barcode_taken(patch["barcode"]):
            raise ValidationError("Barcode already exists")
        if patch.get("batch_number") and _batch_taken(patch["name"], patch["batch_number"]):
            raise ValidationError("This batch already exists for the product")

        product = Product(stock=0, **patch)
        db.session.add(product)
        db.session.flush()

        inventory_service.adjust_inner(product, opening_stock, user_id=user_id, note="Opening stock")
        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product(product_id: int, payload: dict, *, user_id: int) -> Product:
    """
    Patch a product. A "stock" value is treated as a stock-take: the
    difference to the current stock is recorded as an adjust movement.
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    target_stock = patch.pop("stock", None)

    def _op():
        product = inventory_service.get_product(product_id, lock=True)

        barcode = patch.get("barcode")
        if barcode and barcode != product.barcode and _barcode_taken(barcode, exclude_id=product.id):
            raise ValidationError("Barcode already exists")

        name = patch.get("name", product.name)
        batch_number = patch.get("batch_number")
        if batch_number and (batch_number != product.batch_number or name != product.name):
            if _batch_taken(name, batch_number, exclude_id=product.id):
                raise ValidationError("This batch already exists for the product")

        for k, v in patch.items():
            setattr(product, k, v)

        if target_stock is not None:
            inventory_service.adjust_inner(
                product,
                target_stock - product.stock,
                user_id=user_id,
                note="Stock edited on product",
            )

        db.session.commit()
        return product

    return run_with_retry(_op)


def change_stock(product_id: int, payload: dict, *, user_id: int) -> Product:
    """PATCH /stock: {quantity, type: increment|decrement}."""
    payload = payload or {}
    change_type = payload.get("type")
    if change_type not in ("increment", "decrement"):
        raise ValidationError("type must be increment or decrement")
    quantity = require_positive_quantity(payload.get("quantity"))
    delta = quantity if change_type == "increment" else -quantity

    def _op():
        product = inventory_service.get_product(product_id, lock=True)
        inventory_service.adjust_inner(product, delta, user_id=user_id, note=f"Stock {change_type}")
        db.session.commit()
        return product

    return run_with_retry(_op)


def delete_product(product_id: int) -> None:
    """
    Hard delete. Ledger rows and notifications keep their snapshot fields and
    lose the product reference; orders only ever held a soft reference.
    """
    def _op():
        product = inventory_service.get_product(product_id, lock=True)
        db.session.query(InventoryMovement).filter_by(product_id=product.id).update(
            {InventoryMovement.product_id: None}, synchronize_session=False
        )
        db.session.query(Notification).filter_by(product_id=product.id).update(
            {Notification.product_id: None}, synchronize_session=False
        )
        db.session.query(Product).filter_by(variant_of_id=product.id).update(
            {Product.variant_of_id: None}, synchronize_session=False
        )
        db.session.delete(product)
        db.session.commit()

    run_with_retry(_op)
