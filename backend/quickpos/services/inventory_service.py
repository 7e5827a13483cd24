# Overview: Service-layer operations for inventory; stock ledger appends, import/export, history.

from datetime import datetime, time, timedelta
from sqlalchemy import func

from ..extensions import db
from ..models import Product, InventoryMovement
from ..models.inventory import (
    MOVEMENT_ADJUST,
    MOVEMENT_EXPORT,
    MOVEMENT_IMPORT,
    MOVEMENT_SALE,
    MOVEMENT_SALE_RETURN,
    MOVEMENT_TYPES,
)
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_date,
    coerce_int,
    require_positive_quantity,
)
from quickpos.time_utils import utcnow
from . import notification_service
from .concurrency import lock_for_update, run_with_retry
"""
QuickPOS Inventory Invariants (authoritative)

Inventory model:
- InventoryMovement rows are an append-only ledger.
- Quantity on hand is SUM(quantity_delta) over every movement of a product,
  voided movements included (voiding hides, it never reverses).
- Product.stock is a materialised copy of that sum. record_movement() is the
  ONLY writer, and it writes both in the same transaction.

Business invariants:
- Stock may never go negative: export and sale check the locked product row
  before appending.
- import / sale_return add stock, export / sale remove it, adjust may do either.

Transactions:
- *_inner helpers never commit; public operations wrap their unit of work
  in run_with_retry and commit once.
"""


class InsufficientStockError(Exception):
    """Requested quantity exceeds current stock (400, with details)."""

    def __init__(self, message: str, *, product: Product, requested: int):
        super().__init__(message)
        self.details = {
            "productId": product.id,
            "productName": product.name,
            "currentStock": product.stock,
            "requested": requested,
        }

    @property
    def current_stock(self) -> int:
        return self.details["currentStock"]


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def get_quantity_on_hand(product_id: int) -> int:
    """Ledger-derived quantity on hand (all movements, voided included)."""
    q = db.session.query(
        func.coalesce(func.sum(InventoryMovement.quantity_delta), 0)
    ).filter(InventoryMovement.product_id == product_id)
    return int(q.scalar() or 0)


def record_movement(
    product: Product,
    *,
    type: str,
    quantity_delta: int,
    user_id: int | None = None,
    import_price: int | None = None,
    expiry_date=None,
    supplier: str | None = None,
    batch_number: str | None = None,
    note: str | None = None,
    order_number: str | None = None,
) -> InventoryMovement:
    """Append a ledger row and apply it to Product.stock. Does not commit."""
    if type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type: {type}")
    if quantity_delta == 0:
        raise ValidationError("quantity must be non-zero")

    movement = InventoryMovement(
        product_id=product.id,
        product_name=product.name,
        type=type,
        quantity_delta=quantity_delta,
        import_price=import_price,
        expiry_date=expiry_date,
        supplier=supplier,
        unit=product.unit,
        batch_number=batch_number,
        note=note,
        order_number=order_number,
        created_by_user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    product.stock = (product.stock or 0) + quantity_delta
    db.session.flush()
    return movement


def _ensure_sufficient(product: Product, quantity: int) -> None:
    if (product.stock or 0) < quantity:
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}. Available: {product.stock or 0}",
            product=product,
            requested=quantity,
        )


def sell_inner(product: Product, quantity: int, *, order_number: str, user_id: int | None) -> InventoryMovement:
    """Checkout line: lock-held product, sufficiency check, sale movement."""
    _ensure_sufficient(product, quantity)
    return record_movement(
        product,
        type=MOVEMENT_SALE,
        quantity_delta=-quantity,
        user_id=user_id,
        batch_number=product.batch_number,
        order_number=order_number,
    )


def restore_sale_inner(product: Product, quantity: int, *, order_number: str, user_id: int | None, note: str | None = None) -> InventoryMovement:
    return record_movement(
        product,
        type=MOVEMENT_SALE_RETURN,
        quantity_delta=quantity,
        user_id=user_id,
        batch_number=product.batch_number,
        order_number=order_number,
        note=note,
    )


def adjust_inner(product: Product, quantity_delta: int, *, user_id: int | None, note: str | None = None) -> InventoryMovement | None:
    """Manual correction / opening stock. Zero delta is a no-op."""
    if quantity_delta == 0:
        return None
    if quantity_delta < 0:
        _ensure_sufficient(product, -quantity_delta)
    return record_movement(
        product,
        type=MOVEMENT_ADJUST,
        quantity_delta=quantity_delta,
        user_id=user_id,
        batch_number=product.batch_number,
        note=note,
    )


def _clean_str(value) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _positive_amount(value, name: str) -> int | None:
    """Optional money override; only positive values take effect."""
    if value is None or value == "":
        return None
    amount = coerce_int(value, name)
    if amount < 0:
        raise ValidationError(f"{name} must be >= 0")
    return amount or None


def _variant_barcode(source: Product, barcode: str | None) -> str | None:
    if barcode and barcode != source.barcode:
        return barcode
    if source.barcode:
        return f"{source.barcode}_{int(utcnow().timestamp() * 1000)}"
    return None


def import_stock(product_id: int, payload: dict, *, user_id: int) -> dict:
    """
    Receive stock into a product, splitting off a batch variant when the
    delivery's barcode or expiry date differs from the product on file.

    Returns {"movement", "product", "is_new_product"}.
    """
    payload = payload or {}
    quantity = require_positive_quantity(payload.get("quantity"))
    barcode = _clean_str(payload.get("barcode"))
    expiry_date = coerce_date(payload.get("expiryDate"), "expiryDate")
    cost = _positive_amount(payload.get("cost"), "cost")
    price = _positive_amount(payload.get("price"), "price")
    import_price = _positive_amount(payload.get("importPrice"), "importPrice")
    supplier = _clean_str(payload.get("supplier"))
    unit = _clean_str(payload.get("unit"))
    batch_number = _clean_str(payload.get("batchNumber"))
    note = _clean_str(payload.get("note"))

    def _op():
        source = get_product(product_id, lock=True)

        is_new_barcode = barcode is not None and barcode != source.barcode
        if is_new_barcode:
            taken = db.session.query(Product.id).filter(Product.barcode == barcode).first()
            if taken:
                raise ValidationError("Barcode already belongs to another product")

        is_new_expiry = (
            expiry_date is not None
            and source.expiry_date is not None
            and expiry_date != source.expiry_date
        )

        if is_new_barcode or is_new_expiry:
            target = Product(
                name=source.name,
                description=source.description,
                category=source.category,
                images=list(source.images or []),
                price=price or source.price,
                cost=cost or source.cost,
                unit=unit or source.unit,
                supplier=supplier or source.supplier,
                batch_number=batch_number or source.batch_number,
                expiry_date=expiry_date or source.expiry_date,
                barcode=_variant_barcode(source, barcode),
                low_stock_threshold=source.low_stock_threshold,
                variant_of_id=source.id,
                stock=0,
                is_active=True,
            )
            db.session.add(target)
            db.session.flush()
        else:
            target = source
            if cost:
                target.cost = cost
            if price:
                target.price = price
            if supplier:
                target.supplier = supplier
            if unit:
                target.unit = unit
            if batch_number:
                target.batch_number = batch_number
            if expiry_date:
                target.expiry_date = expiry_date

        movement = record_movement(
            target,
            type=MOVEMENT_IMPORT,
            quantity_delta=quantity,
            user_id=user_id,
            import_price=import_price if import_price is not None else target.cost,
            expiry_date=expiry_date or target.expiry_date,
            supplier=supplier or target.supplier,
            batch_number=batch_number or target.batch_number,
            note=note,
        )

        notification_service.emit(
            user_id,
            type="inventory_update",
            title="Stock imported",
            message=f"Imported {quantity} {target.unit} {target.name}",
            product_id=target.id,
            details={
                "inventoryId": movement.id,
                "action": MOVEMENT_IMPORT,
                "quantity": quantity,
                "newStock": target.stock,
            },
        )
        notification_service.emit_stock_alerts(user_id, target)

        db.session.commit()
        return {
            "movement": movement,
            "product": target,
            "is_new_product": target is not source,
        }

    return run_with_retry(_op)


def export_stock(product_id: int, payload: dict, *, user_id: int) -> dict:
    """Remove stock from a product. Returns {"movement", "product"}."""
    payload = payload or {}
    quantity = require_positive_quantity(payload.get("quantity"))
    batch_number = _clean_str(payload.get("batchNumber"))
    note = _clean_str(payload.get("note"))

    def _op():
        product = get_product(product_id, lock=True)
        _ensure_sufficient(product, quantity)

        if batch_number and product.batch_number != batch_number:
            raise ValidationError(f"Batch {batch_number} not found for this product")

        movement = record_movement(
            product,
            type=MOVEMENT_EXPORT,
            quantity_delta=-quantity,
            user_id=user_id,
            batch_number=batch_number or product.batch_number,
            note=note,
        )

        notification_service.emit(
            user_id,
            type="inventory_update",
            title="Stock exported",
            message=f"Exported {quantity} {product.unit} {product.name}",
            product_id=product.id,
            details={
                "inventoryId": movement.id,
                "action": MOVEMENT_EXPORT,
                "quantity": quantity,
                "newStock": product.stock,
            },
        )
        notification_service.emit_stock_alerts(user_id, product)

        db.session.commit()
        return {"movement": movement, "product": product}

    return run_with_retry(_op)


def _day_bounds(start_date, end_date) -> tuple[datetime | None, datetime | None]:
    """Inclusive whole-day window as [start 00:00, end+1 00:00)."""
    start = datetime.combine(start_date, time.min) if start_date else None
    end = datetime.combine(end_date + timedelta(days=1), time.min) if end_date else None
    return start, end


def get_history(
    product_id: int,
    *,
    type: str | None = None,
    start_date=None,
    end_date=None,
    batch_number: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    """
    Paginated, newest-first movement history for a product (voided rows
    hidden) plus import/export totals over the same filter.
    """
    product = get_product(product_id)

    q = db.session.query(InventoryMovement).filter(
        InventoryMovement.product_id == product_id,
        InventoryMovement.voided_at.is_(None),
    )
    if type:
        if type not in MOVEMENT_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(MOVEMENT_TYPES)}")
        q = q.filter(InventoryMovement.type == type)

    start, end = _day_bounds(start_date, end_date)
    if start is not None:
        q = q.filter(InventoryMovement.created_at >= start)
    if end is not None:
        q = q.filter(InventoryMovement.created_at < end)
    if batch_number:
        q = q.filter(InventoryMovement.batch_number == batch_number)

    total = q.count()
    docs = (
        q.order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    summary = {
        MOVEMENT_IMPORT: {"totalQuantity": 0, "count": 0},
        MOVEMENT_EXPORT: {"totalQuantity": 0, "count": 0},
    }
    rows = (
        q.with_entities(
            InventoryMovement.type,
            func.coalesce(func.sum(func.abs(InventoryMovement.quantity_delta)), 0),
            func.count(InventoryMovement.id),
        )
        .filter(InventoryMovement.type.in_([MOVEMENT_IMPORT, MOVEMENT_EXPORT]))
        .group_by(InventoryMovement.type)
        .all()
    )
    for movement_type, total_quantity, count in rows:
        summary[movement_type] = {"totalQuantity": int(total_quantity), "count": int(count)}
    summary["currentStock"] = product.stock

    return {
        "docs": docs,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit if limit else 0,
        "summary": summary,
    }


def void_movement(movement_id: int, *, user_id: int) -> InventoryMovement:
    """Hide a movement from history. Its stock effect stays in place."""
    movement = db.session.get(InventoryMovement, movement_id)
    if movement is None or movement.voided_at is not None:
        raise NotFoundError("Inventory record not found")
    movement.voided_at = utcnow()
    movement.voided_by_user_id = user_id
    db.session.commit()
    return movement


def rebuild_stock(*, commit: bool = True) -> list[tuple[Product, int, int]]:
    """
    Recompute every Product.stock from the ledger.
    With commit=False the drift is reported and nothing is written.

    Returns (product, old_stock, new_stock) for each product that changed.
    """
    sums = dict(
        db.session.query(
            InventoryMovement.product_id,
            func.coalesce(func.sum(InventoryMovement.quantity_delta), 0),
        )
        .filter(InventoryMovement.product_id.isnot(None))
        .group_by(InventoryMovement.product_id)
        .all()
    )

    changed = []
    for product in db.session.query(Product).order_by(Product.id).all():
        ledger = int(sums.get(product.id, 0))
        if product.stock != ledger:
            changed.append((product, product.stock, ledger))
            product.stock = ledger

    if commit:
        db.session.commit()
    else:
        db.session.rollback()
    return changed
