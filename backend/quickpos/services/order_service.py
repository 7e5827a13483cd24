"""
Order Service - checkout, listing and status transitions

CHECKOUT CONSISTENCY:
- Stock decrements for every line, the order row and its items are one
  database transaction. A failure on any line (missing product, not enough
  stock) rolls back every earlier decrement of the same request.
- The deferred-payment debt step runs in a savepoint inside that
  transaction. If it fails only the debt bookkeeping is rolled back: the
  order still commits and the result carries debt_created=False and the
  error text.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Order, OrderItem, Product
from ..models.orders import DEFAULT_CUSTOMER_NAME, ORDER_STATUSES, PAYMENT_METHODS
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_date,
    coerce_int,
    optional_amount,
    optional_str,
)
from .document_service import next_order_number
from . import debt_service, inventory_service
from .concurrency import lock_for_update, run_with_retry

# completed -> these statuses puts the goods back on the shelf
RESTOCKING_STATUSES = ("cancelled", "refunded")


class OrderError(Exception):
    """Raised for order operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class OrderStatusError(OrderError):
    """Raised for an unknown status or a transition that is not allowed."""


@dataclass
class CheckoutResult:
    order: Order
    debt_created: bool = False
    debt_error: str | None = None
    debt_id: int | None = None


def _parse_cart(items) -> list[tuple[int, int, int]]:
    if not items or not isinstance(items, list):
        raise ValidationError("Please add at least one product")

    lines = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"Item {index} is invalid")
        product_ref = item.get("product", item.get("productId"))
        if product_ref is None:
            raise ValidationError(f"Item {index} is missing product")
        product_id = coerce_int(product_ref, "product")
        quantity = coerce_int(item.get("quantity"), "quantity") if item.get("quantity") is not None else 0
        if quantity < 1:
            raise ValidationError(f"Item {index}: quantity must be >= 1")
        price = coerce_int(item.get("price"), "price") if item.get("price") is not None else -1
        if price < 0:
            raise ValidationError(f"Item {index}: price must be >= 0")
        lines.append((product_id, quantity, price))
    return lines


def _normalize_method(value) -> str:
    method = (optional_str(value, "paymentMethod") or "cash").lower()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"paymentMethod must be one of: {', '.join(PAYMENT_METHODS)}")
    return method


def _customer_phone(value) -> str | None:
    # Numeric phones arrive from some clients as JSON numbers
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return optional_str(value, "customer.phone")


def _attach_debt(order: Order, customer: dict, *, user_id: int | None) -> CheckoutResult:
    """
    Savepoint-scoped debt creation for a deferred-payment order.

    customer holds already-validated values; failures here only cost the debt.
    """
    try:
        with db.session.begin_nested():
            record = debt_service.find_or_create_customer(
                phone=customer["phone"],
                name=customer["name"],
                email=customer["email"],
                address=customer["address"],
                user_id=user_id,
            )
            debt = debt_service.create_debt_inner(
                record,
                total_amount=order.total,
                due_date=customer["due_date"],
                description=f"Công nợ từ đơn hàng #{order.order_number}",
                order_number=order.order_number,
                user_id=user_id,
            )
        return CheckoutResult(order=order, debt_created=True, debt_id=debt.id)
    except Exception as e:
        current_app.logger.exception("Debt creation failed for order %s", order.order_number)
        return CheckoutResult(order=order, debt_created=False, debt_error=str(e))


def checkout(payload: dict, *, user_id: int | None) -> CheckoutResult:
    """
    Create a completed order from a cart.

    payload: {items: [{product, quantity, price}], discount, customerPayment,
    paymentMethod, customer: {name, phone, email, address, dueDate}, notes}
    """
    payload = payload or {}
    lines = _parse_cart(payload.get("items"))
    discount = optional_amount(payload.get("discount"), "discount")
    payment = optional_amount(payload.get("customerPayment"), "customerPayment")
    method = _normalize_method(payload.get("paymentMethod"))
    customer = payload.get("customer") or {}
    if not isinstance(customer, dict):
        raise ValidationError("customer must be an object")
    customer = {
        "name": optional_str(customer.get("name"), "customer.name"),
        "phone": _customer_phone(customer.get("phone")),
        "email": optional_str(customer.get("email"), "customer.email"),
        "address": optional_str(customer.get("address"), "customer.address"),
        "due_date": coerce_date(customer.get("dueDate"), "dueDate"),
    }
    notes = optional_str(payload.get("notes"), "notes")

    def _op() -> CheckoutResult:
        order_number = next_order_number()
        order = Order(
            order_number=order_number,
            discount=discount,
            payment_method=method,
            customer_name=customer["name"] or DEFAULT_CUSTOMER_NAME,
            customer_phone=customer["phone"],
            customer_address=customer["address"],
            staff_user_id=user_id,
            status="completed",
            notes=notes,
        )

        for product_id, quantity, price in lines:
            product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
            if product is None:
                raise NotFoundError(f"Product not found with ID: {product_id}")
            inventory_service.sell_inner(product, quantity, order_number=order_number, user_id=user_id)
            order.items.append(OrderItem(
                product_id=product.id,
                name=product.name,
                quantity=quantity,
                price=price,
                total=price * quantity,
            ))

        order.recalculate_totals()
        if method == "debt":
            order.customer_payment = 0
            order.change = 0
        else:
            order.customer_payment = payment
            order.change = max(0, payment - order.total)

        db.session.add(order)
        db.session.flush()

        result = CheckoutResult(order=order)
        if method == "debt" and order.customer_phone:
            result = _attach_debt(order, customer, user_id=user_id)

        db.session.commit()
        return result

    return run_with_retry(_op)


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def list_orders(
    *,
    status: str | None = None,
    start_date=None,
    end_date=None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    q = db.session.query(Order)
    if status:
        status = status.lower()
        if status not in ORDER_STATUSES:
            raise ValidationError("Invalid status")
        q = q.filter(Order.status == status)
    if start_date:
        q = q.filter(Order.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        q = q.filter(Order.created_at < datetime.combine(end_date + timedelta(days=1), time.min))
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(
            Order.order_number.ilike(pattern),
            Order.customer_name.ilike(pattern),
            Order.customer_phone.ilike(pattern),
        ))

    total = q.count()
    items = (
        q.order_by(Order.created_at.desc(), Order.id.desc())
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


def update_status(order_id: int, status, *, user_id: int | None) -> Order:
    """
    Post-creation status transition.

    Only completed -> cancelled / refunded is allowed; it appends one
    sale_return movement per line (lines whose product has since been
    deleted are skipped). Anything else, including a repeat cancel, fails.
    """
    new_status = (status or "").strip().lower() if isinstance(status, str) else ""
    if new_status not in ORDER_STATUSES:
        raise OrderStatusError("Invalid status")

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError("Order not found")

        if order.status != "completed" or new_status not in RESTOCKING_STATUSES:
            raise OrderStatusError(
                f"Invalid status transition from {order.status} to {new_status}",
                details={"currentStatus": order.status, "requestedStatus": new_status},
            )

        for item in order.items:
            if item.product_id is None:
                continue
            product = lock_for_update(db.session.query(Product).filter_by(id=item.product_id)).first()
            if product is None:
                continue
            inventory_service.restore_sale_inner(
                product,
                item.quantity,
                order_number=order.order_number,
                user_id=user_id,
                note=f"Order {new_status}",
            )

        order.status = new_status
        db.session.commit()
        return order

    return run_with_retry(_op)
