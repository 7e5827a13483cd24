# Overview: Service-layer operations for customer debts and debt payments.

"""
Debt Ledger

Invariants:
- remaining_amount = total_amount - paid_amount, and status follows
  pending (nothing paid) / partial / paid; both are recomputed by the
  model hooks on every save, never assigned here.
- paid_amount never exceeds total_amount: record_payment rejects any
  amount above remaining_amount.
- Customer.total_debt moves with the debts: + total on creation,
  - amount on each payment.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Debt, DebtPayment
from ..models.customers import DEBT_PAID, DEBT_STATUSES
from ..models.orders import DEFAULT_CUSTOMER_NAME, PAYMENT_METHODS
from ..validation import NotFoundError, ValidationError, coerce_date, coerce_int, optional_str
from quickpos.time_utils import utctoday
from .concurrency import lock_for_update, run_with_retry

DUE_SOON_DAYS = 7


class DebtPaymentError(Exception):
    """Raised when a payment amount is outside (0, remaining]."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def default_due_date():
    return utctoday() + timedelta(days=current_app.config["DEBT_DUE_DAYS"])


def find_or_create_customer(
    *,
    phone: str,
    name: str | None = None,
    email: str | None = None,
    address: str | None = None,
    user_id: int | None = None,
) -> Customer:
    """Look a customer up by phone, creating one if needed. Does not commit."""
    phone = phone.strip()
    customer = lock_for_update(db.session.query(Customer).filter_by(phone=phone)).first()
    if customer is None:
        customer = Customer(
            name=(name or "").strip() or DEFAULT_CUSTOMER_NAME,
            phone=phone,
            email=email or None,
            address=address or None,
            total_debt=0,
            created_by_user_id=user_id,
        )
        db.session.add(customer)
        db.session.flush()
    return customer


def create_debt_inner(
    customer: Customer,
    *,
    total_amount: int,
    due_date=None,
    description: str | None = None,
    order_number: str | None = None,
    customer_name: str | None = None,
    phone: str | None = None,
    user_id: int | None = None,
) -> Debt:
    """Create a debt and add it to the customer's running total. Does not commit."""
    debt = Debt(
        customer_id=customer.id,
        customer_name=customer_name or customer.name,
        phone=phone or customer.phone,
        total_amount=total_amount,
        paid_amount=0,
        due_date=due_date or default_due_date(),
        description=description,
        order_number=order_number,
        created_by_user_id=user_id,
    )
    debt.customer = customer
    db.session.add(debt)
    customer.total_debt = (customer.total_debt or 0) + total_amount
    db.session.flush()
    return debt


def _required_str(payload: dict, key: str) -> str:
    value = payload.get(key)
    if value is None or str(value).strip() == "":
        raise ValidationError("customerId, customerName, phone and totalAmount are required")
    return str(value).strip()


def create_debt(payload: dict, *, user_id: int) -> Debt:
    payload = payload or {}
    customer_id = coerce_int(_required_str(payload, "customerId"), "customerId")
    customer_name = _required_str(payload, "customerName")
    phone = _required_str(payload, "phone")
    total_amount = coerce_int(payload.get("totalAmount"), "totalAmount") if payload.get("totalAmount") else 0
    if total_amount <= 0:
        raise ValidationError("totalAmount must be > 0")
    due_date = coerce_date(payload.get("dueDate"), "dueDate")
    description = optional_str(payload.get("description"), "description")

    def _op():
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if customer is None:
            raise NotFoundError("Customer not found")
        debt = create_debt_inner(
            customer,
            total_amount=total_amount,
            due_date=due_date,
            description=description,
            customer_name=customer_name,
            phone=phone,
            user_id=user_id,
        )
        db.session.commit()
        return debt

    return run_with_retry(_op)


def get_debt(debt_id: int) -> Debt:
    debt = db.session.get(Debt, debt_id)
    if debt is None:
        raise NotFoundError("Debt not found")
    return debt


def update_debt(debt_id: int, payload: dict) -> Debt:
    """Only dueDate and description are editable; status is derived."""
    payload = payload or {}
    if "status" in payload:
        raise ValidationError("status is derived from payments and cannot be set")
    unknown = set(payload) - {"dueDate", "description"}
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    debt = get_debt(debt_id)
    if payload.get("dueDate"):
        debt.due_date = coerce_date(payload["dueDate"], "dueDate")
    if "description" in payload:
        debt.description = optional_str(payload["description"], "description")
    db.session.commit()
    return debt


def record_payment(debt_id: int, payload: dict, *, user_id: int) -> Debt:
    payload = payload or {}
    if payload.get("amount") is None:
        raise DebtPaymentError("Payment amount must be greater than 0")
    amount = coerce_int(payload["amount"], "amount")
    method = (optional_str(payload.get("paymentMethod"), "paymentMethod") or "cash").lower()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"paymentMethod must be one of: {', '.join(PAYMENT_METHODS)}")
    note = optional_str(payload.get("note"), "note")

    def _op():
        debt = lock_for_update(db.session.query(Debt).filter_by(id=debt_id)).first()
        if debt is None:
            raise NotFoundError("Debt not found")

        if amount <= 0:
            raise DebtPaymentError("Payment amount must be greater than 0")
        if amount > debt.remaining_amount:
            raise DebtPaymentError(
                "Payment amount cannot exceed the remaining balance",
                details={"remainingAmount": debt.remaining_amount},
            )

        debt.payments.append(DebtPayment(
            amount=amount,
            payment_method=method,
            note=note,
            received_by_user_id=user_id,
        ))
        debt.paid_amount = (debt.paid_amount or 0) + amount

        customer = lock_for_update(db.session.query(Customer).filter_by(id=debt.customer_id)).first()
        if customer is not None:
            customer.total_debt = max(0, (customer.total_debt or 0) - amount)

        db.session.commit()
        return debt

    return run_with_retry(_op)


def list_debts(
    *,
    start_date=None,
    end_date=None,
    customer: str | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    q = db.session.query(Debt)
    if start_date:
        q = q.filter(Debt.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        q = q.filter(Debt.created_at < datetime.combine(end_date + timedelta(days=1), time.min))
    if customer:
        q = q.filter(Debt.customer_name.ilike(f"%{customer}%"))
    if status:
        status = status.lower()
        if status not in DEBT_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(DEBT_STATUSES)}")
        q = q.filter(Debt.status == status)

    total = q.count()
    items = (
        q.order_by(Debt.created_at.desc(), Debt.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": items,
        "pagination": {
            "total": total,
            "page": page,
            "pages": (total + limit - 1) // limit if limit else 0,
            "limit": limit,
        },
    }


def _open_totals(*criteria) -> tuple[int, int]:
    amount, customers = (
        db.session.query(
            func.coalesce(func.sum(Debt.remaining_amount), 0),
            func.count(func.distinct(Debt.customer_id)),
        )
        .filter(Debt.status != DEBT_PAID, *criteria)
        .one()
    )
    return int(amount or 0), int(customers or 0)


def debt_stats() -> dict:
    today = utctoday()
    total_debt, total_customers = _open_totals()
    total_debts = db.session.query(Debt).filter(Debt.status != DEBT_PAID).count()
    overdue_debt, overdue_customers = _open_totals(Debt.due_date < today)
    due_week, due_week_customers = _open_totals(
        Debt.due_date >= today,
        Debt.due_date <= today + timedelta(days=DUE_SOON_DAYS),
    )
    return {
        "totalDebt": total_debt,
        "totalCustomers": total_customers,
        "totalDebts": total_debts,
        "overdueDebt": overdue_debt,
        "overdueCustomers": overdue_customers,
        "dueThisWeek": due_week,
        "dueThisWeekCustomers": due_week_customers,
    }
