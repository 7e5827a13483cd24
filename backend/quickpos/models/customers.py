from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from quickpos.time_utils import to_utc_z, to_iso_date

DEBT_PENDING = "pending"
DEBT_PARTIAL = "partial"
DEBT_PAID = "paid"

DEBT_STATUSES = (DEBT_PENDING, DEBT_PARTIAL, DEBT_PAID)


class Customer(db.Model):
    """
    Customers known by phone number.

    total_debt is a running figure: incremented when a deferred-payment
    checkout creates a debt, decremented by each debt payment.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("phone", name="uq_customers_phone"),
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(200), nullable=True)

    total_debt = db.Column(db.Integer, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "totalDebt": self.total_debt,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }

    def to_ref(self) -> dict:
        return {"id": self.id, "name": self.name, "phone": self.phone}


class Debt(db.Model):
    """
    Outstanding customer balance.

    DERIVED STATE:
    remaining_amount and status are never written directly; they are
    recomputed from total_amount / paid_amount by recalculate(), which runs
    before every insert and update.

    Debts are never deleted.
    """
    __tablename__ = "debts"
    __table_args__ = (
        db.Index("ix_debts_status_due", "status", "due_date"),
        db.Index("ix_debts_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    customer_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20), nullable=False)

    total_amount = db.Column(db.Integer, nullable=False)
    paid_amount = db.Column(db.Integer, nullable=False, default=0)
    remaining_amount = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=DEBT_PENDING, index=True)

    due_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.Text, nullable=True)
    order_number = db.Column(db.String(32), nullable=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("debts", lazy=True))
    created_by = db.relationship("User")
    payments = db.relationship(
        "DebtPayment",
        backref="debt",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="DebtPayment.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def recalculate(self) -> None:
        paid = self.paid_amount or 0
        self.remaining_amount = self.total_amount - paid
        if paid == 0:
            self.status = DEBT_PENDING
        elif paid >= self.total_amount:
            self.status = DEBT_PAID
        else:
            self.status = DEBT_PARTIAL

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer": self.customer.to_ref() if self.customer else self.customer_id,
            "customerName": self.customer_name,
            "phone": self.phone,
            "totalAmount": self.total_amount,
            "paidAmount": self.paid_amount,
            "remainingAmount": self.remaining_amount,
            "status": self.status,
            "dueDate": to_iso_date(self.due_date),
            "description": self.description,
            "orderNumber": self.order_number,
            "createdBy": self.created_by.to_ref() if self.created_by else None,
            "payments": [p.to_dict() for p in self.payments],
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


@event.listens_for(Debt, "before_insert")
@event.listens_for(Debt, "before_update")
def _debt_before_save(mapper, connection, target: Debt) -> None:
    target.recalculate()


class DebtPayment(db.Model):
    """Single payment against a debt."""
    __tablename__ = "debt_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    debt_id = db.Column(db.Integer, db.ForeignKey("debts.id"), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    note = db.Column(db.String(255), nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    received_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": self.amount,
            "paymentMethod": self.payment_method,
            "note": self.note,
            "paidAt": to_utc_z(self.paid_at),
            "receivedBy": self.received_by.to_ref() if self.received_by else None,
        }
