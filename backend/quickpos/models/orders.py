from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from quickpos.time_utils import to_utc_z

ORDER_STATUSES = ("pending", "processing", "completed", "cancelled", "refunded")
PAYMENT_METHODS = ("cash", "momo", "banking", "card", "debt")

DEFAULT_CUSTOMER_NAME = "Khách lẻ"


class Order(db.Model):
    """
    Sales order created at checkout.

    WHY: An order is the permanent record of a sale. Items are immutable
    once written; the only post-creation mutation is a status transition.

    TOTALS:
    subtotal and total are always recomputed from the item rows and the
    discount (see recalculate_totals and the before_insert hook below).
    total may be negative: the discount is not capped at the subtotal.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_customer_phone", "customer_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # "ORD-0001", allocated from DocumentSequence
    order_number = db.Column(db.String(32), nullable=False)

    subtotal = db.Column(db.Integer, nullable=False, default=0)
    discount = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False, default=0)
    customer_payment = db.Column(db.Integer, nullable=False, default=0)
    change = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, default="cash")

    # Customer snapshot at time of sale
    customer_name = db.Column(db.String(100), nullable=False, default=DEFAULT_CUSTOMER_NAME)
    customer_phone = db.Column(db.String(20), nullable=True)
    customer_address = db.Column(db.String(200), nullable=True)

    staff_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    staff = db.relationship("User")
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def recalculate_totals(self) -> None:
        self.subtotal = sum(item.total for item in self.items)
        self.total = self.subtotal - (self.discount or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "items": [item.to_dict() for item in self.items],
            "subtotal": self.subtotal,
            "discount": self.discount,
            "total": self.total,
            "customerPayment": self.customer_payment,
            "change": self.change,
            "paymentMethod": self.payment_method,
            "customer": {
                "name": self.customer_name,
                "phone": self.customer_phone,
                "address": self.customer_address,
            },
            "staff": self.staff.to_ref() if self.staff else None,
            "status": self.status,
            "notes": self.notes,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


@event.listens_for(Order, "before_insert")
def _order_before_insert(mapper, connection, target: Order) -> None:
    target.recalculate_totals()


class OrderItem(db.Model):
    """
    Line on an order.

    product_id is a soft reference: products may be deleted after the sale,
    so the name is snapshotted and there is no foreign key.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=True, index=True)

    name = db.Column(db.String(100), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Integer, nullable=False)
    total = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "price": self.price,
            "total": self.total,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-type document sequences.

    WHY: Prevent race conditions when generating order numbers.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
