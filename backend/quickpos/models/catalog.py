from __future__ import annotations

from ..extensions import db
from quickpos.time_utils import to_utc_z, to_iso_date

DEFAULT_CATEGORY = "Khác"
DEFAULT_UNIT = "cái"


class Product(db.Model):
    """
    Product master data.

    STOCK DESIGN DECISION:
    The append-only InventoryMovement ledger is the source of truth for
    quantity on hand. Product.stock is a materialised copy of
    SUM(quantity_delta) that is written ONLY by
    inventory_service.record_movement(), in the same transaction as the
    movement row. Never assign it anywhere else.

    VARIANTS:
    Receiving the same nominal item with a different barcode or expiry date
    creates a new Product row (a batch variant). variant_of_id points at the
    record it was split from so the lots can be grouped again.
    """
    __tablename__ = "products"
    __table_args__ = (
        # NULL barcodes are allowed more than once; blank strings are stored as NULL
        db.UniqueConstraint("barcode", name="uq_products_barcode"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category_active", "category", "is_active"),
        db.Index("ix_products_name_batch", "name", "batch_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Whole currency units (VND has no minor unit)
    price = db.Column(db.Integer, nullable=False, default=0)
    cost = db.Column(db.Integer, nullable=False, default=0)

    # Materialised from the ledger; see class docstring
    stock = db.Column(db.Integer, nullable=False, default=0)

    barcode = db.Column(db.String(64), nullable=True)
    category = db.Column(db.String(64), nullable=False, default=DEFAULT_CATEGORY)
    unit = db.Column(db.String(32), nullable=False, default=DEFAULT_UNIT)

    expiry_date = db.Column(db.Date, nullable=True, index=True)
    supplier = db.Column(db.String(255), nullable=True)
    batch_number = db.Column(db.String(64), nullable=True)
    images = db.Column(db.JSON, nullable=False, default=list)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # NULL -> app config LOW_STOCK_THRESHOLD
    low_stock_threshold = db.Column(db.Integer, nullable=True)

    variant_of_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    variant_of = db.relationship("Product", remote_side=[id], backref=db.backref("variants", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} barcode={self.barcode!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "cost": self.cost,
            "stock": self.stock,
            "barcode": self.barcode,
            "category": self.category,
            "unit": self.unit,
            "expiryDate": to_iso_date(self.expiry_date),
            "supplier": self.supplier,
            "batchNumber": self.batch_number,
            "images": list(self.images or []),
            "isActive": self.is_active,
            "lowStockThreshold": self.low_stock_threshold,
            "variantOfId": self.variant_of_id,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }

    def to_ref(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "unit": self.unit,
        }
