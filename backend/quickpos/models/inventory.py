from __future__ import annotations

from ..extensions import db
from quickpos.time_utils import to_utc_z, to_iso_date

MOVEMENT_IMPORT = "import"
MOVEMENT_EXPORT = "export"
MOVEMENT_SALE = "sale"
MOVEMENT_SALE_RETURN = "sale_return"
MOVEMENT_ADJUST = "adjust"

MOVEMENT_TYPES = (
    MOVEMENT_IMPORT,
    MOVEMENT_EXPORT,
    MOVEMENT_SALE,
    MOVEMENT_SALE_RETURN,
    MOVEMENT_ADJUST,
)


class InventoryMovement(db.Model):
    """
    Append-only stock ledger.

    Quantity on hand for a product is SUM(quantity_delta) over ALL of its
    rows, voided ones included: voiding is an administrative correction that
    hides a row from history without reversing its stock effect.

    Sign convention: import / sale_return are positive, export / sale are
    negative, adjust may be either.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_invmv_product_created", "product_id", "created_at"),
        db.Index("ix_invmv_product_type_created", "product_id", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Nulled when the product is deleted; the movement stays in the ledger
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_name = db.Column(db.String(100), nullable=False)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)

    # Import metadata
    import_price = db.Column(db.Integer, nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    supplier = db.Column(db.String(255), nullable=True)

    unit = db.Column(db.String(32), nullable=False)
    batch_number = db.Column(db.String(64), nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)

    # Set for sale / sale_return movements
    order_number = db.Column(db.String(32), nullable=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    product = db.relationship("Product")
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    @property
    def quantity(self) -> int:
        return abs(self.quantity_delta)

    def to_dict(self, *, include_refs: bool = False) -> dict:
        data = {
            "id": self.id,
            "productId": self.product_id,
            "productName": self.product_name,
            "type": self.type,
            "quantity": self.quantity,
            "quantityDelta": self.quantity_delta,
            "importPrice": self.import_price,
            "expiryDate": to_iso_date(self.expiry_date),
            "supplier": self.supplier,
            "unit": self.unit,
            "batchNumber": self.batch_number,
            "note": self.note,
            "orderNumber": self.order_number,
            "createdBy": self.created_by_user_id,
            "createdAt": to_utc_z(self.created_at),
            "voidedAt": to_utc_z(self.voided_at) if self.voided_at else None,
        }
        if include_refs:
            data["product"] = self.product.to_ref() if self.product else None
            data["createdBy"] = self.created_by.to_ref() if self.created_by else None
        return data
