from __future__ import annotations

from ..extensions import db
from stockflow.time_utils import to_utc_z


class StockMovement(db.Model):
    """
    Append-only record of one change to an InventoryLevel.

    Written by services.inventory_service.adjust_level in the same
    transaction as the level change, so summing quantity_delta per pair
    always reproduces on-hand. Rows are never updated or deleted.

    DOCUMENT TYPES:
    - TRANSFER: one OUT row at the source and one IN row at the destination
    - ADJUSTMENT: one row per approved adjustment item
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity_delta <> 0", name="ck_stock_movements_delta_nonzero"),
        db.CheckConstraint("quantity_after >= 0", name="ck_stock_movements_after_nonnegative"),
        db.Index("ix_stock_movements_pair_occurred", "product_id", "warehouse_id", "occurred_at"),
        db.Index("ix_stock_movements_document", "document_type", "document_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    # Signed: negative leaves the warehouse, positive arrives
    quantity_delta = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    # TRANSFER, ADJUSTMENT
    document_type = db.Column(db.String(16), nullable=False)
    document_id = db.Column(db.Integer, nullable=True)
    reference_code = db.Column(db.String(32), nullable=True, index=True)

    performed_by = db.Column(db.Integer, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} product={self.product_id} warehouse={self.warehouse_id} "
            f"delta={self.quantity_delta} ref={self.reference_code!r}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "quantity_delta": self.quantity_delta,
            "quantity_after": self.quantity_after,
            "document_type": self.document_type,
            "document_id": self.document_id,
            "reference_code": self.reference_code,
            "performed_by": self.performed_by,
            "occurred_at": to_utc_z(self.occurred_at),
        }
