from __future__ import annotations

from ..extensions import db
from stockflow.time_utils import to_utc_z


class StockAlert(db.Model):
    """
    Low-stock alert for one (product, warehouse) pair.

    STATUS:
    - active: current_quantity <= threshold
    - resolved: current_quantity > threshold
    - ignored: user override, never cleared by reconciliation

    current_quantity is the last level observed by the reconciler (or by
    threshold registration), denormalized so dashboards need no join
    against inventory.
    """
    __tablename__ = "stock_alerts"
    __table_args__ = (
        db.UniqueConstraint("product_id", "warehouse_id", name="uq_stock_alerts_product_warehouse"),
        db.Index("ix_stock_alerts_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    # low_stock, out_of_stock, overstock
    alert_type = db.Column(db.String(16), nullable=False, default="low_stock")

    # active, resolved, ignored
    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    threshold = db.Column(db.Integer, nullable=False, default=10)
    current_quantity = db.Column(db.Integer, nullable=False, default=0)
    message = db.Column(db.Text, nullable=True)

    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    warehouse = db.relationship("Warehouse")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<StockAlert id={self.id} product_id={self.product_id} "
            f"warehouse_id={self.warehouse_id} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "alert_type": self.alert_type,
            "status": self.status,
            "threshold": self.threshold,
            "current_quantity": self.current_quantity,
            "message": self.message,
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
            "resolved_by": self.resolved_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
