from __future__ import annotations

from ..extensions import db
from stockflow.time_utils import to_utc_z


class Warehouse(db.Model):
    """
    Stock-holding location.

    Owned by the catalog side of the back-office; this subsystem only
    checks existence (see services.collaborators.SqlCatalog).
    """
    __tablename__ = "warehouses"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_warehouses_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "location": self.location,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryLevel(db.Model):
    """
    On-hand quantity per (product, warehouse).

    This is the SQL backing for the Inventory Ledger contract. Lifecycle
    services only read it; writes go through services.inventory_service
    in the same transaction as the document that caused them.
    """
    __tablename__ = "inventory_levels"
    __table_args__ = (
        db.UniqueConstraint("product_id", "warehouse_id", name="uq_inventory_levels_product_warehouse"),
        db.Index("ix_inventory_levels_warehouse", "warehouse_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

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

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
