# Overview: Contracts for the externally owned Inventory Ledger and Catalog,
# plus their SQL-backed implementations.

from __future__ import annotations

from typing import Protocol

from ..extensions import db
from ..models import InventoryLevel, Product, Warehouse


class InventoryLedger(Protocol):
    def get_level(self, product_id: int, warehouse_id: int) -> int: ...

    def list_all(self) -> list[tuple[int, int, int]]: ...


class Catalog(Protocol):
    def product_exists(self, product_id: int) -> bool: ...

    def warehouse_exists(self, warehouse_id: int) -> bool: ...


class SqlInventoryLedger:
    """Reads on-hand levels from the inventory_levels table."""

    def get_level(self, product_id: int, warehouse_id: int) -> int:
        quantity = (
            db.session.query(InventoryLevel.quantity)
            .filter_by(product_id=product_id, warehouse_id=warehouse_id)
            .scalar()
        )
        # A pair with no row has never held stock
        return int(quantity or 0)

    def list_all(self) -> list[tuple[int, int, int]]:
        rows = (
            db.session.query(InventoryLevel.product_id, InventoryLevel.warehouse_id, InventoryLevel.quantity)
            .order_by(InventoryLevel.warehouse_id, InventoryLevel.product_id)
            .all()
        )
        return [(int(p), int(w), int(q)) for p, w, q in rows]


class SqlCatalog:
    """Existence checks against the catalog tables. Inactive rows do not count."""

    def product_exists(self, product_id: int) -> bool:
        return db.session.query(
            db.session.query(Product.id).filter_by(id=product_id, is_active=True).exists()
        ).scalar()

    def warehouse_exists(self, warehouse_id: int) -> bool:
        return db.session.query(
            db.session.query(Warehouse.id).filter_by(id=warehouse_id, is_active=True).exists()
        ).scalar()


def resolve_ledger(ledger: InventoryLedger | None) -> InventoryLedger:
    return ledger if ledger is not None else SqlInventoryLedger()


def resolve_catalog(catalog: Catalog | None) -> Catalog:
    return catalog if catalog is not None else SqlCatalog()
