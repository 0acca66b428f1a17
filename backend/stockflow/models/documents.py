from __future__ import annotations

from ..extensions import db
from stockflow.time_utils import to_utc_z


class StockTransfer(db.Model):
    """
    Inter-warehouse stock transfer document.

    LIFECYCLE:
    1. PENDING: Created with its items, nothing received yet
    2. IN_TRANSIT: Shipped, or at least one item partially received
    3. COMPLETED: Every item received in full
    4. CANCELLED: Cancelled before completion (terminal)

    Status is derived from item statuses after every receipt update
    (services.transfer_service.recompute_transfer_status). The only
    exception is an explicit bulk status change, which drives the items
    instead.

    Reference codes look like "TRF-2610-0007" and come from
    ReferenceSequence, never from counting existing rows.
    """
    __tablename__ = "stock_transfers"
    __table_args__ = (
        db.UniqueConstraint("reference_code", name="uq_stock_transfers_reference_code"),
        db.CheckConstraint(
            "source_warehouse_id <> destination_warehouse_id",
            name="ck_stock_transfers_distinct_warehouses",
        ),
        db.Index("ix_stock_transfers_status_initiated", "status", "initiated_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    source_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    destination_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    reference_code = db.Column(db.String(32), nullable=False)

    # PENDING, IN_TRANSIT, COMPLETED, CANCELLED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    notes = db.Column(db.Text, nullable=True)

    # User attribution (user directory lives outside this service)
    initiated_by = db.Column(db.Integer, nullable=False)
    completed_by = db.Column(db.Integer, nullable=True)

    initiated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "TransferItem",
        back_populates="transfer",
        cascade="all, delete-orphan",
        order_by="TransferItem.id",
        lazy=True,
    )
    source_warehouse = db.relationship("Warehouse", foreign_keys=[source_warehouse_id])
    destination_warehouse = db.relationship("Warehouse", foreign_keys=[destination_warehouse_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockTransfer id={self.id} ref={self.reference_code!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_warehouse_id": self.source_warehouse_id,
            "destination_warehouse_id": self.destination_warehouse_id,
            "reference_code": self.reference_code,
            "status": self.status,
            "notes": self.notes,
            "initiated_by": self.initiated_by,
            "completed_by": self.completed_by,
            "initiated_at": to_utc_z(self.initiated_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class TransferItem(db.Model):
    """
    Line item on a transfer.

    received_quantity stays NULL until the destination reports a receipt;
    once set it is kept within [0, quantity].
    """
    __tablename__ = "transfer_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transfer_items_quantity_positive"),
        db.CheckConstraint("unit_cost_cents >= 0", name="ck_transfer_items_unit_cost"),
        db.CheckConstraint(
            "received_quantity IS NULL OR (received_quantity >= 0 AND received_quantity <= quantity)",
            name="ck_transfer_items_received_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(
        db.Integer,
        db.ForeignKey("stock_transfers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    received_quantity = db.Column(db.Integer, nullable=True)

    # pending, in_transit, partial, completed, cancelled
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    transfer = db.relationship("StockTransfer", back_populates="items")
    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "received_quantity": self.received_quantity,
            "status": self.status,
            "received_at": to_utc_z(self.received_at) if self.received_at else None,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class StockAdjustment(db.Model):
    """
    Stock correction document for a single warehouse.

    LIFECYCLE:
    1. PENDING: Items awaiting approve/reject decisions
    2. COMPLETED: Every item decided (approved or rejected)
    3. CANCELLED: Cancelled while still PENDING (terminal)

    Item quantities are signed deltas; current_stock/new_stock on each
    item are snapshots taken when the adjustment was created.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.UniqueConstraint("reference_code", name="uq_stock_adjustments_reference_code"),
        db.Index("ix_stock_adjustments_warehouse_status", "warehouse_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    reference_code = db.Column(db.String(32), nullable=False)

    # PENDING, COMPLETED, CANCELLED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    reason = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    initiated_by = db.Column(db.Integer, nullable=False)
    approved_by = db.Column(db.Integer, nullable=True)
    cancelled_by = db.Column(db.Integer, nullable=True)

    initiated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "AdjustmentItem",
        back_populates="adjustment",
        cascade="all, delete-orphan",
        order_by="AdjustmentItem.id",
        lazy=True,
    )
    warehouse = db.relationship("Warehouse")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockAdjustment id={self.id} ref={self.reference_code!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "reference_code": self.reference_code,
            "status": self.status,
            "reason": self.reason,
            "notes": self.notes,
            "initiated_by": self.initiated_by,
            "approved_by": self.approved_by,
            "cancelled_by": self.cancelled_by,
            "initiated_at": to_utc_z(self.initiated_at),
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class AdjustmentItem(db.Model):
    __tablename__ = "adjustment_items"
    __table_args__ = (
        db.CheckConstraint("quantity <> 0", name="ck_adjustment_items_quantity_nonzero"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    adjustment_id = db.Column(
        db.Integer,
        db.ForeignKey("stock_adjustments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Signed delta applied to on-hand when approved
    quantity = db.Column(db.Integer, nullable=False)

    # Snapshots at creation time
    current_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    reason = db.Column(db.String(255), nullable=True)

    # pending, approved, rejected
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    decided_by = db.Column(db.Integer, nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    adjustment = db.relationship("StockAdjustment", back_populates="items")
    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "adjustment_id": self.adjustment_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "current_stock": self.current_stock,
            "new_stock": self.new_stock,
            "unit_cost_cents": self.unit_cost_cents,
            "reason": self.reason,
            "status": self.status,
            "decided_by": self.decided_by,
            "decided_at": to_utc_z(self.decided_at) if self.decided_at else None,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class ReferenceSequence(db.Model):
    """
    Atomic monthly reference sequences.

    One row per (entity_type, year, month). next_number is bumped with a
    single UPDATE so two concurrent creations can never read the same
    value.
    """
    __tablename__ = "reference_sequences"
    __table_args__ = (
        db.UniqueConstraint("entity_type", "year", "month", name="uq_reference_sequences_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(32), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "year": self.year,
            "month": self.month,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
