# backend/stockflow/services/adjustment_service.py
"""
Stock adjustment service.

WHY: Recorded stock drifts from what is on the shelf (damage, theft,
miscounts). An adjustment proposes per-product corrections at one
warehouse; each line is approved or rejected on its own.

LIFECYCLE:
1. PENDING: Adjustment created, items awaiting decisions
2. COMPLETED: Every item approved or rejected
3. CANCELLED: Cancelled while PENDING

Item quantities are signed deltas. current_stock/new_stock are snapshots
from the Inventory Ledger at creation time and are not refreshed later.
Applying approved deltas to inventory is the caller's job
(services.inventory_service.apply_adjustment_completion).
"""
from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import StockAdjustment, AdjustmentItem
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_int,
    parse_adjustment_items,
)
from .collaborators import Catalog, InventoryLedger, resolve_catalog, resolve_ledger
from .concurrency import lock_for_update, run_with_retry
from .reference_service import ADJUSTMENT_ENTITY, ADJUSTMENT_PREFIX, allocate_reference_code


# Adjustment status constants
ADJUSTMENT_STATUS_PENDING = "PENDING"
ADJUSTMENT_STATUS_COMPLETED = "COMPLETED"
ADJUSTMENT_STATUS_CANCELLED = "CANCELLED"

ADJUSTMENT_STATUSES = (
    ADJUSTMENT_STATUS_PENDING,
    ADJUSTMENT_STATUS_COMPLETED,
    ADJUSTMENT_STATUS_CANCELLED,
)

# Item status constants
ITEM_STATUS_PENDING = "pending"
ITEM_STATUS_APPROVED = "approved"
ITEM_STATUS_REJECTED = "rejected"

DECISIONS = (ITEM_STATUS_APPROVED, ITEM_STATUS_REJECTED)
TERMINAL_ITEM_STATUSES = DECISIONS


def _locked_adjustment(adjustment_id: int) -> StockAdjustment:
    adjustment = lock_for_update(db.session.query(StockAdjustment).filter_by(id=adjustment_id)).first()
    if not adjustment:
        raise NotFoundError(f"Adjustment {adjustment_id} not found")
    return adjustment


def _items_of(adjustment_id: int) -> list[AdjustmentItem]:
    return (
        db.session.query(AdjustmentItem)
        .filter_by(adjustment_id=adjustment_id)
        .order_by(AdjustmentItem.id)
        .populate_existing()
        .all()
    )


def create_adjustment(
    warehouse_id: int,
    reason: str,
    items,
    user_id: int,
    notes: str | None = None,
    *,
    ledger: InventoryLedger | None = None,
    catalog: Catalog | None = None,
    now: datetime | None = None,
) -> StockAdjustment:
    """
    Create a PENDING adjustment with all of its items.

    Args:
        warehouse_id: Warehouse being corrected
        reason: Why the correction is needed (required)
        items: Iterable of {"product_id", "quantity", "unit_cost_cents"?, "reason"?}
        user_id: User initiating the adjustment

    Returns:
        StockAdjustment: The created adjustment (flushed, not committed)

    Raises:
        ValidationError: Missing reason, no items, zero quantity, a delta
            that would take stock below zero, or unknown warehouse/product
    """
    ledger = resolve_ledger(ledger)
    catalog = resolve_catalog(catalog)

    warehouse = coerce_int("warehouse_id", warehouse_id)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required")

    lines = parse_adjustment_items(items)

    seen: set[int] = set()
    for line in lines:
        if line.product_id in seen:
            raise ValidationError(f"Product {line.product_id} appears more than once on this adjustment")
        seen.add(line.product_id)

    if not catalog.warehouse_exists(warehouse):
        raise ValidationError(f"Warehouse {warehouse} not found")

    snapshots = []
    for line in lines:
        if not catalog.product_exists(line.product_id):
            raise ValidationError(f"Product {line.product_id} not found")
        current_stock = ledger.get_level(line.product_id, warehouse)
        new_stock = current_stock + line.quantity
        if new_stock < 0:
            raise ValidationError(
                f"Adjustment would take product {line.product_id} below zero. "
                f"On-hand: {current_stock}, delta: {line.quantity}"
            )
        snapshots.append((line, current_stock, new_stock))

    def _op():
        moment = now or utcnow()
        reference_code = allocate_reference_code(
            prefix=ADJUSTMENT_PREFIX,
            entity_type=ADJUSTMENT_ENTITY,
            now=moment,
        )

        adjustment = StockAdjustment(
            warehouse_id=warehouse,
            reference_code=reference_code,
            status=ADJUSTMENT_STATUS_PENDING,
            reason=reason,
            notes=notes,
            initiated_by=user_id,
            initiated_at=moment,
        )
        for line, current_stock, new_stock in snapshots:
            adjustment.items.append(
                AdjustmentItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    current_stock=current_stock,
                    new_stock=new_stock,
                    unit_cost_cents=line.unit_cost_cents,
                    reason=line.reason,
                    status=ITEM_STATUS_PENDING,
                )
            )

        db.session.add(adjustment)
        db.session.flush()

        current_app.logger.info(
            "Adjustment %s created at warehouse %s with %s item(s)",
            adjustment.reference_code, warehouse, len(snapshots),
        )
        return adjustment

    return run_with_retry(_op)


def decide_item(
    item_id: int,
    decision: str,
    user_id: int | None = None,
    *,
    now: datetime | None = None,
) -> AdjustmentItem:
    """
    Approve or reject one adjustment item.

    When the last undecided item is decided the adjustment becomes
    COMPLETED (same transaction, parent row locked).

    Raises:
        ValidationError: decision is not approved/rejected
        NotFoundError: Unknown item
        ConflictError: Item already decided, or adjustment not PENDING
    """
    if decision not in DECISIONS:
        raise ValidationError(f"Invalid decision: {decision!r}. Expected 'approved' or 'rejected'")

    def _op():
        item = db.session.query(AdjustmentItem).filter_by(id=item_id).first()
        if not item:
            raise NotFoundError(f"Adjustment item {item_id} not found")

        adjustment = _locked_adjustment(item.adjustment_id)

        # Re-read the item under the parent lock
        db.session.refresh(item)
        if item.status in TERMINAL_ITEM_STATUSES:
            raise ConflictError(f"Adjustment item {item_id} is already {item.status}")
        if adjustment.status != ADJUSTMENT_STATUS_PENDING:
            raise ConflictError(f"Cannot decide items on adjustment in {adjustment.status} status")

        moment = now or utcnow()
        item.status = decision
        item.decided_by = user_id
        item.decided_at = moment
        db.session.flush()

        siblings = _items_of(adjustment.id)
        if all(s.status in TERMINAL_ITEM_STATUSES for s in siblings):
            adjustment.status = ADJUSTMENT_STATUS_COMPLETED
            adjustment.approved_by = user_id
            adjustment.approved_at = moment
            current_app.logger.info(
                "Adjustment %s completed (%s approved, %s rejected)",
                adjustment.reference_code,
                sum(1 for s in siblings if s.status == ITEM_STATUS_APPROVED),
                sum(1 for s in siblings if s.status == ITEM_STATUS_REJECTED),
            )
        # Touch the parent so its version column guards the sibling check
        adjustment.updated_at = moment
        db.session.flush()

        return item

    return run_with_retry(_op)


def cancel_adjustment(
    adjustment_id: int,
    user_id: int | None = None,
    reason: str | None = None,
    *,
    now: datetime | None = None,
) -> StockAdjustment:
    """
    Cancel a PENDING adjustment. Decisions already made stay as they are.

    Raises:
        NotFoundError: Unknown adjustment
        ConflictError: Adjustment is not PENDING
    """
    def _op():
        adjustment = _locked_adjustment(adjustment_id)

        if adjustment.status != ADJUSTMENT_STATUS_PENDING:
            raise ConflictError(
                f"Cannot cancel adjustment in {adjustment.status} status. "
                f"Adjustments can only be cancelled while PENDING."
            )

        adjustment.status = ADJUSTMENT_STATUS_CANCELLED
        adjustment.cancelled_by = user_id
        adjustment.cancelled_at = now or utcnow()
        adjustment.cancellation_reason = reason
        db.session.flush()

        current_app.logger.info("Adjustment %s cancelled", adjustment.reference_code)
        return adjustment

    return run_with_retry(_op)


def get_adjustment(adjustment_id: int) -> StockAdjustment:
    adjustment = db.session.get(StockAdjustment, adjustment_id)
    if not adjustment:
        raise NotFoundError(f"Adjustment {adjustment_id} not found")
    return adjustment


def get_adjustment_summary(adjustment_id: int) -> dict:
    adjustment = get_adjustment(adjustment_id)
    return {
        **adjustment.to_dict(),
        "items": [item.to_dict() for item in _items_of(adjustment.id)],
    }


def list_adjustments(
    *,
    status: str | None = None,
    warehouse_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[dict], int]:
    query = db.session.query(StockAdjustment)

    if status:
        if status not in ADJUSTMENT_STATUSES:
            raise ValidationError(f"Invalid adjustment status: {status!r}")
        query = query.filter(StockAdjustment.status == status)
    if warehouse_id:
        query = query.filter(StockAdjustment.warehouse_id == warehouse_id)

    total = query.count()

    if offset < 0:
        offset = 0
    if limit < 1:
        limit = 1
    if limit > 500:
        limit = 500

    adjustments = (
        query.order_by(StockAdjustment.initiated_at.desc(), StockAdjustment.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return [a.to_dict() for a in adjustments], total
