# backend/stockflow/services/inventory_service.py
"""
Inventory side effects of completed documents.

Lifecycle services never touch on-hand quantities. When a transfer or an
adjustment reaches COMPLETED the caller applies it here, in the same
transaction, so the document and the levels commit (or roll back)
together:

- transfer:   received_quantity leaves the source and lands at the destination
- adjustment: each approved delta is added at the adjustment's warehouse

On-hand may never go negative. Every level change writes a StockMovement
row tagged with its document, and every touched (product, warehouse) pair
is handed to stock_alert_service.reconcile_pair afterwards.
"""
from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import InventoryLevel, StockAdjustment, StockMovement, StockTransfer
from ..time_utils import utcnow
from ..validation import ConcurrencyError, ConflictError, ValidationError
from . import stock_alert_service
from .adjustment_service import ADJUSTMENT_STATUS_COMPLETED, ITEM_STATUS_APPROVED
from .concurrency import lock_for_update
from .transfer_service import TRANSFER_STATUS_COMPLETED


# Movement document types
DOCUMENT_TYPE_TRANSFER = "TRANSFER"
DOCUMENT_TYPE_ADJUSTMENT = "ADJUSTMENT"

DOCUMENT_TYPES = (DOCUMENT_TYPE_TRANSFER, DOCUMENT_TYPE_ADJUSTMENT)


def _locked_level(product_id: int, warehouse_id: int) -> InventoryLevel:
    level = lock_for_update(
        db.session.query(InventoryLevel).filter_by(product_id=product_id, warehouse_id=warehouse_id)
    ).first()
    if level is None:
        level = InventoryLevel(product_id=product_id, warehouse_id=warehouse_id, quantity=0)
        db.session.add(level)
    return level


def adjust_level(
    product_id: int,
    warehouse_id: int,
    delta: int,
    *,
    document_type: str,
    document_id: int | None = None,
    reference_code: str | None = None,
    user_id: int | None = None,
    now: datetime | None = None,
) -> int:
    """
    Add delta to on-hand for a pair, record the movement, return the new quantity.

    Raises:
        ValidationError: Zero delta, unknown document type, or the result
            would be negative
    """
    if document_type not in DOCUMENT_TYPES:
        raise ValidationError(f"Invalid document_type: {document_type!r}")
    if delta == 0:
        raise ValidationError("Movement quantity cannot be zero")

    level = _locked_level(product_id, warehouse_id)
    new_quantity = (level.quantity or 0) + delta
    if new_quantity < 0:
        raise ValidationError(
            f"Insufficient stock for product {product_id} at warehouse {warehouse_id}. "
            f"On-hand: {level.quantity or 0}, change: {delta}"
        )
    level.quantity = new_quantity

    db.session.add(
        StockMovement(
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity_delta=delta,
            quantity_after=new_quantity,
            document_type=document_type,
            document_id=document_id,
            reference_code=reference_code,
            performed_by=user_id,
            occurred_at=now or utcnow(),
        )
    )
    return new_quantity


def _finish(touched: dict[tuple[int, int], int]) -> dict[tuple[int, int], int]:
    try:
        db.session.flush()
    except StaleDataError as exc:
        raise ConcurrencyError(f"Inventory level changed concurrently: {exc}") from exc

    for (product_id, warehouse_id), quantity in touched.items():
        stock_alert_service.reconcile_pair(product_id, warehouse_id, quantity)
    return touched


def apply_transfer_completion(
    transfer: StockTransfer,
    user_id: int | None = None,
    *,
    now: datetime | None = None,
) -> dict[tuple[int, int], int]:
    """
    Move received quantities from source to destination.

    Movements are attributed to user_id, falling back to the user who
    completed the transfer.

    Returns:
        dict: {(product_id, warehouse_id): new on-hand} for every touched pair

    Raises:
        ConflictError: Transfer is not COMPLETED
        ValidationError: Source would go negative
    """
    if transfer.status != TRANSFER_STATUS_COMPLETED:
        raise ConflictError(f"Transfer {transfer.reference_code} is not COMPLETED")

    moment = now or utcnow()
    document = {
        "document_type": DOCUMENT_TYPE_TRANSFER,
        "document_id": transfer.id,
        "reference_code": transfer.reference_code,
        "user_id": user_id if user_id is not None else transfer.completed_by,
        "now": moment,
    }

    touched: dict[tuple[int, int], int] = {}
    for item in transfer.items:
        moved = item.received_quantity or 0
        if moved <= 0:
            continue
        source = (item.product_id, transfer.source_warehouse_id)
        destination = (item.product_id, transfer.destination_warehouse_id)
        touched[source] = adjust_level(*source, -moved, **document)
        touched[destination] = adjust_level(*destination, moved, **document)

    current_app.logger.info(
        "Transfer %s applied to inventory (%s level(s) touched)",
        transfer.reference_code, len(touched),
    )
    return _finish(touched)


def apply_adjustment_completion(
    adjustment: StockAdjustment,
    user_id: int | None = None,
    *,
    now: datetime | None = None,
) -> dict[tuple[int, int], int]:
    """
    Add every approved delta at the adjustment's warehouse.

    Rejected items are skipped. Movements fall back to the approving user.
    Raises the same errors as apply_transfer_completion.
    """
    if adjustment.status != ADJUSTMENT_STATUS_COMPLETED:
        raise ConflictError(f"Adjustment {adjustment.reference_code} is not COMPLETED")

    moment = now or utcnow()
    document = {
        "document_type": DOCUMENT_TYPE_ADJUSTMENT,
        "document_id": adjustment.id,
        "reference_code": adjustment.reference_code,
        "user_id": user_id if user_id is not None else adjustment.approved_by,
        "now": moment,
    }

    touched: dict[tuple[int, int], int] = {}
    for item in adjustment.items:
        if item.status != ITEM_STATUS_APPROVED:
            continue
        pair = (item.product_id, adjustment.warehouse_id)
        touched[pair] = adjust_level(*pair, item.quantity, **document)

    current_app.logger.info(
        "Adjustment %s applied to inventory (%s level(s) touched)",
        adjustment.reference_code, len(touched),
    )
    return _finish(touched)


def list_movements(
    *,
    product_id: int | None = None,
    warehouse_id: int | None = None,
    document_type: str | None = None,
    reference_code: str | None = None,
    limit: int = 500,
) -> list[dict]:
    """List stock movements oldest first."""
    query = db.session.query(StockMovement)

    if product_id:
        query = query.filter(StockMovement.product_id == product_id)
    if warehouse_id:
        query = query.filter(StockMovement.warehouse_id == warehouse_id)
    if document_type:
        if document_type not in DOCUMENT_TYPES:
            raise ValidationError(f"Invalid document_type: {document_type!r}")
        query = query.filter(StockMovement.document_type == document_type)
    if reference_code:
        query = query.filter(StockMovement.reference_code == reference_code)

    limit = max(1, min(limit, 500))
    movements = query.order_by(StockMovement.occurred_at.asc(), StockMovement.id.asc()).limit(limit).all()
    return [m.to_dict() for m in movements]
