# backend/stockflow/services/transfer_service.py
"""
Inter-warehouse transfer service.

Keeps a StockTransfer and its TransferItems consistent as goods move.

LIFECYCLE:
1. PENDING: Transfer created with its items
2. IN_TRANSIT: Shipped (bulk change) or some item partially received
3. COMPLETED: Every item received in full
4. CANCELLED: Cancelled before completion

Item receipts drive the parent: after every set_item_received call the
transfer status is recomputed from the current set of item statuses, in
the same transaction and with the parent row locked. Bulk status changes
(set_transfer_status) go the other way and drive the items.

Inventory movement is the caller's job (services.inventory_service);
nothing here writes to the Inventory Ledger.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable

from flask import current_app

from ..extensions import db
from ..models import StockTransfer, TransferItem
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_int,
    parse_transfer_items,
)
from .collaborators import Catalog, resolve_catalog
from .concurrency import lock_for_update, run_with_retry
from .reference_service import TRANSFER_ENTITY, TRANSFER_PREFIX, allocate_reference_code


# Transfer status constants
TRANSFER_STATUS_PENDING = "PENDING"
TRANSFER_STATUS_IN_TRANSIT = "IN_TRANSIT"
TRANSFER_STATUS_COMPLETED = "COMPLETED"
TRANSFER_STATUS_CANCELLED = "CANCELLED"

TRANSFER_STATUSES = (
    TRANSFER_STATUS_PENDING,
    TRANSFER_STATUS_IN_TRANSIT,
    TRANSFER_STATUS_COMPLETED,
    TRANSFER_STATUS_CANCELLED,
)
TERMINAL_TRANSFER_STATUSES = (TRANSFER_STATUS_COMPLETED, TRANSFER_STATUS_CANCELLED)

# Item status constants
ITEM_STATUS_PENDING = "pending"
ITEM_STATUS_IN_TRANSIT = "in_transit"
ITEM_STATUS_PARTIAL = "partial"
ITEM_STATUS_COMPLETED = "completed"
ITEM_STATUS_CANCELLED = "cancelled"

TERMINAL_ITEM_STATUSES = (ITEM_STATUS_COMPLETED, ITEM_STATUS_CANCELLED)

# Explicit bulk transitions: current status -> allowed targets
ALLOWED_BULK_TRANSITIONS = {
    TRANSFER_STATUS_PENDING: (
        TRANSFER_STATUS_IN_TRANSIT,
        TRANSFER_STATUS_CANCELLED,
        TRANSFER_STATUS_COMPLETED,
    ),
    TRANSFER_STATUS_IN_TRANSIT: (
        TRANSFER_STATUS_CANCELLED,
        TRANSFER_STATUS_COMPLETED,
    ),
}


def item_status_for_receipt(received_quantity: int, quantity: int) -> str:
    if received_quantity == 0:
        return ITEM_STATUS_PENDING
    if received_quantity < quantity:
        return ITEM_STATUS_PARTIAL
    return ITEM_STATUS_COMPLETED


def derive_transfer_status(current_status: str, item_statuses: Iterable[str]) -> str:
    """
    Aggregate status from item statuses.

    All completed -> COMPLETED; any partial -> IN_TRANSIT; otherwise the
    current status is kept. Terminal statuses are never left.
    """
    if current_status in TERMINAL_TRANSFER_STATUSES:
        return current_status
    statuses = list(item_statuses)
    if statuses and all(s == ITEM_STATUS_COMPLETED for s in statuses):
        return TRANSFER_STATUS_COMPLETED
    if any(s == ITEM_STATUS_PARTIAL for s in statuses):
        return TRANSFER_STATUS_IN_TRANSIT
    return current_status


def _items_of(transfer_id: int) -> list[TransferItem]:
    # Always re-read from the database; never trust a loaded collection
    return (
        db.session.query(TransferItem)
        .filter_by(transfer_id=transfer_id)
        .order_by(TransferItem.id)
        .populate_existing()
        .all()
    )


def _locked_transfer(transfer_id: int) -> StockTransfer:
    transfer = lock_for_update(db.session.query(StockTransfer).filter_by(id=transfer_id)).first()
    if not transfer:
        raise NotFoundError(f"Transfer {transfer_id} not found")
    return transfer


def recompute_transfer_status(
    transfer: StockTransfer,
    *,
    user_id: int | None = None,
    now: datetime | None = None,
) -> str:
    """
    Re-derive and persist the transfer status from its current items.

    Callers hold the parent row lock. The parent row is always touched so
    its version column moves, which turns a racing sibling update into a
    StaleDataError instead of a stale aggregate.
    """
    moment = now or utcnow()
    db.session.flush()
    statuses = [item.status for item in _items_of(transfer.id)]
    new_status = derive_transfer_status(transfer.status, statuses)

    if new_status != transfer.status:
        current_app.logger.info(
            "Transfer %s status %s -> %s (derived from items)",
            transfer.reference_code, transfer.status, new_status,
        )
        transfer.status = new_status
    if new_status == TRANSFER_STATUS_COMPLETED:
        if transfer.completed_at is None:
            transfer.completed_at = moment
        if transfer.completed_by is None and user_id is not None:
            transfer.completed_by = user_id

    transfer.updated_at = moment
    db.session.flush()
    return transfer.status


def create_transfer(
    source_warehouse_id: int,
    destination_warehouse_id: int,
    items,
    user_id: int,
    notes: str | None = None,
    *,
    catalog: Catalog | None = None,
    now: datetime | None = None,
) -> StockTransfer:
    """
    Create a PENDING transfer with all of its items.

    Args:
        source_warehouse_id: Warehouse the goods leave
        destination_warehouse_id: Warehouse the goods arrive at
        items: Iterable of {"product_id", "quantity", "unit_cost_cents"?}
        user_id: User initiating the transfer
        notes: Optional free text

    Returns:
        StockTransfer: The created transfer (flushed, not committed)

    Raises:
        ValidationError: Same warehouse, no items, bad quantity/cost, or
            unknown warehouse/product
    """
    catalog = resolve_catalog(catalog)

    # Validate everything before the first write
    source_id = coerce_int("source_warehouse_id", source_warehouse_id)
    destination_id = coerce_int("destination_warehouse_id", destination_warehouse_id)
    if source_id == destination_id:
        raise ValidationError("Source and destination warehouses cannot be the same")

    lines = parse_transfer_items(items)

    seen: set[int] = set()
    for line in lines:
        if line.product_id in seen:
            raise ValidationError(f"Product {line.product_id} appears more than once on this transfer")
        seen.add(line.product_id)

    if not catalog.warehouse_exists(source_id):
        raise ValidationError(f"Source warehouse {source_id} not found")
    if not catalog.warehouse_exists(destination_id):
        raise ValidationError(f"Destination warehouse {destination_id} not found")
    for line in lines:
        if not catalog.product_exists(line.product_id):
            raise ValidationError(f"Product {line.product_id} not found")

    def _op():
        moment = now or utcnow()
        reference_code = allocate_reference_code(
            prefix=TRANSFER_PREFIX,
            entity_type=TRANSFER_ENTITY,
            now=moment,
        )

        transfer = StockTransfer(
            source_warehouse_id=source_id,
            destination_warehouse_id=destination_id,
            reference_code=reference_code,
            status=TRANSFER_STATUS_PENDING,
            notes=notes,
            initiated_by=user_id,
            initiated_at=moment,
        )
        for line in lines:
            transfer.items.append(
                TransferItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_cost_cents=line.unit_cost_cents,
                    received_quantity=None,
                    status=ITEM_STATUS_PENDING,
                )
            )

        db.session.add(transfer)
        db.session.flush()  # Get IDs

        current_app.logger.info(
            "Transfer %s created: warehouse %s -> %s, %s item(s)",
            transfer.reference_code, source_id, destination_id, len(lines),
        )
        return transfer

    return run_with_retry(_op)


def set_item_received(
    item_id: int,
    received_quantity,
    user_id: int | None = None,
    *,
    now: datetime | None = None,
) -> TransferItem:
    """
    Record how much of a transfer item has arrived.

    0 -> pending, 0 < r < quantity -> partial, r == quantity -> completed.
    The parent transfer status is recomputed in the same transaction.

    Raises:
        NotFoundError: Unknown item
        ValidationError: received_quantity outside [0, quantity]
        ConflictError: Transfer already COMPLETED or CANCELLED
    """
    received = coerce_int("received_quantity", received_quantity)

    def _op():
        item = db.session.query(TransferItem).filter_by(id=item_id).first()
        if not item:
            raise NotFoundError(f"Transfer item {item_id} not found")

        if received < 0 or received > item.quantity:
            raise ValidationError(
                f"received_quantity must be between 0 and {item.quantity}, got {received}"
            )

        transfer = _locked_transfer(item.transfer_id)
        if transfer.status in TERMINAL_TRANSFER_STATUSES:
            raise ConflictError(
                f"Cannot receive items on transfer in {transfer.status} status"
            )

        moment = now or utcnow()
        item.received_quantity = received
        item.status = item_status_for_receipt(received, item.quantity)
        item.received_at = moment if received > 0 else None

        recompute_transfer_status(transfer, user_id=user_id, now=moment)
        return item

    return run_with_retry(_op)


def set_transfer_status(
    transfer_id: int,
    new_status: str,
    user_id: int | None = None,
    *,
    now: datetime | None = None,
) -> StockTransfer:
    """
    Explicit bulk status change; drives item statuses.

    Allowed: PENDING -> IN_TRANSIT, PENDING|IN_TRANSIT -> CANCELLED,
    PENDING|IN_TRANSIT -> COMPLETED.

    Raises:
        ValidationError: Unknown status value
        NotFoundError: Unknown transfer
        ConflictError: Transition not allowed from the current status
    """
    if new_status not in TRANSFER_STATUSES:
        raise ValidationError(
            f"Invalid transfer status: {new_status!r}. Expected one of {', '.join(TRANSFER_STATUSES)}"
        )

    def _op():
        transfer = _locked_transfer(transfer_id)
        current = transfer.status

        if new_status not in ALLOWED_BULK_TRANSITIONS.get(current, ()):
            raise ConflictError(f"Cannot change transfer status from {current} to {new_status}")

        moment = now or utcnow()
        items = _items_of(transfer.id)

        if new_status == TRANSFER_STATUS_IN_TRANSIT:
            for item in items:
                if item.status not in TERMINAL_ITEM_STATUSES:
                    item.status = ITEM_STATUS_IN_TRANSIT

        elif new_status == TRANSFER_STATUS_COMPLETED:
            for item in items:
                if item.received_quantity is None:
                    item.received_quantity = item.quantity
                    item.status = ITEM_STATUS_COMPLETED
                    item.received_at = moment
            transfer.completed_at = moment
            transfer.completed_by = user_id

        elif new_status == TRANSFER_STATUS_CANCELLED:
            for item in items:
                item.status = ITEM_STATUS_CANCELLED

        transfer.status = new_status
        transfer.updated_at = moment
        db.session.flush()

        current_app.logger.info(
            "Transfer %s status %s -> %s (explicit)", transfer.reference_code, current, new_status
        )
        return transfer

    return run_with_retry(_op)


def cancel_transfer(transfer_id: int, user_id: int | None = None, *, now: datetime | None = None) -> StockTransfer:
    """Shorthand for set_transfer_status(..., CANCELLED)."""
    return set_transfer_status(transfer_id, TRANSFER_STATUS_CANCELLED, user_id, now=now)


def delete_transfer(transfer_id: int) -> int:
    """
    Delete a PENDING transfer and all of its items.

    Raises:
        NotFoundError: Unknown transfer
        ConflictError: Transfer is not PENDING
    """
    def _op():
        transfer = _locked_transfer(transfer_id)
        if transfer.status != TRANSFER_STATUS_PENDING:
            raise ConflictError(
                f"Cannot delete transfer in {transfer.status} status. "
                f"Only PENDING transfers can be deleted."
            )

        reference_code = transfer.reference_code
        db.session.delete(transfer)
        db.session.flush()

        current_app.logger.info("Transfer %s deleted", reference_code)
        return transfer_id

    return run_with_retry(_op)


def get_transfer(transfer_id: int) -> StockTransfer:
    transfer = db.session.get(StockTransfer, transfer_id)
    if not transfer:
        raise NotFoundError(f"Transfer {transfer_id} not found")
    return transfer


def get_transfer_summary(transfer_id: int) -> dict:
    """
    Get transfer summary with items.

    Raises:
        NotFoundError: If transfer not found
    """
    transfer = get_transfer(transfer_id)
    return {
        **transfer.to_dict(),
        "items": [item.to_dict() for item in _items_of(transfer.id)],
    }


def list_transfers(
    *,
    status: str | None = None,
    warehouse_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """
    List transfers newest first.

    warehouse_id matches either side of the move.
    """
    query = db.session.query(StockTransfer)

    if status:
        if status not in TRANSFER_STATUSES:
            raise ValidationError(f"Invalid transfer status: {status!r}")
        query = query.filter(StockTransfer.status == status)
    if warehouse_id:
        query = query.filter(
            (StockTransfer.source_warehouse_id == warehouse_id)
            | (StockTransfer.destination_warehouse_id == warehouse_id)
        )

    total = query.count()

    if offset < 0:
        offset = 0
    if limit < 1:
        limit = 1
    if limit > 500:
        limit = 500

    transfers = (
        query.order_by(StockTransfer.initiated_at.desc(), StockTransfer.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return [t.to_dict() for t in transfers], total
