# backend/stockflow/services/stock_alert_service.py
"""
Stock alert reconciliation.

Keeps one StockAlert per (product, warehouse) in line with the level the
Inventory Ledger reports:

- active   when current_quantity <= threshold
- resolved when current_quantity >  threshold
- ignored  user override; reconciliation refreshes current_quantity but
           never changes the status

reconcile_all() is idempotent: a second run with no inventory change
reports zero creates, updates and resolves. Each pair runs in its own
savepoint so one bad pair is logged and skipped without losing the rest.
"""
from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import StockAlert
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, coerce_int
from .collaborators import Catalog, InventoryLedger, resolve_catalog, resolve_ledger
from .concurrency import lock_for_update, run_with_retry


# Alert status constants
ALERT_STATUS_ACTIVE = "active"
ALERT_STATUS_RESOLVED = "resolved"
ALERT_STATUS_IGNORED = "ignored"

ALERT_STATUSES = (ALERT_STATUS_ACTIVE, ALERT_STATUS_RESOLVED, ALERT_STATUS_IGNORED)

# Alert type constants
ALERT_TYPE_LOW_STOCK = "low_stock"
ALERT_TYPE_OUT_OF_STOCK = "out_of_stock"
ALERT_TYPE_OVERSTOCK = "overstock"

DEFAULT_THRESHOLD = 10

OUTCOME_CREATED = "created"
OUTCOME_UPDATED = "updated"
OUTCOME_RESOLVED = "resolved"


def default_threshold() -> int:
    return int(current_app.config.get("STOCK_ALERT_DEFAULT_THRESHOLD", DEFAULT_THRESHOLD))


def alert_type_for(quantity: int) -> str:
    return ALERT_TYPE_OUT_OF_STOCK if quantity <= 0 else ALERT_TYPE_LOW_STOCK


def status_for(quantity: int, threshold: int) -> str:
    return ALERT_STATUS_ACTIVE if quantity <= threshold else ALERT_STATUS_RESOLVED


def _message(quantity: int, threshold: int) -> str:
    if quantity <= 0:
        return f"Out of stock (threshold {threshold})"
    if quantity <= threshold:
        return f"Low stock: {quantity} on hand, threshold {threshold}"
    return f"Stock recovered: {quantity} on hand, threshold {threshold}"


def _validate_threshold(value) -> int:
    threshold = coerce_int("threshold", value)
    if threshold < 0:
        raise ValidationError("threshold must be >= 0")
    return threshold


def _apply_status(alert: StockAlert, status: str, *, user_id: int | None, moment: datetime) -> None:
    if status == ALERT_STATUS_RESOLVED and alert.status != ALERT_STATUS_RESOLVED:
        alert.resolved_at = moment
        alert.resolved_by = user_id
    elif status == ALERT_STATUS_ACTIVE:
        alert.resolved_at = None
        alert.resolved_by = None
    alert.status = status


def _refresh_observation(alert: StockAlert, quantity: int) -> None:
    if alert.current_quantity != quantity:
        alert.current_quantity = quantity
    message = _message(quantity, alert.threshold)
    if alert.message != message:
        alert.message = message
    if alert.status != ALERT_STATUS_IGNORED:
        new_type = alert_type_for(quantity)
        if alert.alert_type != new_type:
            alert.alert_type = new_type


def _find_alert(product_id: int, warehouse_id: int, *, lock: bool = False) -> StockAlert | None:
    query = db.session.query(StockAlert).filter_by(product_id=product_id, warehouse_id=warehouse_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def register_threshold(
    product_id: int,
    warehouse_id: int,
    threshold,
    *,
    ledger: InventoryLedger | None = None,
    catalog: Catalog | None = None,
    now: datetime | None = None,
) -> tuple[StockAlert, bool]:
    """
    Create or update the alert for a pair and evaluate it immediately.

    Returns:
        (alert, created): created is False when an existing alert was updated

    Raises:
        ValidationError: Bad threshold, unknown product or warehouse
    """
    ledger = resolve_ledger(ledger)
    catalog = resolve_catalog(catalog)

    product = coerce_int("product_id", product_id)
    warehouse = coerce_int("warehouse_id", warehouse_id)
    limit = _validate_threshold(threshold)

    if not catalog.product_exists(product):
        raise ValidationError(f"Product {product} not found")
    if not catalog.warehouse_exists(warehouse):
        raise ValidationError(f"Warehouse {warehouse} not found")

    def _op():
        moment = now or utcnow()
        quantity = ledger.get_level(product, warehouse)
        alert = _find_alert(product, warehouse, lock=True)
        created = alert is None

        if created:
            alert = StockAlert(
                product_id=product,
                warehouse_id=warehouse,
                threshold=limit,
                current_quantity=quantity,
                alert_type=alert_type_for(quantity),
                status=status_for(quantity, limit),
                message=_message(quantity, limit),
            )
            if alert.status == ALERT_STATUS_RESOLVED:
                alert.resolved_at = moment
            db.session.add(alert)
        else:
            alert.threshold = limit
            _refresh_observation(alert, quantity)
            _apply_status(alert, status_for(quantity, limit), user_id=None, moment=moment)

        db.session.flush()
        current_app.logger.info(
            "Stock alert threshold %s for product %s at warehouse %s: %s (on hand %s)",
            limit, product, warehouse, alert.status, quantity,
        )
        return alert, created

    return run_with_retry(_op)


def update_alert(
    alert_id: int,
    *,
    status: str | None = None,
    threshold=None,
    user_id: int | None = None,
    ledger: InventoryLedger | None = None,
    now: datetime | None = None,
) -> StockAlert:
    """
    Direct user override of an alert.

    A new threshold refreshes current_quantity and recomputes the status,
    except when the same call sets status to ignored, which is kept as is.

    Raises:
        ValidationError: Unknown status or bad threshold
        NotFoundError: Unknown alert
    """
    ledger = resolve_ledger(ledger)

    if status is not None and status not in ALERT_STATUSES:
        raise ValidationError(
            f"Invalid alert status: {status!r}. Expected one of {', '.join(ALERT_STATUSES)}"
        )
    limit = _validate_threshold(threshold) if threshold is not None else None

    def _op():
        alert = lock_for_update(db.session.query(StockAlert).filter_by(id=alert_id)).first()
        if not alert:
            raise NotFoundError(f"Stock alert {alert_id} not found")

        moment = now or utcnow()
        if status is not None:
            _apply_status(alert, status, user_id=user_id, moment=moment)

        if limit is not None:
            alert.threshold = limit
            quantity = ledger.get_level(alert.product_id, alert.warehouse_id)
            _refresh_observation(alert, quantity)
            if status != ALERT_STATUS_IGNORED:
                _apply_status(alert, status_for(quantity, limit), user_id=user_id, moment=moment)

        db.session.flush()
        return alert

    return run_with_retry(_op)


def reconcile_pair(
    product_id: int,
    warehouse_id: int,
    quantity: int,
    *,
    threshold_default: int | None = None,
    now: datetime | None = None,
) -> str | None:
    """
    Bring the alert for one pair in line with an observed quantity.

    Returns "created", "updated", "resolved", or None when nothing that
    counts changed (refreshing current_quantity alone does not count).
    """
    moment = now or utcnow()
    alert = _find_alert(product_id, warehouse_id, lock=True)

    if alert is None:
        limit = threshold_default if threshold_default is not None else default_threshold()
        if quantity > limit:
            return None
        db.session.add(
            StockAlert(
                product_id=product_id,
                warehouse_id=warehouse_id,
                threshold=limit,
                current_quantity=quantity,
                alert_type=alert_type_for(quantity),
                status=ALERT_STATUS_ACTIVE,
                message=_message(quantity, limit),
            )
        )
        db.session.flush()
        return OUTCOME_CREATED

    _refresh_observation(alert, quantity)

    outcome = None
    if alert.status != ALERT_STATUS_IGNORED:
        if quantity <= alert.threshold and alert.status != ALERT_STATUS_ACTIVE:
            _apply_status(alert, ALERT_STATUS_ACTIVE, user_id=None, moment=moment)
            outcome = OUTCOME_UPDATED
        elif quantity > alert.threshold and alert.status == ALERT_STATUS_ACTIVE:
            _apply_status(alert, ALERT_STATUS_RESOLVED, user_id=None, moment=moment)
            outcome = OUTCOME_RESOLVED

    db.session.flush()
    return outcome


def reconcile_all(
    *,
    ledger: InventoryLedger | None = None,
    threshold_default: int | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Reconcile every (product, warehouse) pair the ledger knows about.

    Returns:
        dict: {"created": n, "updated": n, "resolved": n} for pairs that
        were processed successfully. Failing pairs are rolled back to their
        savepoint, logged and skipped.
    """
    ledger = resolve_ledger(ledger)
    limit = threshold_default if threshold_default is not None else default_threshold()
    moment = now or utcnow()

    results = {OUTCOME_CREATED: 0, OUTCOME_UPDATED: 0, OUTCOME_RESOLVED: 0}
    skipped = 0

    for product_id, warehouse_id, quantity in ledger.list_all():
        nested = db.session.begin_nested()
        try:
            outcome = reconcile_pair(
                product_id,
                warehouse_id,
                quantity,
                threshold_default=limit,
                now=moment,
            )
            nested.commit()
        except Exception:
            nested.rollback()
            skipped += 1
            current_app.logger.exception(
                "Stock alert reconciliation failed for product %s at warehouse %s; skipped",
                product_id, warehouse_id,
            )
            continue
        if outcome:
            results[outcome] += 1

    current_app.logger.info(
        "Stock alerts reconciled: %s created, %s updated, %s resolved, %s skipped",
        results[OUTCOME_CREATED], results[OUTCOME_UPDATED], results[OUTCOME_RESOLVED], skipped,
    )
    return results


def get_alert(alert_id: int) -> StockAlert:
    alert = db.session.get(StockAlert, alert_id)
    if not alert:
        raise NotFoundError(f"Stock alert {alert_id} not found")
    return alert


def delete_alert(alert_id: int) -> int:
    alert = get_alert(alert_id)
    db.session.delete(alert)
    db.session.flush()
    return alert_id


def list_alerts(*, status: str | None = None, warehouse_id: int | None = None) -> list[dict]:
    query = db.session.query(StockAlert)
    if status:
        if status not in ALERT_STATUSES:
            raise ValidationError(f"Invalid alert status: {status!r}")
        query = query.filter(StockAlert.status == status)
    if warehouse_id:
        query = query.filter(StockAlert.warehouse_id == warehouse_id)
    alerts = query.order_by(StockAlert.created_at.desc(), StockAlert.id.desc()).all()
    return [a.to_dict() for a in alerts]


def alerts_dashboard(*, recent_limit: int = 5) -> dict:
    """Counts for the dashboard widget plus the newest active alerts."""
    active_query = db.session.query(StockAlert).filter(StockAlert.status == ALERT_STATUS_ACTIVE)

    recent = (
        active_query.order_by(StockAlert.created_at.desc(), StockAlert.id.desc())
        .limit(recent_limit)
        .all()
    )
    return {
        "active_alerts": active_query.count(),
        "total_alerts": db.session.query(StockAlert).count(),
        "critical_alerts": active_query.filter(StockAlert.current_quantity <= 0).count(),
        "recent_alerts": [a.to_dict() for a in recent],
    }
