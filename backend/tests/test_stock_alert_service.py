# Overview: Pytest coverage for stock alert thresholds and reconciliation.

"""
Stock Alert Reconciliation Tests

Covers:
1. Threshold registration (create vs update, immediate evaluation)
2. reconcile_all transitions, counts and idempotency
3. The ignored override surviving reconciliation
4. Per-pair failure isolation
5. Dashboard summary
"""

from datetime import datetime

import pytest

from stockflow.models import StockAlert
from stockflow.services import stock_alert_service
from stockflow.services.stock_alert_service import (
    ALERT_STATUS_ACTIVE,
    ALERT_STATUS_IGNORED,
    ALERT_STATUS_RESOLVED,
    ALERT_TYPE_LOW_STOCK,
    ALERT_TYPE_OUT_OF_STOCK,
)
from stockflow.validation import NotFoundError, ValidationError


NOW = datetime(2026, 10, 18, 8, 0)
ZERO = {"created": 0, "updated": 0, "resolved": 0}


def _register(ledger, catalog, product_id=1, warehouse_id=1, threshold=5):
    return stock_alert_service.register_threshold(
        product_id, warehouse_id, threshold, ledger=ledger, catalog=catalog, now=NOW
    )


class TestRegisterThreshold:
    def test_low_level_creates_active_alert(self, db_session, ledger, catalog):
        ledger.set(1, 1, 3)

        alert, created = _register(ledger, catalog)

        assert created is True
        assert alert.status == ALERT_STATUS_ACTIVE
        assert alert.current_quantity == 3
        assert alert.threshold == 5
        assert alert.alert_type == ALERT_TYPE_LOW_STOCK
        assert alert.message

    def test_healthy_level_creates_resolved_alert(self, db_session, ledger, catalog):
        ledger.set(1, 1, 30)

        alert, _ = _register(ledger, catalog)

        assert alert.status == ALERT_STATUS_RESOLVED
        assert alert.resolved_at == NOW

    def test_second_registration_updates_same_alert(self, db_session, ledger, catalog):
        ledger.set(1, 1, 8)
        first, _ = _register(ledger, catalog, threshold=5)
        assert first.status == ALERT_STATUS_RESOLVED

        second, created = _register(ledger, catalog, threshold=10)

        assert created is False
        assert second.id == first.id
        assert second.status == ALERT_STATUS_ACTIVE
        assert second.resolved_at is None
        assert db_session.query(StockAlert).count() == 1

    def test_empty_pair_is_out_of_stock(self, db_session, ledger, catalog):
        alert, _ = _register(ledger, catalog)

        assert alert.current_quantity == 0
        assert alert.alert_type == ALERT_TYPE_OUT_OF_STOCK

    @pytest.mark.parametrize("product_id,warehouse_id,threshold", [
        (1, 1, -1),
        (1, 1, "ten"),
        (50, 1, 5),
        (1, 9, 5),
    ])
    def test_invalid_input(self, db_session, ledger, catalog, product_id, warehouse_id, threshold):
        with pytest.raises(ValidationError):
            _register(ledger, catalog, product_id, warehouse_id, threshold)
        assert db_session.query(StockAlert).count() == 0


class TestReconcileAll:
    def test_scenario_level_recovers(self, db_session, ledger, catalog):
        ledger.set(1, 1, 3)
        alert, _ = _register(ledger, catalog)
        assert alert.status == ALERT_STATUS_ACTIVE

        ledger.set(1, 1, 8)
        results = stock_alert_service.reconcile_all(ledger=ledger, now=NOW)

        assert results == {"created": 0, "updated": 0, "resolved": 1}
        assert alert.status == ALERT_STATUS_RESOLVED
        assert alert.current_quantity == 8
        assert alert.resolved_at == NOW

    def test_creates_for_unregistered_low_pairs(self, db_session, ledger):
        ledger.set(1, 1, 10)
        ledger.set(2, 1, 11)
        ledger.set(3, 2, 0)

        results = stock_alert_service.reconcile_all(ledger=ledger, now=NOW)

        assert results == {"created": 2, "updated": 0, "resolved": 0}
        alerts = {(a.product_id, a.warehouse_id): a for a in db_session.query(StockAlert).all()}
        assert set(alerts) == {(1, 1), (3, 2)}
        assert alerts[(1, 1)].threshold == 10
        assert alerts[(3, 2)].alert_type == ALERT_TYPE_OUT_OF_STOCK

    def test_default_threshold_override(self, db_session, ledger):
        ledger.set(1, 1, 15)

        results = stock_alert_service.reconcile_all(ledger=ledger, threshold_default=20)

        assert results["created"] == 1

    def test_second_run_is_a_no_op(self, db_session, ledger, catalog):
        ledger.set(1, 1, 2)
        ledger.set(2, 1, 40)
        ledger.set(3, 2, 6)
        _register(ledger, catalog, product_id=2, threshold=50)
        _register(ledger, catalog, product_id=3, warehouse_id=2, threshold=1)

        first = stock_alert_service.reconcile_all(ledger=ledger, now=NOW)
        second = stock_alert_service.reconcile_all(ledger=ledger, now=NOW)

        assert first == {"created": 1, "updated": 0, "resolved": 0}
        assert second == ZERO

    def test_resolved_alert_reactivates(self, db_session, ledger, catalog):
        ledger.set(1, 1, 30)
        alert, _ = _register(ledger, catalog)
        assert alert.status == ALERT_STATUS_RESOLVED

        ledger.set(1, 1, 1)
        results = stock_alert_service.reconcile_all(ledger=ledger, now=NOW)

        assert results == {"created": 0, "updated": 1, "resolved": 0}
        assert alert.status == ALERT_STATUS_ACTIVE
        assert alert.resolved_at is None

    def test_refreshing_quantity_alone_is_not_counted(self, db_session, ledger, catalog):
        ledger.set(1, 1, 3)
        alert, _ = _register(ledger, catalog)

        ledger.set(1, 1, 0)
        results = stock_alert_service.reconcile_all(ledger=ledger, now=NOW)

        assert results == ZERO
        assert alert.current_quantity == 0
        assert alert.alert_type == ALERT_TYPE_OUT_OF_STOCK

    def test_ignored_alert_keeps_status(self, db_session, ledger, catalog):
        ledger.set(1, 1, 3)
        alert, _ = _register(ledger, catalog)
        stock_alert_service.update_alert(alert.id, status=ALERT_STATUS_IGNORED, user_id=7, ledger=ledger)

        ledger.set(1, 1, 90)
        assert stock_alert_service.reconcile_all(ledger=ledger, now=NOW) == ZERO
        ledger.set(1, 1, 0)
        assert stock_alert_service.reconcile_all(ledger=ledger, now=NOW) == ZERO

        assert alert.status == ALERT_STATUS_IGNORED
        assert alert.current_quantity == 0

    def test_failing_pair_is_skipped(self, db_session, ledger, monkeypatch):
        ledger.set(1, 1, 1)
        ledger.set(2, 1, 2)
        ledger.set(3, 1, 3)

        real_reconcile_pair = stock_alert_service.reconcile_pair

        def flaky(product_id, warehouse_id, quantity, **kwargs):
            if product_id == 2:
                raise RuntimeError("ledger row unreadable")
            return real_reconcile_pair(product_id, warehouse_id, quantity, **kwargs)

        monkeypatch.setattr(stock_alert_service, "reconcile_pair", flaky)

        results = stock_alert_service.reconcile_all(ledger=ledger, now=NOW)

        assert results == {"created": 2, "updated": 0, "resolved": 0}
        assert sorted(a.product_id for a in db_session.query(StockAlert).all()) == [1, 3]


class TestUpdateAlert:
    def test_threshold_change_recomputes(self, db_session, ledger, catalog):
        ledger.set(1, 1, 8)
        alert, _ = _register(ledger, catalog, threshold=10)
        ledger.set(1, 1, 7)

        stock_alert_service.update_alert(alert.id, threshold=6, user_id=3, ledger=ledger, now=NOW)

        assert alert.threshold == 6
        assert alert.current_quantity == 7
        assert alert.status == ALERT_STATUS_RESOLVED
        assert alert.resolved_by == 3

    def test_ignored_with_threshold_is_kept(self, db_session, ledger, catalog):
        ledger.set(1, 1, 2)
        alert, _ = _register(ledger, catalog)

        stock_alert_service.update_alert(
            alert.id, status=ALERT_STATUS_IGNORED, threshold=1, ledger=ledger, now=NOW
        )

        assert alert.status == ALERT_STATUS_IGNORED
        assert alert.threshold == 1

    def test_status_only(self, db_session, ledger, catalog):
        ledger.set(1, 1, 2)
        alert, _ = _register(ledger, catalog)

        stock_alert_service.update_alert(alert.id, status=ALERT_STATUS_RESOLVED, user_id=5, now=NOW)

        assert alert.status == ALERT_STATUS_RESOLVED
        assert (alert.resolved_by, alert.resolved_at) == (5, NOW)

    def test_invalid_status(self, db_session):
        with pytest.raises(ValidationError):
            stock_alert_service.update_alert(1, status="snoozed")

    def test_unknown_alert(self, db_session, ledger):
        with pytest.raises(NotFoundError):
            stock_alert_service.update_alert(404, status=ALERT_STATUS_RESOLVED, ledger=ledger)


class TestQueries:
    def test_dashboard(self, db_session, ledger, catalog):
        ledger.set(1, 1, 0)
        ledger.set(2, 1, 3)
        ledger.set(3, 2, 50)
        ledger.set(4, 2, 0)
        _register(ledger, catalog, product_id=1)
        _register(ledger, catalog, product_id=2)
        _register(ledger, catalog, product_id=3, warehouse_id=2)
        ignored, _ = _register(ledger, catalog, product_id=4, warehouse_id=2)
        stock_alert_service.update_alert(ignored.id, status=ALERT_STATUS_IGNORED)

        dashboard = stock_alert_service.alerts_dashboard()

        assert dashboard["total_alerts"] == 4
        assert dashboard["active_alerts"] == 2
        assert dashboard["critical_alerts"] == 1
        assert {a["product_id"] for a in dashboard["recent_alerts"]} == {1, 2}

    def test_recent_alerts_capped_at_five(self, db_session, ledger):
        for product_id in range(1, 9):
            ledger.set(product_id, 1, 1)
        stock_alert_service.reconcile_all(ledger=ledger)

        dashboard = stock_alert_service.alerts_dashboard()

        assert dashboard["active_alerts"] == 8
        assert len(dashboard["recent_alerts"]) == 5

    def test_list_filters(self, db_session, ledger, catalog):
        ledger.set(1, 1, 1)
        ledger.set(2, 2, 90)
        _register(ledger, catalog, product_id=1, warehouse_id=1)
        _register(ledger, catalog, product_id=2, warehouse_id=2)

        assert [a["product_id"] for a in stock_alert_service.list_alerts(status=ALERT_STATUS_ACTIVE)] == [1]
        assert [a["product_id"] for a in stock_alert_service.list_alerts(warehouse_id=2)] == [2]
        assert len(stock_alert_service.list_alerts()) == 2

    def test_delete(self, db_session, ledger, catalog):
        alert, _ = _register(ledger, catalog)

        stock_alert_service.delete_alert(alert.id)

        assert db_session.query(StockAlert).count() == 0
        with pytest.raises(NotFoundError):
            stock_alert_service.get_alert(alert.id)
