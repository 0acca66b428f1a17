# Overview: Pytest coverage for the adjustment lifecycle.

from datetime import datetime

import pytest
from sqlalchemy import update

from stockflow.extensions import db
from stockflow.models import StockAdjustment, AdjustmentItem
from stockflow.services import adjustment_service
from stockflow.services.adjustment_service import (
    ADJUSTMENT_STATUS_CANCELLED,
    ADJUSTMENT_STATUS_COMPLETED,
    ADJUSTMENT_STATUS_PENDING,
    ITEM_STATUS_APPROVED,
    ITEM_STATUS_PENDING,
    ITEM_STATUS_REJECTED,
)
from stockflow.validation import ConflictError, NotFoundError, ValidationError


NOW = datetime(2026, 10, 18, 15, 45)


@pytest.fixture
def stocked_ledger(ledger):
    ledger.set(1, 1, 20)
    ledger.set(2, 1, 4)
    return ledger


def _create(ledger, catalog, items=None, reason="Cycle count"):
    if items is None:
        items = [
            {"product_id": 1, "quantity": -5, "reason": "Damaged"},
            {"product_id": 2, "quantity": 3},
        ]
    return adjustment_service.create_adjustment(
        1, reason, items, 7, ledger=ledger, catalog=catalog, now=NOW
    )


class TestCreateAdjustment:
    def test_snapshots_current_and_new_stock(self, db_session, stocked_ledger, catalog):
        adjustment = _create(stocked_ledger, catalog)

        assert adjustment.status == ADJUSTMENT_STATUS_PENDING
        assert adjustment.reference_code == "ADJ-2610-0001"
        assert adjustment.reason == "Cycle count"
        assert [
            (i.product_id, i.quantity, i.current_stock, i.new_stock, i.status, i.reason)
            for i in adjustment.items
        ] == [
            (1, -5, 20, 15, ITEM_STATUS_PENDING, "Damaged"),
            (2, 3, 4, 7, ITEM_STATUS_PENDING, None),
        ]

    def test_snapshot_is_not_refreshed(self, db_session, stocked_ledger, catalog):
        adjustment = _create(stocked_ledger, catalog)
        stocked_ledger.set(1, 1, 100)

        summary = adjustment_service.get_adjustment_summary(adjustment.id)

        assert summary["items"][0]["current_stock"] == 20

    def test_missing_pair_counts_as_zero(self, db_session, ledger, catalog):
        adjustment = _create(ledger, catalog, items=[{"product_id": 5, "quantity": 12}])

        assert (adjustment.items[0].current_stock, adjustment.items[0].new_stock) == (0, 12)

    @pytest.mark.parametrize("items", [
        [],
        [{"product_id": 1, "quantity": 0}],
        [{"product_id": 1, "quantity": -21}],
        [{"product_id": 77, "quantity": 1}],
        [{"product_id": 1, "quantity": 1}, {"product_id": 1, "quantity": -1}],
    ])
    def test_invalid_items_write_nothing(self, db_session, stocked_ledger, catalog, items):
        with pytest.raises(ValidationError):
            _create(stocked_ledger, catalog, items=items)

        assert db_session.query(StockAdjustment).count() == 0
        assert db_session.query(AdjustmentItem).count() == 0

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, db_session, stocked_ledger, catalog, reason):
        with pytest.raises(ValidationError):
            _create(stocked_ledger, catalog, reason=reason)

    def test_unknown_warehouse(self, db_session, stocked_ledger, catalog):
        with pytest.raises(ValidationError):
            adjustment_service.create_adjustment(
                9, "Count", [{"product_id": 1, "quantity": 1}], 7,
                ledger=stocked_ledger, catalog=catalog,
            )


class TestDecisions:
    def test_scenario_approve_then_reject_completes(self, db_session, stocked_ledger, catalog):
        adjustment = _create(stocked_ledger, catalog)
        first, second = adjustment.items

        adjustment_service.decide_item(first.id, ITEM_STATUS_APPROVED, 3, now=NOW)
        assert first.status == ITEM_STATUS_APPROVED
        assert first.decided_by == 3
        assert adjustment.status == ADJUSTMENT_STATUS_PENDING

        adjustment_service.decide_item(second.id, ITEM_STATUS_REJECTED, 4, now=NOW)
        assert second.status == ITEM_STATUS_REJECTED
        assert adjustment.status == ADJUSTMENT_STATUS_COMPLETED
        assert adjustment.approved_by == 4
        assert adjustment.approved_at == NOW

    def test_all_rejected_still_completes(self, db_session, stocked_ledger, catalog):
        adjustment = _create(stocked_ledger, catalog)

        for item in adjustment.items:
            adjustment_service.decide_item(item.id, ITEM_STATUS_REJECTED, 3, now=NOW)

        assert adjustment.status == ADJUSTMENT_STATUS_COMPLETED

    def test_deciding_twice_conflicts(self, db_session, stocked_ledger, catalog):
        adjustment = _create(stocked_ledger, catalog)
        item = adjustment.items[0]
        adjustment_service.decide_item(item.id, ITEM_STATUS_APPROVED, 3, now=NOW)

        with pytest.raises(ConflictError):
            adjustment_service.decide_item(item.id, ITEM_STATUS_REJECTED, 3, now=NOW)
        assert item.status == ITEM_STATUS_APPROVED

    @pytest.mark.parametrize("decision", ["pending", "APPROVED", "", None])
    def test_invalid_decision(self, db_session, stocked_ledger, catalog, decision):
        adjustment = _create(stocked_ledger, catalog)

        with pytest.raises(ValidationError):
            adjustment_service.decide_item(adjustment.items[0].id, decision)

    def test_unknown_item(self, db_session):
        with pytest.raises(NotFoundError):
            adjustment_service.decide_item(404, ITEM_STATUS_APPROVED)

    def test_decision_on_cancelled_adjustment_conflicts(self, db_session, stocked_ledger, catalog):
        adjustment = _create(stocked_ledger, catalog)
        adjustment_service.cancel_adjustment(adjustment.id, 7, now=NOW)

        with pytest.raises(ConflictError):
            adjustment_service.decide_item(adjustment.items[0].id, ITEM_STATUS_APPROVED)


class TestCancel:
    def test_cancel_pending(self, db_session, stocked_ledger, catalog):
        adjustment = _create(stocked_ledger, catalog)

        adjustment_service.cancel_adjustment(adjustment.id, 8, reason="Recounted", now=NOW)

        assert adjustment.status == ADJUSTMENT_STATUS_CANCELLED
        assert adjustment.cancelled_by == 8
        assert adjustment.cancelled_at == NOW
        assert adjustment.cancellation_reason == "Recounted"

    def test_cancel_completed_conflicts(self, db_session, stocked_ledger, catalog):
        adjustment = _create(stocked_ledger, catalog)
        for item in adjustment.items:
            adjustment_service.decide_item(item.id, ITEM_STATUS_APPROVED, now=NOW)

        with pytest.raises(ConflictError):
            adjustment_service.cancel_adjustment(adjustment.id)
        assert adjustment.status == ADJUSTMENT_STATUS_COMPLETED

    def test_unknown_adjustment(self, db_session):
        with pytest.raises(NotFoundError):
            adjustment_service.cancel_adjustment(31337)


class TestQueries:
    def test_list_by_status(self, db_session, stocked_ledger, catalog):
        first = _create(stocked_ledger, catalog)
        second = _create(stocked_ledger, catalog)
        adjustment_service.cancel_adjustment(first.id, now=NOW)

        rows, total = adjustment_service.list_adjustments(status=ADJUSTMENT_STATUS_PENDING)

        assert total == 1
        assert rows[0]["reference_code"] == second.reference_code
        assert second.reference_code == "ADJ-2610-0002"


class TestConcurrentDecisions:
    def test_sibling_decided_elsewhere_completes_after_retry(self, db_session, stocked_ledger, catalog):
        adjustment = _create(stocked_ledger, catalog)
        first, second = adjustment.items

        # Another session rejects the second item and bumps the parent version
        db.session.execute(
            update(AdjustmentItem)
            .where(AdjustmentItem.id == second.id)
            .values(status=ITEM_STATUS_REJECTED, version_id=AdjustmentItem.version_id + 1)
            .execution_options(synchronize_session=False)
        )
        db.session.execute(
            update(StockAdjustment)
            .where(StockAdjustment.id == adjustment.id)
            .values(version_id=StockAdjustment.version_id + 1)
            .execution_options(synchronize_session=False)
        )

        adjustment_service.decide_item(first.id, ITEM_STATUS_APPROVED, 3, now=NOW)

        assert first.status == ITEM_STATUS_APPROVED
        assert second.status == ITEM_STATUS_REJECTED
        assert adjustment.status == ADJUSTMENT_STATUS_COMPLETED
        assert adjustment.version_id == 3
