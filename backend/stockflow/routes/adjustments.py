# backend/stockflow/routes/adjustments.py
"""
Stock adjustment API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app
from stockflow.extensions import db
from stockflow.decorators import SERVICE_ERRORS, error_response, require_actor
from stockflow.services import adjustment_service, inventory_service
from stockflow.services.concurrency import commit_or_raise
from stockflow.validation import optional_int, require_fields


adjustments_bp = Blueprint("adjustments", __name__, url_prefix="/api/adjustments")


@adjustments_bp.route("", methods=["GET"])
def list_adjustments():
    try:
        adjustments, total = adjustment_service.list_adjustments(
            status=request.args.get("status") or None,
            warehouse_id=optional_int("warehouse_id", request.args.get("warehouse_id")),
            limit=optional_int("limit", request.args.get("limit")) or 100,
            offset=optional_int("offset", request.args.get("offset")) or 0,
        )
        return jsonify({"adjustments": adjustments, "total": total}), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list adjustments")
        return jsonify({"error": "Internal server error"}), 500


@adjustments_bp.route("", methods=["POST"])
@require_actor
def create_adjustment():
    """
    Create a PENDING adjustment.

    Request body:
    {
        "warehouse_id": int,
        "reason": str,
        "items": [{"product_id": int, "quantity": int (signed), "reason": str?}],
        "notes": str (optional)
    }

    Returns:
        201: Adjustment created (with items and stock snapshots)
        400: Invalid request
    """
    try:
        data = require_fields(request.get_json(silent=True), "warehouse_id", "reason", "items")

        adjustment = adjustment_service.create_adjustment(
            warehouse_id=data["warehouse_id"],
            reason=data["reason"],
            items=data["items"],
            user_id=g.actor_id,
            notes=data.get("notes"),
        )
        commit_or_raise()

        return jsonify(adjustment_service.get_adjustment_summary(adjustment.id)), 201

    except SERVICE_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create adjustment")
        return jsonify({"error": "Internal server error"}), 500


@adjustments_bp.route("/<int:adjustment_id>", methods=["GET"])
def get_adjustment(adjustment_id: int):
    try:
        return jsonify(adjustment_service.get_adjustment_summary(adjustment_id)), 200
    except SERVICE_ERRORS as e:
        return error_response(e)


@adjustments_bp.route("/<int:adjustment_id>/cancel", methods=["POST"])
@require_actor
def cancel_adjustment(adjustment_id: int):
    """
    Cancel a PENDING adjustment.

    Request body (optional):
    {
        "reason": str
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        adjustment_service.cancel_adjustment(adjustment_id, g.actor_id, reason=data.get("reason"))
        commit_or_raise()

        return jsonify(adjustment_service.get_adjustment_summary(adjustment_id)), 200

    except SERVICE_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel adjustment")
        return jsonify({"error": "Internal server error"}), 500


@adjustments_bp.route("/items/<int:item_id>/decision", methods=["POST"])
@require_actor
def decide_item(item_id: int):
    """
    Approve or reject one adjustment item.

    Request body:
    {
        "decision": "approved" | "rejected"
    }

    Returns:
        200: Item decided; body holds the item and the adjustment
        400: Unknown decision
        404: Item not found
        409: Item already decided or adjustment not PENDING
    """
    try:
        data = require_fields(request.get_json(silent=True), "decision")

        item = adjustment_service.decide_item(item_id, data["decision"], g.actor_id)
        adjustment = item.adjustment
        if adjustment.status == adjustment_service.ADJUSTMENT_STATUS_COMPLETED:
            inventory_service.apply_adjustment_completion(adjustment, g.actor_id)
        commit_or_raise()

        return jsonify({
            "item": item.to_dict(),
            "adjustment": adjustment_service.get_adjustment_summary(adjustment.id),
        }), 200

    except SERVICE_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to decide adjustment item")
        return jsonify({"error": "Internal server error"}), 500
