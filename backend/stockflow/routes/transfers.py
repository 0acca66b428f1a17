# backend/stockflow/routes/transfers.py
"""
Inter-warehouse transfer API routes.

Services flush; these routes own the transaction. A transfer that reaches
COMPLETED is applied to inventory before the commit.
"""
from flask import Blueprint, request, jsonify, g, current_app
from stockflow.extensions import db
from stockflow.decorators import SERVICE_ERRORS, error_response, require_actor
from stockflow.services import inventory_service, transfer_service
from stockflow.services.concurrency import commit_or_raise
from stockflow.validation import optional_int, require_fields


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.route("", methods=["GET"])
def list_transfers():
    """
    List transfers, newest first.

    Query params: status, warehouse_id, limit (default 100), offset
    """
    try:
        transfers, total = transfer_service.list_transfers(
            status=request.args.get("status") or None,
            warehouse_id=optional_int("warehouse_id", request.args.get("warehouse_id")),
            limit=optional_int("limit", request.args.get("limit")) or 100,
            offset=optional_int("offset", request.args.get("offset")) or 0,
        )
        return jsonify({"transfers": transfers, "total": total}), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list transfers")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("", methods=["POST"])
@require_actor
def create_transfer():
    """
    Create a PENDING transfer with its items.

    Request body:
    {
        "source_warehouse_id": int,
        "destination_warehouse_id": int,
        "items": [{"product_id": int, "quantity": int, "unit_cost_cents": int?}],
        "notes": str (optional)
    }

    Returns:
        201: Transfer created (with items)
        400: Invalid request
    """
    try:
        data = require_fields(request.get_json(silent=True), "source_warehouse_id", "destination_warehouse_id", "items")

        transfer = transfer_service.create_transfer(
            source_warehouse_id=data["source_warehouse_id"],
            destination_warehouse_id=data["destination_warehouse_id"],
            items=data["items"],
            user_id=g.actor_id,
            notes=data.get("notes"),
        )
        commit_or_raise()

        return jsonify(transfer_service.get_transfer_summary(transfer.id)), 201

    except SERVICE_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/<int:transfer_id>", methods=["GET"])
def get_transfer(transfer_id: int):
    try:
        return jsonify(transfer_service.get_transfer_summary(transfer_id)), 200
    except SERVICE_ERRORS as e:
        return error_response(e)


@transfers_bp.route("/<int:transfer_id>", methods=["DELETE"])
@require_actor
def delete_transfer(transfer_id: int):
    """
    Delete a PENDING transfer and its items.

    Returns:
        200: Deleted
        404: Transfer not found
        409: Transfer is not PENDING
    """
    try:
        transfer_service.delete_transfer(transfer_id)
        commit_or_raise()
        return jsonify({"deleted": transfer_id}), 200

    except SERVICE_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/<int:transfer_id>/status", methods=["POST"])
@require_actor
def set_transfer_status(transfer_id: int):
    """
    Explicit bulk status change.

    Request body:
    {
        "status": "IN_TRANSIT" | "COMPLETED" | "CANCELLED"
    }

    Returns:
        200: Status changed (with items)
        400: Unknown status
        404: Transfer not found
        409: Transition not allowed
    """
    try:
        data = require_fields(request.get_json(silent=True), "status")

        transfer = transfer_service.set_transfer_status(transfer_id, data["status"], g.actor_id)
        if transfer.status == transfer_service.TRANSFER_STATUS_COMPLETED:
            inventory_service.apply_transfer_completion(transfer, g.actor_id)
        commit_or_raise()

        return jsonify(transfer_service.get_transfer_summary(transfer_id)), 200

    except SERVICE_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to change transfer status")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/items/<int:item_id>/receive", methods=["POST"])
@require_actor
def receive_item(item_id: int):
    """
    Record the received quantity of one transfer item.

    Request body:
    {
        "received_quantity": int
    }

    Returns:
        200: Item updated; body holds the item and the recomputed transfer
        400: Quantity out of range
        404: Item not found
        409: Transfer already COMPLETED or CANCELLED
    """
    try:
        data = require_fields(request.get_json(silent=True), "received_quantity")

        item = transfer_service.set_item_received(item_id, data["received_quantity"], g.actor_id)
        transfer = item.transfer
        if transfer.status == transfer_service.TRANSFER_STATUS_COMPLETED:
            inventory_service.apply_transfer_completion(transfer, g.actor_id)
        commit_or_raise()

        return jsonify({
            "item": item.to_dict(),
            "transfer": transfer_service.get_transfer_summary(transfer.id),
        }), 200

    except SERVICE_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to receive transfer item")
        return jsonify({"error": "Internal server error"}), 500
