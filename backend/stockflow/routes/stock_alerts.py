# backend/stockflow/routes/stock_alerts.py
"""
Stock alert API routes: thresholds, overrides, reconciliation and the
dashboard summary.
"""
from flask import Blueprint, request, jsonify, g, current_app
from stockflow.extensions import db
from stockflow.decorators import SERVICE_ERRORS, error_response, require_actor
from stockflow.services import stock_alert_service
from stockflow.services.concurrency import commit_or_raise
from stockflow.validation import optional_int, require_fields


stock_alerts_bp = Blueprint("stock_alerts", __name__, url_prefix="/api/stock-alerts")


@stock_alerts_bp.route("", methods=["GET"])
def list_alerts():
    """Query params: status, warehouse_id"""
    try:
        alerts = stock_alert_service.list_alerts(
            status=request.args.get("status") or None,
            warehouse_id=optional_int("warehouse_id", request.args.get("warehouse_id")),
        )
        return jsonify({"alerts": alerts}), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock alerts")
        return jsonify({"error": "Internal server error"}), 500


@stock_alerts_bp.route("/dashboard", methods=["GET"])
def dashboard():
    try:
        return jsonify(stock_alert_service.alerts_dashboard()), 200
    except Exception:
        current_app.logger.exception("Failed to build stock alert dashboard")
        return jsonify({"error": "Internal server error"}), 500


@stock_alerts_bp.route("", methods=["POST"])
@require_actor
def register_threshold():
    """
    Create or update the alert threshold for a product at a warehouse.

    Request body:
    {
        "product_id": int,
        "warehouse_id": int,
        "threshold": int
    }

    Returns:
        201: Alert created
        200: Existing alert updated
        400: Invalid request
    """
    try:
        data = require_fields(request.get_json(silent=True), "product_id", "warehouse_id", "threshold")

        alert, created = stock_alert_service.register_threshold(
            data["product_id"],
            data["warehouse_id"],
            data["threshold"],
        )
        commit_or_raise()

        return jsonify(alert.to_dict()), 201 if created else 200

    except SERVICE_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to register stock alert threshold")
        return jsonify({"error": "Internal server error"}), 500


@stock_alerts_bp.route("/<int:alert_id>", methods=["GET"])
def get_alert(alert_id: int):
    try:
        return jsonify(stock_alert_service.get_alert(alert_id).to_dict()), 200
    except SERVICE_ERRORS as e:
        return error_response(e)


@stock_alerts_bp.route("/<int:alert_id>", methods=["PUT"])
@require_actor
def update_alert(alert_id: int):
    """
    Override an alert.

    Request body (all optional):
    {
        "status": "active" | "resolved" | "ignored",
        "threshold": int
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        alert = stock_alert_service.update_alert(
            alert_id,
            status=data.get("status"),
            threshold=data.get("threshold"),
            user_id=g.actor_id,
        )
        commit_or_raise()

        return jsonify(alert.to_dict()), 200

    except SERVICE_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update stock alert")
        return jsonify({"error": "Internal server error"}), 500


@stock_alerts_bp.route("/<int:alert_id>", methods=["DELETE"])
@require_actor
def delete_alert(alert_id: int):
    try:
        stock_alert_service.delete_alert(alert_id)
        commit_or_raise()
        return jsonify({"deleted": alert_id}), 200

    except SERVICE_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete stock alert")
        return jsonify({"error": "Internal server error"}), 500


@stock_alerts_bp.route("/check", methods=["POST"])
@require_actor
def check_alerts():
    """
    Reconcile every alert against current inventory.

    Returns:
        200: {"created": n, "updated": n, "resolved": n}
    """
    try:
        results = stock_alert_service.reconcile_all()
        commit_or_raise()
        return jsonify(results), 200

    except SERVICE_ERRORS as e:
        db.session.rollback()
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reconcile stock alerts")
        return jsonify({"error": "Internal server error"}), 500
