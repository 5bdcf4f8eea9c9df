# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/workshop/routes/inventory.py
"""
Inventory API Routes

- Stock-in with weighted-average cost
- Stock audit (single and bulk) and its history / discrepancy report
- Movement log listing and notes correction (ADMIN)
- Low-stock list
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..errors import InternalError, WorkshopError, ValidationError
from ..models.auth import ROLE_ADMIN
from ..services import inventory_service
from ..validation import (
    parse_date_bound,
    parse_int,
    parse_money,
    parse_pagination,
    parse_str,
    require_object,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _error(exc: WorkshopError):
    return jsonify(exc.to_dict()), exc.status_code


@inventory_bp.post("/in")
@require_auth
def stock_in_route():
    """
    Receive stock.

    Request body:
    {
        "product_id": 1,
        "qty": 10,
        "buy_price": 300000,      (optional; recomputes average cost)
        "notes": "PO 1234"        (optional)
    }

    Returns:
        201: stock before/after and average cost before/after
    """
    try:
        data = require_object(request.get_json(silent=True))
        result = inventory_service.stock_in(
            product_id=parse_int(data.get("product_id"), "product_id", required=True, minimum=1),
            qty=parse_int(data.get("qty"), "qty", required=True, minimum=1),
            buy_price=parse_money(data.get("buy_price"), "buy_price"),
            notes=parse_str(data.get("notes"), "notes"),
            user_id=g.current_user.id,
        )
        return jsonify(result), 201

    except WorkshopError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to stock in")
        return jsonify(InternalError().to_dict()), 500


@inventory_bp.post("/stock-audit")
@require_auth
def stock_audit_route():
    """
    Physical count correction.

    Request body:
    {
        "product_id": 1,
        "actual_stock": 8,
        "reason": "Monthly opname",
        "notes": "Two units damaged"     (optional)
    }

    Returns:
        200: result (no_change=true when the count already matches)
    """
    try:
        data = require_object(request.get_json(silent=True))
        result = inventory_service.stock_audit(
            product_id=parse_int(data.get("product_id"), "product_id", required=True, minimum=1),
            actual_stock=parse_int(data.get("actual_stock"), "actual_stock", required=True, minimum=0),
            reason=parse_str(data.get("reason"), "reason", required=True, max_length=255),
            notes=parse_str(data.get("notes"), "notes"),
            user_id=g.current_user.id,
        )
        return jsonify(result), 200

    except WorkshopError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to run stock audit")
        return jsonify(InternalError().to_dict()), 500


@inventory_bp.post("/stock-audit/bulk")
@require_auth
def bulk_stock_audit_route():
    """
    Request body: {"items": [{"product_id", "actual_stock", "reason", "notes"?}, ...]}

    Each item is applied independently. Returns success/error counts with
    per-item results and errors.
    """
    try:
        data = require_object(request.get_json(silent=True))
        items = data.get("items")
        if not isinstance(items, list) or not items:
            raise ValidationError("items must be a non-empty list")
        result = inventory_service.bulk_stock_audit(items, user_id=g.current_user.id)
        return jsonify(result), 200

    except WorkshopError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to run bulk stock audit")
        return jsonify(InternalError().to_dict()), 500


@inventory_bp.get("/stock-audit/history")
@require_auth
def stock_audit_history_route():
    try:
        page, limit = parse_pagination(request.args)
        result = inventory_service.stock_audit_history(
            product_id=parse_int(request.args.get("product_id"), "product_id"),
            date_from=parse_date_bound(request.args.get("date_from"), "date_from"),
            date_to=parse_date_bound(request.args.get("date_to"), "date_to", end_of_day=True),
            page=page,
            limit=limit,
        )
        return jsonify(result), 200

    except WorkshopError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load stock audit history")
        return jsonify(InternalError().to_dict()), 500


@inventory_bp.get("/stock-audit/report")
@require_auth
def stock_audit_report_route():
    try:
        result = inventory_service.discrepancy_report(
            date_from=parse_date_bound(request.args.get("date_from"), "date_from"),
            date_to=parse_date_bound(request.args.get("date_to"), "date_to", end_of_day=True),
        )
        return jsonify(result), 200

    except WorkshopError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to build discrepancy report")
        return jsonify(InternalError().to_dict()), 500


@inventory_bp.get("/logs")
@require_auth
def list_logs_route():
    """Query params: product_id, type, reference_type, reference_id, page, limit"""
    try:
        page, limit = parse_pagination(request.args)
        result = inventory_service.list_logs(
            product_id=parse_int(request.args.get("product_id"), "product_id"),
            movement_type=request.args.get("type"),
            reference_type=request.args.get("reference_type"),
            reference_id=request.args.get("reference_id"),
            page=page,
            limit=limit,
        )
        return jsonify(result), 200

    except WorkshopError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list inventory logs")
        return jsonify(InternalError().to_dict()), 500


@inventory_bp.patch("/logs/<int:log_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_log_route(log_id: int):
    """
    Correct a movement's notes. Any other field in the body is rejected:
    quantities and stock snapshots are immutable.
    """
    try:
        data = require_object(request.get_json(silent=True))
        extra = sorted(set(data) - {"notes"})
        if extra:
            raise ValidationError(f"Field not allowed: {', '.join(extra)}")
        if "notes" not in data:
            raise ValidationError("notes is required")

        log = inventory_service.update_log_notes(
            log_id, parse_str(data.get("notes"), "notes"), user_id=g.current_user.id
        )
        return jsonify({"log": log.to_dict()}), 200

    except WorkshopError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update inventory log")
        return jsonify(InternalError().to_dict()), 500


@inventory_bp.get("/low-stock")
@require_auth
def low_stock_route():
    try:
        products = inventory_service.low_stock_products()
        return jsonify({"products": [p.to_dict() for p in products]}), 200
    except Exception:
        current_app.logger.exception("Failed to list low-stock products")
        return jsonify(InternalError().to_dict()), 500
