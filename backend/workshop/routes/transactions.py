# Overview: Flask API routes for transactions operations; parses input and returns JSON responses.

# backend/workshop/routes/transactions.py
"""
Transaction API Routes

- Create an invoice from product/service/package/external lines
- Add payments and refunds
- Cancel (ADMIN only): refunds what was paid and restores stock
- Detail, listing and print data

Errors come back as {"error": ..., "kind": ..., "details": {...}} with
400 (validation, discount), 404 (missing reference), 409 (stock, state).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..errors import InternalError, WorkshopError, ValidationError
from ..models.auth import ROLE_ADMIN
from ..services import catalog_service
from ..services import payment_service
from ..services import transaction_service
from ..validation import (
    parse_date_bound,
    parse_int,
    parse_money,
    parse_pagination,
    parse_str,
    require_object,
)
from workshop.money import ZERO


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _error(exc: WorkshopError):
    return jsonify(exc.to_dict()), exc.status_code


@transactions_bp.post("")
@require_auth
def create_transaction_route():
    """
    Create a transaction.

    Request body:
    {
        "vehicle_id": 3,                       (optional)
        "mechanic_id": 1,                      (optional)
        "current_km": 45200,                   (optional)
        "discount_amount": 10000,              (optional, header level)
        "notes": "...",                        (optional)
        "items": [
            {"type": "PRODUCT", "ref_id": 1, "qty": 2, "discount": 0},
            {"type": "SERVICE", "ref_id": 4, "custom_price": 75000},
            {"type": "PACKAGE", "ref_id": 2},
            {"type": "EXTERNAL", "item_name": "Bubut", "base_price": 150000, "vendor_name": "Bengkel X"}
        ],
        "initial_payment": {"amount": 50000, "payment_method": "CASH"}   (optional)
    }

    Returns:
        201: Transaction with items and payments
        400 / 404 / 409: see module docstring
    """
    try:
        data = require_object(request.get_json(silent=True))

        raw_items = data.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("items must be a non-empty list")
        lines = [catalog_service.line_from_payload(raw, index) for index, raw in enumerate(raw_items)]

        initial_payment = None
        if data.get("initial_payment") is not None:
            initial_payment = payment_service.payment_from_payload(data["initial_payment"], "initial_payment")

        transaction = transaction_service.create_transaction(
            user_id=g.current_user.id,
            lines=lines,
            vehicle_id=parse_int(data.get("vehicle_id"), "vehicle_id", minimum=1),
            mechanic_id=parse_int(data.get("mechanic_id"), "mechanic_id", minimum=1),
            discount_amount=parse_money(data.get("discount_amount"), "discount_amount", default=ZERO),
            current_km=parse_int(data.get("current_km"), "current_km", minimum=0),
            notes=parse_str(data.get("notes"), "notes"),
            initial_payment=initial_payment,
        )
        return jsonify({"transaction": transaction_service.transaction_detail(transaction.id)}), 201

    except WorkshopError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify(InternalError().to_dict()), 500


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    """
    List transactions.

    Query params: status, vehicle_id, mechanic_id, date_from, date_to, page, limit
    """
    try:
        page, limit = parse_pagination(request.args)
        result = transaction_service.list_transactions(
            status=request.args.get("status"),
            vehicle_id=parse_int(request.args.get("vehicle_id"), "vehicle_id"),
            mechanic_id=parse_int(request.args.get("mechanic_id"), "mechanic_id"),
            date_from=parse_date_bound(request.args.get("date_from"), "date_from"),
            date_to=parse_date_bound(request.args.get("date_to"), "date_to", end_of_day=True),
            page=page,
            limit=limit,
        )
        return jsonify(result), 200

    except WorkshopError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify(InternalError().to_dict()), 500


@transactions_bp.get("/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    try:
        return jsonify({"transaction": transaction_service.transaction_detail(transaction_id)}), 200
    except WorkshopError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to get transaction")
        return jsonify(InternalError().to_dict()), 500


@transactions_bp.get("/<int:transaction_id>/print")
@require_auth
def print_transaction_route(transaction_id: int):
    """Print data. Query param type=receipt (default) or workorder."""
    try:
        document = transaction_service.print_data(transaction_id, request.args.get("type", "receipt"))
        return jsonify(document), 200
    except WorkshopError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to build print data")
        return jsonify(InternalError().to_dict()), 500


@transactions_bp.post("/<int:transaction_id>/pay")
@require_auth
def add_payment_route(transaction_id: int):
    """
    Add a payment (or a REFUND with a negative amount).

    Request body:
    {
        "amount": 1050000,
        "payment_method": "CASH",        CASH, DEBIT, CREDIT, TRANSFER, QRIS, OTHER, REFUND
        "reference_number": "...",       (optional)
        "notes": "..."                   (optional)
    }

    Returns:
        201: {"payment": ..., "new_status": ..., "summary": {...}}
    """
    try:
        data = require_object(request.get_json(silent=True))
        payment_request = payment_service.payment_from_payload(data, "payment")
        result = payment_service.add_payment(transaction_id, payment_request, user_id=g.current_user.id)
        return jsonify(result), 201

    except WorkshopError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to add payment")
        return jsonify(InternalError().to_dict()), 500


@transactions_bp.get("/<int:transaction_id>/payments")
@require_auth
def payment_summary_route(transaction_id: int):
    try:
        transaction = transaction_service.get_transaction(transaction_id)
        return jsonify({
            "payments": [payment.to_dict() for payment in transaction.payments],
            "summary": payment_service.summary_for(transaction),
        }), 200
    except WorkshopError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to get payments")
        return jsonify(InternalError().to_dict()), 500


@transactions_bp.put("/<int:transaction_id>/cancel")
@require_auth
@require_role(ROLE_ADMIN)
def cancel_transaction_route(transaction_id: int):
    """
    Cancel a transaction. ADMIN only.

    Request body (optional): {"reason": "Customer changed mind"}
    """
    try:
        data = require_object(request.get_json(silent=True))
        transaction = transaction_service.cancel_transaction(
            transaction_id,
            user_id=g.current_user.id,
            reason=parse_str(data.get("reason"), "reason", max_length=500),
        )
        return jsonify({"transaction": transaction_service.transaction_detail(transaction.id)}), 200

    except WorkshopError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to cancel transaction")
        return jsonify(InternalError().to_dict()), 500
