# Overview: Flask API routes for reports; sales, profit and units sold.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_role
from ..errors import InternalError, WorkshopError
from ..models.auth import ROLE_ADMIN
from ..services import reporting_service
from ..validation import parse_date_bound


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_auth
@require_role(ROLE_ADMIN)
def sales_report_route():
    """Query params: date_from, date_to (dates are inclusive)."""
    try:
        date_from = parse_date_bound(request.args.get("date_from"), "date_from")
        date_to = parse_date_bound(request.args.get("date_to"), "date_to", end_of_day=True)
        return jsonify({
            "sales": reporting_service.sales_summary(date_from, date_to),
            "profit": reporting_service.profit_summary(date_from, date_to),
            "units_sold": reporting_service.units_sold_by_product(date_from, date_to),
        }), 200
    except WorkshopError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build sales report")
        return jsonify(InternalError().to_dict()), 500
