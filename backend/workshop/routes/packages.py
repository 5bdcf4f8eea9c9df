# Overview: Flask API routes for packages; read-only availability and margin view.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth
from ..errors import InternalError, WorkshopError
from ..services import package_service
from ..validation import parse_int


packages_bp = Blueprint("packages", __name__, url_prefix="/api/packages")


@packages_bp.get("/<int:package_id>")
@require_auth
def get_package_route(package_id: int):
    """Package with derived cost, margin, savings and availability for one unit."""
    try:
        return jsonify({"package": package_service.package_summary(package_id)}), 200
    except WorkshopError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get package")
        return jsonify(InternalError().to_dict()), 500


@packages_bp.get("/<int:package_id>/availability")
@require_auth
def package_availability_route(package_id: int):
    """Query param qty (default 1): how many packages would be sold."""
    try:
        qty = parse_int(request.args.get("qty"), "qty", default=1, minimum=1)
        return jsonify(package_service.check_availability(package_id, qty)), 200
    except WorkshopError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check package availability")
        return jsonify(InternalError().to_dict()), 500
