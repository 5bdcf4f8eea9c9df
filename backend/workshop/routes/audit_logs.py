# Overview: Flask API routes for the audit trail (ADMIN read-only).

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_role
from ..errors import InternalError, WorkshopError
from ..models.auth import ROLE_ADMIN
from ..services import audit_service
from ..validation import parse_pagination


audit_logs_bp = Blueprint("audit_logs", __name__, url_prefix="/api/audit-logs")


@audit_logs_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_audit_logs_route():
    """Query params: table_name, record_id, action, page, limit"""
    try:
        page, limit = parse_pagination(request.args)
        result = audit_service.list_audit_logs(
            table_name=request.args.get("table_name"),
            record_id=request.args.get("record_id"),
            action=request.args.get("action"),
            page=page,
            limit=limit,
        )
        return jsonify(result), 200
    except WorkshopError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list audit logs")
        return jsonify(InternalError().to_dict()), 500
