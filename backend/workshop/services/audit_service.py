# Overview: Best-effort audit trail written after primary commits.

"""
Audit Recorder

Every mutation in the settlement core is recorded as an AuditLog row AFTER
the primary unit of work has committed. The write happens in its own commit.
If it fails, the failure is rolled back, logged, and dropped: the caller
never sees it and the primary mutation stays committed.
"""

from __future__ import annotations

from flask import current_app, has_request_context, request

from ..extensions import db
from ..models import AuditLog
from workshop.validation import page_meta

ACTION_CREATE = "CREATE"
ACTION_UPDATE = "UPDATE"


class AuditRecorder:
    def record(
        self,
        action: str,
        table_name: str,
        record_id,
        *,
        user_id: int | None = None,
        old_values: dict | None = None,
        new_values: dict | None = None,
    ) -> AuditLog | None:
        ip_address = None
        user_agent = None
        if has_request_context():
            ip_address = request.remote_addr
            user_agent = request.headers.get("User-Agent")

        try:
            entry = AuditLog(
                user_id=user_id,
                action=action,
                table_name=table_name,
                record_id=str(record_id) if record_id is not None else None,
                old_values=old_values,
                new_values=new_values,
                ip_address=ip_address,
                user_agent=user_agent[:512] if user_agent else None,
            )
            db.session.add(entry)
            db.session.commit()
            return entry
        except Exception:
            # Audit is a side channel; the primary operation already committed.
            db.session.rollback()
            current_app.logger.exception(
                "Audit write failed: %s %s id=%s", action, table_name, record_id
            )
            return None

    def created(self, table_name: str, record_id, new_values: dict, user_id: int | None = None):
        return self.record(ACTION_CREATE, table_name, record_id, user_id=user_id, new_values=new_values)

    def updated(self, table_name: str, record_id, old_values: dict, new_values: dict, user_id: int | None = None):
        return self.record(
            ACTION_UPDATE, table_name, record_id,
            user_id=user_id, old_values=old_values, new_values=new_values,
        )


recorder = AuditRecorder()


def list_audit_logs(
    table_name: str | None = None,
    record_id: str | None = None,
    action: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    query = db.session.query(AuditLog)
    if table_name:
        query = query.filter(AuditLog.table_name == table_name)
    if record_id:
        query = query.filter(AuditLog.record_id == str(record_id))
    if action:
        query = query.filter(AuditLog.action == action.upper())

    total = query.count()
    rows = (
        query.order_by(AuditLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "audit_logs": [row.to_dict() for row in rows],
        "pagination": page_meta(total, page, limit),
    }
