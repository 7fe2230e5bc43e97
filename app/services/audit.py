"""
Audit trail of administrative actions
"""
from flask import current_app, has_request_context, request

from app.extensions import db
from app.models import AuditLog


class AuditTrail:
    """Records who changed what, inside the caller's unit of work"""

    def log(self, user_id, action, entity_type, entity_id=None, old_values=None, new_values=None):
        entry = AuditLog(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            old_values=old_values,
            new_values=new_values,
        )
        if has_request_context():
            entry.ip_address = request.remote_addr
            entry.user_agent = (request.headers.get('User-Agent') or '')[:255] or None
        db.session.add(entry)
        db.session.flush()
        current_app.logger.info(f'Audit: user {user_id} {action} {entity_type} {entry.entity_id}')
        return entry

    def for_entity(self, entity_type, entity_id):
        return (AuditLog.query
                .filter_by(entity_type=entity_type, entity_id=str(entity_id))
                .order_by(AuditLog.created_at, AuditLog.id)
                .all())
