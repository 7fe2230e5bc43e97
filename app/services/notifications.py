"""
Donor notifications deferred until the surrounding unit of work commits.

Ledger and recurrence operations only record which email to send; the emails
are handed to EmailService (and from there to Celery) once the database
transaction has committed, and discarded if it rolls back.
"""
from flask import current_app
from sqlalchemy import event
from sqlalchemy.orm import Session

from app.extensions import db

_PENDING_KEY = 'pending_donor_emails'


def notify_after_commit(email_method, **kwargs):
    """Queue EmailService.<email_method>(**kwargs) for after the current transaction commits"""
    db.session.info.setdefault(_PENDING_KEY, []).append((email_method, kwargs))


def _send_pending(session):
    from app.services.email_service import EmailService
    
    pending = session.info.pop(_PENDING_KEY, [])
    for email_method, kwargs in pending:
        try:
            getattr(EmailService, email_method)(**kwargs)
        except Exception as e:
            current_app.logger.error(f'Error dispatching donor email {email_method}: {str(e)}', exc_info=True)


def _discard_pending(session, previous_transaction):
    # Savepoint rollbacks keep the outer transaction and its queued emails
    if previous_transaction.parent is None:
        session.info.pop(_PENDING_KEY, None)


def register_session_hooks():
    """Attach the commit/rollback listeners once per process"""
    if not event.contains(Session, 'after_commit', _send_pending):
        event.listen(Session, 'after_commit', _send_pending)
        event.listen(Session, 'after_soft_rollback', _discard_pending)
