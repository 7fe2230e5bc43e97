"""
Error handlers for the application
"""
from flask import jsonify, request
from flask_babel import gettext as _
from app.errors import DonationCoreError
from app.extensions import db


def _error(code, message, status, retryable=False):
    return jsonify({'error': code, 'message': str(message), 'retryable': retryable}), status


def register_error_handlers(app):
    """Register error handlers"""
    @app.errorhandler(DonationCoreError)
    def donation_core_error(error):
        db.session.rollback()
        log = app.logger.error if error.status_code >= 500 else app.logger.warning
        log(f'{error.status_code} {error.code} on {request.path}: {error.message} {error.context or ""}')
        return _error(error.code, error.message, error.status_code, error.retryable)

    @app.errorhandler(404)
    def not_found_error(error):
        app.logger.warning(f'404 error: {request.url}')
        return _error('not_found', _('Ressource introuvable'), 404)

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return _error('method_not_allowed', _('Methode non autorisee'), 405)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.error(f'500 error: {str(error)}', exc_info=True)
        return _error('internal_error', _('Erreur interne du serveur'), 500)

    @app.errorhandler(403)
    def forbidden_error(error):
        app.logger.warning(f'403 error: {request.url}')
        return _error('forbidden', _('Acces refuse'), 403)
