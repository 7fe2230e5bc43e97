"""
Logging configuration for the application
"""
import os
import logging
from logging.handlers import RotatingFileHandler
import re

LOG_FORMAT = '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'


def setup_logging(app):
    """Configure logging for the application"""
    if app.testing:
        # Tests keep the default handlers, nothing written to logs/
        app.logger.setLevel(logging.DEBUG)
        return

    # Create logs directory if it doesn't exist
    os.makedirs('logs', exist_ok=True)

    # File handler (both development and production)
    file_handler = RotatingFileHandler(
        'logs/association.log',
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    file_handler.setLevel(logging.INFO)
    app.logger.addHandler(file_handler)

    if not app.debug:
        # Production logging - only file
        app.logger.setLevel(logging.INFO)
        if not os.environ.get('FLASK_SILENT_STARTUP'):
            app.logger.info('Association donations startup')
    else:
        # Development logging - console + file
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        console_handler.setLevel(logging.DEBUG)
        app.logger.addHandler(console_handler)
        app.logger.setLevel(logging.DEBUG)
        if not os.environ.get('FLASK_SILENT_STARTUP'):
            app.logger.info('Association donations startup (DEBUG mode)')

    # Log configuration on startup (only if not silenced)
    if not os.environ.get('FLASK_SILENT_STARTUP'):
        _log_startup_configuration(app)


def _mask(value):
    return value[:4] + '****' + value[-4:] if len(value) > 8 else '****'


def _log_startup_configuration(app):
    """Log application configuration on startup"""
    app.logger.info(f"Environment: {app.config.get('ENV')}")
    app.logger.info(f"Debug mode: {app.config.get('DEBUG')}")

    # Mask password in logs
    db_uri = app.config['SQLALCHEMY_DATABASE_URI']
    db_uri_display = re.sub(r':([^:@]+)@', r':****@', db_uri) if '@' in db_uri else db_uri
    app.logger.info(f"Database: {db_uri_display}")
    app.logger.info(f"Receipts folder: {app.config.get('RECEIPTS_FOLDER')}")
    app.logger.info(f"Celery emails: {app.config.get('USE_CELERY_FOR_EMAILS')}")

    env_vars_to_check = ['SECRET_KEY', 'SECURITY_PASSWORD_SALT', 'STRIPE_PUBLISHABLE_KEY',
                         'STRIPE_SECRET_KEY', 'STRIPE_WEBHOOK_SECRET']
    app.logger.info("Environment variables status:")
    for var in env_vars_to_check:
        value = os.environ.get(var)
        if value:
            app.logger.info(f"  ✓ {var}: {_mask(value)} (set)")
        else:
            app.logger.warning(f"  ✗ {var}: not set (using default)")
