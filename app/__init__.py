import os
from flask import Flask
from app.config import config
from app.extensions import init_extensions
from app.routes import donations, recurrences, receipts, webhooks
from app.core import register_cli_commands, register_error_handlers, setup_logging

def create_app(config_name=None, config_overrides=None):
    """Application factory pattern"""
    # Get the root directory (parent of app/)
    root_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    template_dir = os.path.join(root_dir, 'templates')

    app = Flask(__name__, template_folder=template_dir)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')
    app.config.from_object(config.get(config_name, config['default']))
    if config_overrides:
        app.config.update(config_overrides)

    # Receipt artifacts live outside static/: they are only served to their owner
    os.makedirs(app.config['RECEIPTS_FOLDER'], exist_ok=True)

    # Initialize extensions
    init_extensions(app)

    # Initialize Celery
    from app.celery_app import make_celery
    from app.tasks import init_tasks
    celery = make_celery(app)
    app.celery = celery

    # Register Celery tasks
    send_email_task = init_tasks(celery)
    app.send_email_task = send_email_task

    # Register blueprints
    app.register_blueprint(donations.bp)
    app.register_blueprint(recurrences.bp)
    app.register_blueprint(receipts.bp)
    app.register_blueprint(webhooks.bp)

    # Register CLI commands
    register_cli_commands(app)

    # Register error handlers
    register_error_handlers(app)

    # Configure logging
    setup_logging(app)

    return app
