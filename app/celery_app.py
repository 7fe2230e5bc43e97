"""
Celery application bound to the Flask app context
"""
from celery import Celery


def make_celery(app):
    """Create a Celery instance whose tasks run inside the Flask app context"""
    celery = Celery(
        app.import_name,
        broker=app.config['CELERY_BROKER_URL'],
        backend=app.config['CELERY_RESULT_BACKEND'],
    )
    celery.conf.update(
        task_serializer='json',
        accept_content=['json'],
        result_serializer='json',
        timezone=app.config.get('BABEL_DEFAULT_TIMEZONE', 'UTC'),
        enable_utc=True,
        task_always_eager=app.config.get('TESTING', False),
    )
    
    class ContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)
    
    celery.Task = ContextTask
    return celery
