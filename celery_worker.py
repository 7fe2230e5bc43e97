#!/usr/bin/env python
"""
Celery worker for donor emails (confirmations, failed billing, cancellations)
Run with: celery -A celery_worker.celery worker --loglevel=info
"""
from app import create_app

app = create_app()

# Module level so 'celery -A celery_worker.celery' finds it
celery = app.celery

if __name__ == '__main__':
    celery.worker_main(['worker', '--loglevel=info'])
