#!/usr/bin/env python3
"""
Celery Worker Entry Point
Run with: celery -A celery_worker.celery worker --loglevel=info
Beat (notification retries): celery -A celery_worker.celery beat --loglevel=info
"""
from meroclinic import create_app
from meroclinic.extensions import celery

# Create Flask app to initialize Celery
app = create_app()

# Import tasks so Celery can discover them
from tasks import notification_tasks  # noqa: E402,F401

if __name__ == '__main__':
    # For development: run worker directly
    celery.worker_main([
        'worker',
        '--loglevel=info',
        '--concurrency=4'
    ])
