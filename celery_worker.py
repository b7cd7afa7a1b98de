#!/usr/bin/env python3
"""
Celery Worker Entry Point
Run with: celery -A celery_worker.celery worker --beat --loglevel=info
Or: python celery_worker.py
"""
from eclinic import create_app
from eclinic.extensions import celery

# Create Flask app to initialize Celery
app = create_app()

# Import tasks so Celery can discover them
from tasks import lifecycle_tasks  # noqa: E402,F401

if __name__ == '__main__':
    # For development: run worker with an embedded beat scheduler
    celery.worker_main([
        'worker',
        '--beat',
        '--loglevel=info',
        '--concurrency=2'
    ])
