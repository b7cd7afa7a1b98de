"""
Celery tasks module
Import all tasks here so Celery can discover them
"""
from . import lifecycle_tasks

__all__ = ['lifecycle_tasks']
