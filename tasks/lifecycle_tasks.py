"""
Celery tasks for the appointment lifecycle sweeps
Scheduled by Celery beat every SCHEDULER_INTERVAL_SECONDS
"""
import logging

import redis
from flask import current_app

from eclinic.extensions import celery
from eclinic.services.lifecycle_service import run_scheduled_tasks
from eclinic.utils.rate_limiter import get_redis_client

logger = logging.getLogger(__name__)

LOCK_NAME = 'eclinic:lifecycle-sweeps'


def run_locked(client=None):
    """
    Run one tick unless another worker holds the sweep lock.

    Returns the per-sweep results, or None when the tick was skipped.
    """
    client = client or get_redis_client()
    lock = client.lock(LOCK_NAME, timeout=current_app.config['SCHEDULER_LOCK_TIMEOUT_SECONDS'])
    try:
        acquired = lock.acquire(blocking=False)
    except redis.RedisError as e:
        logger.error("Could not reach Redis for the sweep lock, skipping tick: %s", e)
        return None

    if not acquired:
        logger.info("Previous lifecycle tick still running, skipping")
        return None

    try:
        return run_scheduled_tasks()
    finally:
        try:
            lock.release()
        except redis.exceptions.LockError:
            # Expired before release; the next tick simply reacquires it
            logger.warning("Sweep lock expired before the tick finished")


@celery.task(name='tasks.run_lifecycle_sweeps')
def run_lifecycle_sweeps():
    """Auto no-show, reminders and archival, once."""
    return run_locked()
