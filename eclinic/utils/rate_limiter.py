"""
Booking rate limit backed by Redis.

Counters live in Redis so every web instance shares one view. A fixed window
per key: INCR on each request, EXPIRE set by the first hit of the window.
"""
import logging
from functools import wraps

import redis
from flask import current_app

from eclinic.errors import RateLimitError

logger = logging.getLogger(__name__)


def get_redis_client():
    """Return the app-wide Redis client, creating it on first use."""
    client = current_app.extensions.get('redis_client')
    if client is None:
        client = redis.from_url(
            current_app.config['REDIS_URL'],
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )
        current_app.extensions['redis_client'] = client
    return client


def hit(key, limit, window_seconds, client=None):
    """
    Count one request against key.

    Returns (allowed, retry_after_seconds). Redis failures allow the request
    (fail-open) and are logged.
    """
    client = client or get_redis_client()
    try:
        count = client.incr(key)
        if count == 1:
            client.expire(key, window_seconds)
        if count > limit:
            ttl = client.ttl(key)
            return False, ttl if ttl and ttl > 0 else window_seconds
        return True, 0
    except redis.RedisError as e:
        logger.error("Rate limiter unavailable, allowing request: %s", e)
        return True, 0


def booking_rate_limit(key_func):
    """
    Limit booking requests per key (usually the student id).
    No-op unless RATELIMIT_ENABLED.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            config = current_app.config
            if not config.get('RATELIMIT_ENABLED'):
                return f(*args, **kwargs)

            key = key_func()
            if key is None:
                return f(*args, **kwargs)

            window = config['BOOKING_RATE_WINDOW_SECONDS']
            allowed, retry_after = hit(f"ratelimit:booking:{key}", config['BOOKING_RATE_LIMIT'], window)
            if not allowed:
                minutes = max(1, (retry_after + 59) // 60)
                raise RateLimitError(
                    f'Too many booking requests. Please wait {minutes} minutes before trying again.',
                    retry_after=retry_after,
                )
            return f(*args, **kwargs)
        return decorated_function
    return decorator
