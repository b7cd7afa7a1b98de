"""
Request logging and security headers
"""
import logging
import time

from flask import g, request

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 2.0


def setup_middleware(app):
    """Setup request middleware"""

    @app.before_request
    def before_request():
        g.request_started = time.monotonic()

    @app.after_request
    def after_request(response):
        """Log the request and add security headers"""
        elapsed = time.monotonic() - g.get('request_started', time.monotonic())
        if request.path.startswith('/health'):
            pass
        elif elapsed >= SLOW_REQUEST_SECONDS:
            logger.warning("Slow request: %s %s -> %s in %.2fs", request.method, request.path,
                           response.status_code, elapsed)
        else:
            logger.info("%s %s -> %s in %.3fs - %s", request.method, request.path,
                        response.status_code, elapsed, request.remote_addr)

        if not app.debug:
            # Prevent clickjacking
            response.headers['X-Frame-Options'] = 'DENY'
            # Prevent MIME type sniffing
            response.headers['X-Content-Type-Options'] = 'nosniff'
            response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
            # Only add HSTS if using HTTPS
            if request.is_secure:
                response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        return response
