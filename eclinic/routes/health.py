"""
Health check endpoints for monitoring and load balancers
"""
from datetime import datetime

import redis
from flask import Blueprint, jsonify

from eclinic.extensions import db
from eclinic.utils.rate_limiter import get_redis_client

health_bp = Blueprint('health', __name__, url_prefix='/health')


@health_bp.route('', methods=['GET'])
def health_check():
    """Basic health check - no database connection"""
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.now().isoformat(),
        'service': 'eclinic-backend'
    }), 200


@health_bp.route('/ready', methods=['GET'])
def readiness_check():
    """
    Readiness check - database must answer. Redis is reported but not
    required: the rate limiter fails open and sweeps just skip a tick.
    """
    try:
        db.session.execute(db.text('SELECT 1'))
        db_status = 'connected'
    except Exception as e:
        db.session.rollback()
        db_status = f'error: {e.__class__.__name__}'

    try:
        get_redis_client().ping()
        redis_status = 'connected'
    except redis.RedisError as e:
        redis_status = f'error: {e.__class__.__name__}'

    ready = db_status == 'connected'
    return jsonify({
        'status': 'ready' if ready else 'not_ready',
        'database': db_status,
        'redis': redis_status,
        'timestamp': datetime.now().isoformat()
    }), 200 if ready else 503


@health_bp.route('/live', methods=['GET'])
def liveness_check():
    """Liveness check for Kubernetes/containers"""
    return jsonify({
        'status': 'alive',
        'timestamp': datetime.now().isoformat()
    }), 200
