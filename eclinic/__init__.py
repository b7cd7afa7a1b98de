from flask import Flask, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
import click
import logging
import os

from .extensions import db, migrate, bcrypt, login_manager, jwt, celery
from .errors import ClinicError

# Setup basic logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Create Flask application factory"""
    app = Flask(__name__)

    # Load configuration
    from eclinic.config import config, get_config, ProductionConfig
    if config_name:
        config_class = config.get(config_name, config['default'])
    else:
        config_class = get_config()
    if config_class is ProductionConfig:
        ProductionConfig.validate()
    app.config.from_object(config_class)

    logging.getLogger().setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize extensions first (before error handlers)
    db.init_app(app)
    migrate.init_app(app, db)
    bcrypt.init_app(app)
    login_manager.init_app(app)
    jwt.init_app(app)

    # Initialize CORS
    from eclinic.utils.cors import init_cors
    init_cors(app)

    init_celery(app)
    register_error_handlers(app)

    # Setup logging
    if not app.debug and not app.testing:
        from logging.handlers import RotatingFileHandler

        log_file = app.config['LOG_FILE']
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10240000,
            backupCount=10
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        logging.getLogger().addHandler(file_handler)
        app.logger.info('Application startup')

    # Request logging and security headers
    from eclinic.middleware import setup_middleware
    setup_middleware(app)

    # Configure Flask-Login
    login_manager.session_protection = 'strong'

    # User loader function - Flask-Login calls this to get user
    @login_manager.user_loader
    def load_user(user_id):
        from eclinic.models import User
        user = db.session.get(User, int(user_id))
        return user if user and user.is_active else None

    # Unauthorized handler - returns JSON instead of redirect
    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({
            'success': False,
            'error': 'Authentication required'
        }), 401

    with app.app_context():
        from . import models  # noqa: F401  registers tables with SQLAlchemy

        # Register blueprints
        from .routes import (
            auth_bp, student_bp, nurse_bp, medical_record_bp,
            notification_bp, admin_bp, health_bp, report_bp,
        )
        app.register_blueprint(health_bp)  # Register health check first
        app.register_blueprint(auth_bp)
        app.register_blueprint(student_bp)
        app.register_blueprint(nurse_bp)
        app.register_blueprint(medical_record_bp)
        app.register_blueprint(notification_bp)
        app.register_blueprint(admin_bp)
        app.register_blueprint(report_bp)

    register_commands(app)
    return app


def init_celery(app):
    """Bind the shared Celery instance to this app and schedule the sweeps."""
    celery.conf.update(
        broker_url=app.config['CELERY_BROKER_URL'],
        result_backend=app.config['CELERY_RESULT_BACKEND'],
        task_serializer=app.config['CELERY_TASK_SERIALIZER'],
        accept_content=app.config['CELERY_ACCEPT_CONTENT'],
        result_serializer=app.config['CELERY_RESULT_SERIALIZER'],
        timezone=app.config['CELERY_TIMEZONE'],
        enable_utc=app.config['CELERY_ENABLE_UTC'],
        beat_schedule={
            'lifecycle-sweeps': {
                'task': 'tasks.run_lifecycle_sweeps',
                'schedule': float(app.config['SCHEDULER_INTERVAL_SECONDS']),
                # A tick that waits longer than one interval is superseded by the next
                'options': {'expires': app.config['SCHEDULER_INTERVAL_SECONDS']},
            },
        },
    )

    # Make celery tasks work with Flask app context
    class FlaskAppContextTask(celery.Task):
        """Make celery tasks work with Flask app context."""
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = FlaskAppContextTask
    return celery


def register_error_handlers(app):
    @app.errorhandler(ClinicError)
    def handle_clinic_error(error):
        if error.status_code >= 500:
            logger.error("%s: %s", error.__class__.__name__, error.message)
        response = jsonify(error.to_dict())
        response.status_code = error.status_code
        if 'retry_after' in error.extra:
            response.headers['Retry-After'] = str(error.extra['retry_after'])
        return response

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'success': False,
            'error': 'Endpoint not found'
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'success': False,
            'error': 'Method not allowed'
        }), 405

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        logger.error("Database error on %s %s", request.method, request.path, exc_info=True)
        db.session.rollback()
        return jsonify({
            'success': False,
            'error': 'Internal server error'
        }), 500

    @app.errorhandler(Exception)
    def handle_exception(e):
        if isinstance(e, HTTPException):
            return jsonify({
                'success': False,
                'error': e.description
            }), e.code
        logger.error("Unhandled exception on %s %s: %s", request.method, request.path, e, exc_info=True)
        db.session.rollback()
        return jsonify({
            'success': False,
            'error': 'Internal server error'
        }), 500


def register_commands(app):
    @app.cli.command('run-sweeps')
    def run_sweeps():
        """Run the lifecycle sweeps once, under the same lock as the beat tick."""
        from tasks.lifecycle_tasks import run_locked
        results = run_locked()
        if results is None:
            raise click.ClickException('Sweeps skipped: another tick holds the lock or Redis is unreachable')
        for name, result in results.items():
            click.echo(f"{name}: {'FAILED' if result is None else result}")
