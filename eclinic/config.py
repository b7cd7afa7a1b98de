import os
from dotenv import load_dotenv

load_dotenv()


def _get_list(value):
    """Split a comma separated env value into a list of stripped items."""
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


class Config:
    """Base configuration"""
    SECRET_KEY = os.getenv('SECRET_KEY') or 'dev-secret-key-change-in-production'

    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///eclinic.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }

    # Session cookie (Flask-Login)
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    REMEMBER_COOKIE_HTTPONLY = True

    # Bearer tokens for API clients that cannot hold a cookie
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY') or SECRET_KEY
    JWT_ACCESS_TOKEN_EXPIRES_HOURS = int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES_HOURS', '24'))

    # Celery Configuration
    CELERY_BROKER_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    CELERY_RESULT_BACKEND = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    CELERY_ACCEPT_CONTENT = ['json']
    CELERY_TASK_SERIALIZER = 'json'
    CELERY_RESULT_SERIALIZER = 'json'
    CELERY_TIMEZONE = os.getenv('CLINIC_TIMEZONE', 'Asia/Manila')
    CELERY_ENABLE_UTC = False

    # Browser origins allowed to call /api with credentials
    CORS_ORIGINS = _get_list(os.getenv('CORS_ORIGINS', 'http://localhost:3000'))

    # Redis (rate limiting, scheduler lock)
    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

    # Appointment lifecycle
    NO_SHOW_GRACE_MINUTES = int(os.getenv('NO_SHOW_GRACE_MINUTES', '15'))
    ARCHIVE_RETENTION_MONTHS = int(os.getenv('ARCHIVE_RETENTION_MONTHS', '12'))
    SCHEDULER_INTERVAL_SECONDS = int(os.getenv('SCHEDULER_INTERVAL_SECONDS', '300'))
    SCHEDULER_LOCK_TIMEOUT_SECONDS = int(os.getenv('SCHEDULER_LOCK_TIMEOUT_SECONDS', '600'))
    BOOKING_MAX_RETRIES = int(os.getenv('BOOKING_MAX_RETRIES', '3'))
    DEFAULT_MAX_PATIENTS = int(os.getenv('DEFAULT_MAX_PATIENTS', '10'))
    CLINIC_HOLIDAYS = _get_list(os.getenv(
        'CLINIC_HOLIDAYS',
        '2026-01-01,2026-04-09,2026-04-18,2026-04-19,2026-04-20,2026-05-01,'
        '2026-06-12,2026-08-25,2026-11-30,2026-12-25,2026-12-30,2026-12-31'
    ))

    # QR check-in
    QR_TOKEN_TTL_HOURS = int(os.getenv('QR_TOKEN_TTL_HOURS', '24'))

    # Booking rate limit (shared across instances through Redis)
    RATELIMIT_ENABLED = os.getenv('RATELIMIT_ENABLED', 'false').lower() == 'true'
    BOOKING_RATE_LIMIT = int(os.getenv('BOOKING_RATE_LIMIT', '5'))
    BOOKING_RATE_WINDOW_SECONDS = int(os.getenv('BOOKING_RATE_WINDOW_SECONDS', '900'))

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE', 'logs/app.log')

    # Email Configuration
    MAIL_SERVER = os.getenv('MAIL_SERVER', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('MAIL_PORT', '587'))
    MAIL_USE_TLS = os.getenv('MAIL_USE_TLS', 'true').lower() == 'true'
    MAIL_USERNAME = os.getenv('MAIL_USERNAME')
    MAIL_PASSWORD = os.getenv('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.getenv('MAIL_DEFAULT_SENDER', 'noreply@clinic.edu')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'true').lower() == 'true'

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 3600,
        'pool_size': 20,
        'max_overflow': 40,
        'connect_args': {
            'connect_timeout': 10,
            'options': '-c statement_timeout=30000'
        }
    }

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'WARNING')

    @classmethod
    def validate(cls):
        if not os.getenv('SECRET_KEY') or cls.SECRET_KEY == 'dev-secret-key-change-in-production':
            raise ValueError("SECRET_KEY environment variable must be set in production and must not be the default value")


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True
    SECRET_KEY = 'testing-secret-key'
    JWT_SECRET_KEY = 'testing-jwt-secret-key-with-enough-length'
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite://')
    SQLALCHEMY_ENGINE_OPTIONS = {}
    MAIL_USERNAME = None
    MAIL_PASSWORD = None
    RATELIMIT_ENABLED = False
    CLINIC_HOLIDAYS = []


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Get configuration based on FLASK_ENV"""
    env = os.getenv('FLASK_ENV', 'development')
    return config.get(env, config['default'])
