"""
Configuration settings for different environments
"""
import os
import secrets
import logging

from dotenv import load_dotenv

load_dotenv()


def _require_in_production(var_name, default):
    """Return env var value. In production, warn loudly if still using default."""
    value = os.environ.get(var_name, "")
    if value:
        return value
    env = os.environ.get("FLASK_ENV", "development")
    if env != "development" and default:
        logging.getLogger(__name__).warning(
            "%s is using an insecure default. Set it via environment variable!", var_name
        )
    return default


def _database_url():
    url = os.environ.get("DATABASE_URL", "")
    if not url:
        return "sqlite:///fixit.db"
    # Fix postgres:// to postgresql:// for SQLAlchemy 2.x
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


class Config:
    """Base configuration"""
    SECRET_KEY = _require_in_production('SECRET_KEY', 'dev-only-' + secrets.token_hex(16))

    # JWT verification (tokens are issued by the auth service)
    JWT_SECRET = _require_in_production('JWT_SECRET', 'dev-only-' + secrets.token_hex(32))
    JWT_ALGORITHM = 'HS256'

    # Service-to-service key for the payment confirmation hook
    API_KEY = _require_in_production('API_KEY', 'dev-only-' + secrets.token_hex(16))

    # Database
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
    }

    # CORS
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')

    API_PREFIX = '/api'

    # Earnings / dispatch
    DEFAULT_COMMISSION_PERCENTAGE = int(os.environ.get('DEFAULT_COMMISSION_PERCENTAGE', 30))
    OFFER_WINDOW_MINUTES = int(os.environ.get('OFFER_WINDOW_MINUTES', 30))
    DISPATCH_FAN_OUT = int(os.environ.get('DISPATCH_FAN_OUT', 5))
    MINIMUM_PAYOUT_AMOUNT = int(os.environ.get('MINIMUM_PAYOUT_AMOUNT', 500))

    # Background scheduler
    ENABLE_SCHEDULER = os.environ.get('ENABLE_SCHEDULER', '').lower() == 'true'
    OFFER_SWEEP_SECONDS = int(os.environ.get('OFFER_SWEEP_SECONDS', 60))
    EARNINGS_RECONCILE_MINUTES = int(os.environ.get('EARNINGS_RECONCILE_MINUTES', 60))

    # SMS
    TWILIO_ACCOUNT_SID = os.environ.get('TWILIO_ACCOUNT_SID', '')
    TWILIO_AUTH_TOKEN = os.environ.get('TWILIO_AUTH_TOKEN', '')
    TWILIO_FROM_NUMBER = os.environ.get('TWILIO_FROM_NUMBER', '')
    ADMIN_ALERT_PHONE = os.environ.get('ADMIN_ALERT_PHONE', '')

    # Monitoring / logging
    SENTRY_DSN = os.environ.get('SENTRY_DSN', '')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Rate limiting
    RATELIMIT_ENABLED = True


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 20,
        'max_overflow': 40,
        'pool_recycle': 3600,
        'pool_pre_ping': True,
    }
