"""
Testing configuration for the FixIt backend
"""
import os
from config.settings import Config


class TestingConfig(Config):
    """Testing configuration with isolated database and safe defaults"""

    TESTING = True
    DEBUG = False

    # Use in-memory SQLite for fast tests
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'TEST_DATABASE_URL',
        'sqlite:///:memory:'
    )
    SQLALCHEMY_ENGINE_OPTIONS = {}

    SECRET_KEY = 'test-secret-key'
    JWT_SECRET = 'test-jwt-secret'
    API_KEY = 'test-api-key'

    # Disable rate limiting in tests
    RATELIMIT_ENABLED = False

    # Never start the background scheduler under pytest
    ENABLE_SCHEDULER = False

    # No outbound SMS
    TWILIO_ACCOUNT_SID = ''
    TWILIO_AUTH_TOKEN = ''
    ADMIN_ALERT_PHONE = ''
    SENTRY_DSN = ''

    LOG_LEVEL = 'WARNING'

    DEFAULT_COMMISSION_PERCENTAGE = 30
    OFFER_WINDOW_MINUTES = 30
    DISPATCH_FAN_OUT = 5
    MINIMUM_PAYOUT_AMOUNT = 500
