import logging
import os

import click
from flask import Flask, jsonify
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event

db = SQLAlchemy()

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Flask application factory"""
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    from config import config
    app.config.from_object(config.get(config_name, config['default']))

    _configure_logging(app)
    _init_sentry(app)

    # Initialize extensions
    db.init_app(app)
    if app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite'):
        with app.app_context():
            _enable_sqlite_savepoints(db.engine)
    CORS(app, resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}})

    from extensions import limiter
    limiter.init_app(app)

    from fixit.middleware import RequestIdMiddleware
    app.wsgi_app = RequestIdMiddleware(app.wsgi_app)

    from fixit.services.commission import SettingsCommissionRate
    app.extensions['commission_rate'] = SettingsCommissionRate(
        default=app.config['DEFAULT_COMMISSION_PERCENTAGE']
    )

    # Register blueprints
    from fixit.routes.payments import payments_bp
    from fixit.routes.offers import offers_bp
    from fixit.routes.technicians import technicians_bp
    from fixit.routes.bookings import bookings_bp
    from fixit.routes.ratings import ratings_bp
    from fixit.routes.admin import admin_bp

    api_prefix = app.config['API_PREFIX']
    app.register_blueprint(payments_bp, url_prefix=f'{api_prefix}/payments')
    app.register_blueprint(offers_bp, url_prefix=f'{api_prefix}/technicians/offers')
    app.register_blueprint(technicians_bp, url_prefix=f'{api_prefix}/technicians')
    app.register_blueprint(bookings_bp, url_prefix=f'{api_prefix}/bookings')
    app.register_blueprint(ratings_bp, url_prefix=f'{api_prefix}/ratings')
    app.register_blueprint(admin_bp, url_prefix=f'{api_prefix}/admin')

    _register_error_handlers(app)
    _register_cli(app)

    # Health check endpoint
    @app.route('/health')
    def health():
        return {'status': 'healthy', 'service': 'fixit-backend'}, 200

    if app.config.get('ENABLE_SCHEDULER'):
        from scheduler import init_scheduler
        app.extensions['scheduler'] = init_scheduler(app)

    return app


def _configure_logging(app):
    from fixit.middleware.request_id import RequestIdLogFilter

    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s'
        ))
        handler.addFilter(RequestIdLogFilter())
        root.addHandler(handler)
    root.setLevel(level)


def _enable_sqlite_savepoints(engine):
    # pysqlite defers BEGIN until the first DML statement, which breaks
    # SAVEPOINT; let SQLAlchemy emit BEGIN itself.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _init_sentry(app):
    # Sentry error monitoring (optional -- only active when SENTRY_DSN is set)
    dsn = app.config.get('SENTRY_DSN')
    if not dsn:
        if not app.config.get('DEBUG') and not app.config.get('TESTING'):
            logger.warning("SENTRY_DSN is not set -- error monitoring is disabled.")
        return
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    sentry_sdk.init(
        dsn=dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=0.1,
    )


def _register_error_handlers(app):
    from fixit.errors import ServiceError

    @app.errorhandler(ServiceError)
    def service_error_handler(e):
        if e.status_code >= 500:
            logger.error("Service error: %s", e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(429)
    def ratelimit_handler(e):
        # Retry-After header is set by Flask-Limiter; read it back.
        retry_after = e.get_headers().get("Retry-After") if hasattr(e, "get_headers") else None
        retry_after_seconds = int(retry_after) if retry_after else 60
        return jsonify({
            "success": False,
            "error": "Too many requests. Please try again later.",
            "retry_after": retry_after_seconds,
        }), 429


def _register_cli(app):
    @app.cli.command("init-db")
    def cli_init_db():
        """Create all tables."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("expire-offers")
    def cli_expire_offers():
        """Flip pending job offers past their window to expired."""
        from fixit.services.dispatch import expire_stale_offers
        count = expire_stale_offers()
        click.echo("Expired {} job offer(s).".format(count))

    @app.cli.command("reconcile-earnings")
    def cli_reconcile_earnings():
        """Recompute every technician's cached earnings summary."""
        from fixit.services.ledger import reconcile_earnings_cache
        count = reconcile_earnings_cache()
        click.echo("Reconciled earnings for {} technician(s).".format(count))
