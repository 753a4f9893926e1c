"""Flask application factory."""
from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException
from pos.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache (store settings)
    from pos.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from pos.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust X-Forwarded-* from the reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Multi-Tenant: load tenant context before each request
    from pos.middleware import load_tenant

    @app.before_request
    def before_request_handler():
        """Load tenant context for each request."""
        load_tenant()

    # Error Handlers
    from pos.exceptions import PosError

    @app.errorhandler(PosError)
    def handle_pos_error(error):
        """Render application exceptions as JSON."""
        if error.status_code >= 500:
            app.logger.error(f"PosError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"PosError [{error.status_code}] {request.method} {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            return jsonify({'status': 'error', 'message': error.description}), error.code

        import traceback
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from pos.blueprints.catalog import catalog_bp
    from pos.blueprints.settings import settings_bp
    from pos.blueprints.orders import orders_bp
    from pos.blueprints.purchases import purchases_bp
    from pos.blueprints.cash_book import cash_book_bp
    from pos.blueprints.metrics import metrics_bp

    app.register_blueprint(catalog_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(cash_book_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from pos.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
