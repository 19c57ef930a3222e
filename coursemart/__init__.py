"""Flask application factory."""
from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError, generate_csrf
from coursemart.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # JSON clients send the token back in the X-CSRFToken header
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'Session expired, reload and try again'}), 400

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Flask-Mail for outbox delivery
    from coursemart.services.email_service import init_mail
    init_mail(app)

    # Prometheus metrics instrumentation
    from coursemart.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Behind Nginx in production
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    init_db(app)

    from coursemart.middleware import load_identity

    @app.before_request
    def before_request_handler():
        """Load the request identity."""
        load_identity()

    # Error Handlers
    from coursemart.exceptions import CommerceError

    @app.errorhandler(CommerceError)
    def handle_commerce_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"CommerceError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"CommerceError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Unhandled Exception on {request.path}: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    @app.route('/csrf-token')
    def csrf_token():
        return jsonify({'csrf_token': generate_csrf()})

    # Register blueprints
    from coursemart.blueprints.checkout import checkout_bp
    from coursemart.blueprints.groups import groups_bp
    from coursemart.blueprints.payouts import payouts_bp
    from coursemart.blueprints.metrics import metrics_bp

    app.register_blueprint(checkout_bp)
    app.register_blueprint(groups_bp)
    app.register_blueprint(payouts_bp)

    # Scraped by Prometheus, no session
    csrf.exempt(metrics_bp)
    app.register_blueprint(metrics_bp)

    from coursemart.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"MAIL_SERVER={app.config.get('MAIL_SERVER')}")

    return app
