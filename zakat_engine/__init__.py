"""Flask application factory for the Zakat engine."""
import logging
import os
from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix


logger = logging.getLogger('zakat_engine')


def create_app(config: dict | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        config: Optional configuration dictionary to override defaults.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)

    # Trust X-Forwarded-For from reverse proxy
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    app.config.update(
        SECRET_KEY='dev-secret-key-change-in-production',
        JSON_SORT_KEYS=False,
        DATA_DIR=os.environ.get('DATA_DIR', os.path.join(os.path.dirname(__file__), '..', 'data')),
        PRICING_ALLOW_NETWORK=os.environ.get('PRICING_ALLOW_NETWORK', '1').lower() in ('1', 'true', 'yes'),
        DEFAULT_STATE_KEY='default',
    )

    if config:
        app.config.update(config)

    from zakat_engine import db
    db.init_app(app)

    from zakat_engine import cli
    cli.register_cli(app)

    from zakat_engine.routes.health import health_bp
    from zakat_engine.routes.api import api_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(api_bp, url_prefix='/api/v1')

    logger.debug(f"App created (network={'on' if app.config['PRICING_ALLOW_NETWORK'] else 'off'})")
    return app
