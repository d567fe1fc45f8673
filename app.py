import logging
import os

import click
from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_wtf.csrf import CSRFError
from werkzeug.exceptions import HTTPException

from config import INSTANCE_PATH, get_config
from exceptions import FALLBACK_MESSAGE, ApiError
from models import db
from security import init_security

load_dotenv()

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'


def configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)
    app.logger.setLevel(level)


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(error):
        # Discard half-applied changes from the failed request
        db.session.rollback()
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(CSRFError)
    def handle_csrf_error(error):
        logger.warning("CSRF check failed: %s", error.description)
        return jsonify({'message': 'Sessie verlopen of ongeldig CSRF-token, probeer het opnieuw'}), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        messages = {
            404: 'Niet gevonden',
            405: 'Methode niet toegestaan',
        }
        return jsonify({'message': messages.get(error.code, error.description)}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        logger.exception("Unhandled error: %s", error)
        return jsonify({'message': FALLBACK_MESSAGE}), 500


def register_blueprints(app):
    from accounts import accounts_bp
    from admin_api import api_bp
    from auth import auth_bp
    from dashboard import dashboard_bp
    from health import health_bp
    from messaging import messaging_bp
    from reports import reports_bp
    from school_settings import settings_bp

    for blueprint in (health_bp, auth_bp, api_bp, accounts_bp, messaging_bp, reports_bp, dashboard_bp,
                      settings_bp):
        app.register_blueprint(blueprint)


def register_commands(app):
    @app.cli.command('init-db')
    def init_db_command():
        """Create the tables and the first administrator account."""
        from build import initialize_database
        initialize_database(app)
        click.echo('Database initialised.')


def create_app(config_name=None):
    app = Flask(__name__, instance_path=INSTANCE_PATH)
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    config_class.init_app(app)
    app.json.sort_keys = app.config.get('JSON_SORT_KEYS', False)

    # Ensure instance folder exists for the SQLite database
    os.makedirs(app.instance_path, exist_ok=True)

    configure_logging(app)
    db.init_app(app)
    init_security(app)
    register_error_handlers(app)
    register_blueprints(app)
    register_commands(app)

    logger.info("myMadrassa API started with %s", config_class.__name__)
    return app
