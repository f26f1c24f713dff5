# backend/agrocaja/__init__.py
import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import AgroCajaError, error_response
from .extensions import db, migrate


__version__ = "1.0.0"


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    app.logger.setLevel(level)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(AgroCajaError)
    def handle_domain_error(exc):
        return error_response(exc)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return jsonify({
            "success": False,
            "error": exc.name,
            "message": exc.description,
        }), exc.code

    @app.errorhandler(500)
    def handle_internal_error(exc):
        db.session.rollback()
        return jsonify({
            "success": False,
            "error": "internal",
            "message": "Internal server error",
        }), 500


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.cash import cash_bp
    from .routes.income import income_bp
    from .routes.expenses import expenses_bp
    from .routes.inventory import inventory_bp
    from .routes.settlements import settlements_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(cash_bp)
    app.register_blueprint(income_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(settlements_bp)

    _register_error_handlers(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
