# backend/catalog_admin/__init__.py
import os

from flask import Flask
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate
from .services.concurrency import (
    TransientStoreError,
    enable_sqlite_foreign_keys,
    serialize_sqlite_writers,
)


MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "migrations")


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Pool sizing only applies to server databases
    if not app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", dict(app.config["SQLALCHEMY_POOL_OPTIONS"]))

    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db, directory=MIGRATIONS_DIR)

    url = make_url(app.config["SQLALCHEMY_DATABASE_URI"])
    if url.get_backend_name() == "sqlite":
        with app.app_context():
            enable_sqlite_foreign_keys(db.engine)
            if url.database not in (None, "", ":memory:"):
                serialize_sqlite_writers(db.engine)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .routes import IdConverter
    app.url_map.converters["id"] = IdConverter

    # Register blueprints
    from .routes.system import system_bp
    from .routes.categories import categories_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)

    register_error_handlers(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def register_error_handlers(app: Flask) -> None:
    """Every error leaves the API as {"error": message}."""

    def _integrity_error_handler(e):
        db.session.rollback()
        msg = str(getattr(e, "orig", e))
        app.logger.warning("IntegrityError caught: %s", msg)
        return {"error": "Request conflicts with existing data."}, 409

    def _not_found_handler(e):
        return {"error": "Endpoint not found"}, 404

    def _method_not_allowed_handler(e):
        return {"error": "Method not allowed"}, 405

    def _transient_store_handler(e):
        app.logger.error("Store unavailable: %s", e)
        return {"error": "Internal Server Error"}, 500

    def _unhandled_error_handler(e):
        if isinstance(e, HTTPException):
            return {"error": e.description or e.name}, e.code
        db.session.rollback()
        app.logger.exception("Unhandled error")
        return {"error": "Internal Server Error"}, 500

    app.register_error_handler(IntegrityError, _integrity_error_handler)
    app.register_error_handler(404, _not_found_handler)
    app.register_error_handler(405, _method_not_allowed_handler)
    app.register_error_handler(TransientStoreError, _transient_store_handler)
    app.register_error_handler(Exception, _unhandled_error_handler)
