import sys
import logging
from typing import Optional

import click
from flask import Flask
from dotenv import load_dotenv
from werkzeug.exceptions import NotFound

from .errors import ConfigurationError, RemoteApiError
from .extensions import db, enable_sqlite_savepoints
from .utils.logger import error


def create_app(overrides: Optional[dict] = None):
    load_dotenv()
    app = Flask(__name__)
    app.config.from_object("skeinsync.config")
    if overrides:
        app.config.update(overrides)

    # =========================================================
    # Configure logging (gunicorn's handlers + stdout)
    # =========================================================
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    gunicorn_error = logging.getLogger("gunicorn.error")
    app.logger.handlers = list(gunicorn_error.handlers)
    app.logger.setLevel(level)

    sh = logging.StreamHandler(sys.stdout)
    sh.setLevel(level)
    sh.setFormatter(logging.Formatter("[%(asctime)s][%(levelname)s] %(message)s", "%H:%M:%S"))
    app.logger.addHandler(sh)

    # =========================================================
    # Database
    # =========================================================
    db.init_app(app)
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        with app.app_context():
            enable_sqlite_savepoints(db.engine)

    @app.cli.command("init-db")
    def init_db():
        """Create all tables."""
        db.create_all()
        click.echo("Database initialised.")

    # =========================================================
    # Errors
    # =========================================================
    @app.errorhandler(RemoteApiError)
    def remote_api_error(e):
        db.session.rollback()
        error(f"[rpc] request failed: {e.message}")
        return {"message": e.message, "errors": e.raw_errors}, 502

    @app.errorhandler(ConfigurationError)
    def configuration_error(e):
        db.session.rollback()
        return {"message": str(e)}, 422

    @app.errorhandler(NotFound)
    def not_found(e):
        return {"message": e.description}, 404

    # =========================================================
    # Blueprints
    # =========================================================
    from .routes.webhooks import bp as webhooks_bp
    from .routes.sync import bp as sync_bp
    from .routes.imports import bp as imports_bp

    app.register_blueprint(webhooks_bp, url_prefix="/webhooks")
    app.register_blueprint(sync_bp, url_prefix="/sync")
    app.register_blueprint(imports_bp, url_prefix="/imports")

    # =========================================================
    # Health check
    # =========================================================
    @app.get("/health")
    def health():
        app.logger.info("Health check endpoint called")
        return {"ok": True}, 200

    return app
