"""Hubspace application factory and bootstrap."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from flask import Flask

from hubspace.config import config_by_name
from hubspace.extensions import init_extensions


def create_app(config_name: Optional[str] = None) -> Flask:
    """Create and configure the Hubspace Flask application."""
    env_name = (config_name or os.environ.get("APP_ENV") or "development").lower()
    project_root = Path(__file__).resolve().parent.parent
    instance_root = project_root / "instance"

    app = Flask(__name__, instance_path=str(instance_root), instance_relative_config=True)
    config_cls = config_by_name.get(env_name, config_by_name["development"])
    app.config.from_object(config_cls)

    # Normalize sqlite path to absolute to avoid "unable to open database file"
    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if db_uri.startswith("sqlite:///"):
        db_path = Path(db_uri.replace("sqlite:///", "", 1))
        if not db_path.is_absolute():
            db_path = project_root / db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{db_path}"

    init_extensions(app)
    _register_models()
    _register_blueprints(app)
    _register_error_handlers(app)

    @app.get("/health")
    def health():
        return {"ok": True}, 200

    from hubspace.scripts.commands import register_commands

    register_commands(app)

    return app


def _register_models() -> None:
    """Import every model module so metadata (and Alembic autogenerate) sees all tables."""
    from hubspace.domains.hubs import models as hub_models  # noqa: F401
    from hubspace.domains.memberships import models as membership_models  # noqa: F401
    from hubspace.hubs_platform.feed import models as feed_models  # noqa: F401
    from hubspace.readmodels.member_count import models as member_count_models  # noqa: F401


def _register_blueprints(app: Flask) -> None:
    from hubspace.domains.memberships.controllers.membership_api import membership_api_bp

    app.register_blueprint(membership_api_bp, url_prefix="/api/hubs")


def _register_error_handlers(app: Flask) -> None:
    """Basic JSON error responses."""
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return {"ok": False, "error": exc.description}, exc.code

    @app.errorhandler(Exception)
    def _generic_error(exc: Exception):
        app.logger.exception("Unhandled error: %s", exc)
        if app.debug or app.testing:
            return {"ok": False, "error": str(exc)}, 500
        return {"ok": False, "error": "unexpected_error"}, 500
