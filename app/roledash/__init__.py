import logging

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from app.roledash.audit import ActivityWriter, SqlActivityStore
from app.roledash.config import load_config
from app.roledash.db import init_db, teardown_db_session
from app.roledash.routes import bp as routes_bp
from app.roledash.auth import bp as auth_bp, load_current_user
from app.roledash.settings import bp as settings_bp
from app.roledash.activity import bp as activity_bp
from app.roledash.analytics import bp as analytics_bp


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.json.sort_keys = False
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if not app.config.get("JWT_SECRET") or str(app.config["JWT_SECRET"]) in ("", "change-me"):
            raise RuntimeError("JWT_SECRET must be set to a strong value in production (not default).")

    init_db(app)

    writer = ActivityWriter(
        SqlActivityStore(app.extensions["sqlalchemy_sessionmaker"]),
        max_workers=app.config["ACTIVITY_LOG_WORKERS"],
    )
    app.extensions["activity_writer"] = writer

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(settings_bp, url_prefix="/api/settings")
    app.register_blueprint(activity_bp, url_prefix="/api/activity")
    app.register_blueprint(analytics_bp, url_prefix="/api/analytics")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        return jsonify({"success": False, "message": e.description or e.name}), e.code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s path=%s)", rid, request.path)
        return jsonify({"success": False, "message": "Internal server error"}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
