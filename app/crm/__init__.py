import logging

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from sqlalchemy import inspect as sa_inspect
from werkzeug.exceptions import HTTPException

from app.crm.auth import bp as auth_bp, load_current_user
from app.crm.config import load_config
from app.crm.db import init_db, teardown_db_session
from app.crm.errors import CrmError
from app.crm.modules.customers.api import bp as customers_bp
from app.crm.routes import bp as routes_bp

# Tables the running code expects; checked once against the live database.
REQUIRED_TABLES = ("users", "customers", "audit_events")

HEALTH_PATHS = ("/health", "/healthz", "/api/health")


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    root.setLevel(level)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    _configure_logging(app.config["LOG_LEVEL"])

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os

        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(customers_bp, url_prefix="/api")

    def _load_user_wrapper():
        if request.path in HEALTH_PATHS:
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    # Migration health (lean): runs on the first API request, once per process.
    app.config.setdefault("_schema_health_ok", None)
    app.config.setdefault("_schema_health_missing", [])

    def _run_schema_health_check() -> bool:
        missing: list[str] = []
        try:
            insp = sa_inspect(app.extensions["sqlalchemy_engine"])
            missing = [t for t in REQUIRED_TABLES if not insp.has_table(t)]
        except Exception as e:
            app.logger.exception("Schema health check failed: %s", e)
            return False
        if missing:
            app.config["_schema_health_missing"] = missing
            app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))
            return False
        return True

    @app.before_request
    def _schema_health_guardrail():  # type: ignore[no-redef]
        if not request.path.startswith("/api") or request.path in HEALTH_PATHS:
            return None
        if app.config.get("_schema_health_ok") is None:
            app.config["_schema_health_ok"] = _run_schema_health_check()
        if app.config["_schema_health_ok"]:
            return None
        # Re-check next time so a migration run fixes a live process.
        app.config["_schema_health_ok"] = None
        return jsonify({"error": "Database schema out of date.", "missing": app.config["_schema_health_missing"]}), 503

    @app.errorhandler(CrmError)
    def _err_crm(e: CrmError):  # type: ignore[no-redef]
        if e.status_code >= 500:
            app.logger.error("%s (request_id=%s)", e.message, getattr(g, "request_id", None))
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        return jsonify({"error": e.description or e.name}), e.code or 500

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return jsonify({"error": "Internal server error.", "request_id": rid}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
