import logging
import os
from datetime import timedelta

from flask import Flask, g, jsonify, request, session
from dotenv import load_dotenv

from app.pms.config import load_config
from app.pms.db import init_db, teardown_db_session
from app.pms.errors import register_error_handlers
from app.pms.routes import bp as routes_bp
from app.pms.auth import bp as auth_bp, load_current_user
from app.pms.modules.properties.admin import bp as properties_bp
from app.pms.modules.tenants.admin import bp as tenants_bp
from app.pms.modules.vendors.admin import bp as vendors_bp
from app.pms.modules.leases.admin import bp as leases_bp
from app.pms.modules.maintenance.admin import bp as maintenance_bp
from app.pms.modules.payments.admin import bp as payments_bp
from app.pms.modules.expenses.admin import bp as expenses_bp
from app.pms.modules.inspections.admin import bp as inspections_bp
from app.pms.modules.documents.admin import bp as documents_bp
from app.pms.modules.lease_templates.admin import bp as lease_templates_bp
from app.pms.modules.lease_documents.admin import bp as lease_documents_bp
from app.pms.modules.deposits.admin import bp as deposits_bp

logger = logging.getLogger(__name__)

# (blueprint, url_prefix); lease document endpoints share the /api/leases prefix
BLUEPRINTS = (
    (routes_bp, None),
    (auth_bp, "/auth"),
    (properties_bp, "/api"),
    (tenants_bp, "/api/tenants"),
    (vendors_bp, "/api/vendors"),
    (leases_bp, "/api/leases"),
    (lease_documents_bp, "/api/leases"),
    (maintenance_bp, "/api/maintenance"),
    (payments_bp, "/api/payments"),
    (expenses_bp, "/api/expenses"),
    (inspections_bp, "/api/inspections"),
    (documents_bp, "/api/documents"),
    (lease_templates_bp, "/api/lease-templates"),
    (deposits_bp, "/api/deposits"),
)

UNAUTHENTICATED_PREFIXES = ("/health", "/healthz")


def _check_production_config(app: Flask) -> None:
    """Refuse to boot a production app on sqlite, a default secret or a half-configured mailer."""
    env = (app.config.get("ENV") or "").strip().lower()
    if env not in ("prod", "production"):
        return
    db_url = str(app.config.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL is required in production.")
    if db_url.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    if str(app.config.get("SECRET_KEY") or "") in ("", "change-me"):
        raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
    if app.config.get("EMAIL_BACKEND") == "resend" and not app.config.get("RESEND_API_KEY"):
        raise RuntimeError("RESEND_API_KEY is required when EMAIL_BACKEND=resend.")


def _check_storage(app: Flask) -> None:
    """Log loudly when the S3 backend is selected but unusable. Never blocks boot."""
    if app.config.get("STORAGE_BACKEND") != "s3":
        return
    missing = [k for k in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not app.config.get(k)]
    if missing:
        app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing))
        return
    from app.pms.storage import S3Storage, storage_from_config

    storage = storage_from_config(app.config)
    if not isinstance(storage, S3Storage):
        return
    try:
        storage._client().head_bucket(Bucket=storage.bucket)
    except Exception as e:
        app.logger.error("STORAGE CONFIG ERROR: Cannot access S3 bucket '%s': %s", storage.bucket, e)
    else:
        app.logger.info("Storage health check PASSED: S3 bucket '%s' accessible", storage.bucket)


def _dispose_engine_after_fork(app: Flask) -> None:
    # gunicorn workers must not share pooled connections with the master
    if not hasattr(os, "register_at_fork"):
        return

    def _after_fork_child():
        engine = app.extensions.get("sqlalchemy_engine")
        if engine:
            engine.dispose()
            app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

    os.register_at_fork(after_in_child=_after_fork_child)


def _install_request_hooks(app: Flask) -> None:
    from app.pms.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(UNAUTHENTICATED_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method not in ("POST", "PUT", "PATCH", "DELETE"):
            return None
        # login/logout establish the session
        if (request.endpoint or "").startswith("auth."):
            return None
        if not validate_csrf(request):
            return jsonify({"error": "CSRF token missing or invalid."}), 400
        return None

    @app.before_request
    def _load_user():
        if request.path.startswith(UNAUTHENTICATED_PREFIXES):
            g.current_user = None
            return None
        return load_current_user()

    app.teardown_appcontext(teardown_db_session)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    _check_production_config(app)
    init_db(app)
    _dispose_engine_after_fork(app)
    _check_storage(app)

    _install_request_hooks(app)
    for blueprint, prefix in BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=prefix)
    register_error_handlers(app)

    logger.info("create_app() complete; %d blueprints registered (env=%s)", len(BLUEPRINTS), app.config.get("ENV"))
    return app
