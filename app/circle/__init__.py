import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, has_request_context, render_template, request, session

from app.circle.admin import bp as admin_bp
from app.circle.auth import bp as auth_bp, load_current_user
from app.circle.config import load_config
from app.circle.db import init_db, teardown_db_session
from app.circle.mailer import init_mailer
from app.circle.modules.applications.admin import bp as applications_bp
from app.circle.modules.applications.public import bp as apply_bp
from app.circle.modules.deletion_requests.admin import bp as deletion_requests_bp
from app.circle.modules.discussion.routes import bp as discussion_bp
from app.circle.modules.groups.admin import bp as groups_admin_bp
from app.circle.modules.groups.routes import bp as groups_bp
from app.circle.modules.members.routes import bp as members_bp
from app.circle.modules.notifications.admin import bp as email_templates_bp
from app.circle.modules.notifications.tracking import bp as email_tracking_bp
from app.circle.modules.resources.admin import bp as resources_admin_bp
from app.circle.modules.resources.routes import bp as resources_bp
from app.circle.routes import bp as routes_bp

_UNGUARDED_PREFIXES = ("/static/", "/health", "/healthz", "/email/")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=14)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    from app.circle.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        # emails are also rendered from scripts, outside any request
        if not has_request_context():
            return {}
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_permissions() -> dict:
        from app.circle.rbac import user_has_permission

        def has_perm(key: str) -> bool:
            return user_has_permission(getattr(g, "current_user", None), key)

        return {"has_perm": has_perm, "current_user": getattr(g, "current_user", None)}

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_UNGUARDED_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if not app.config.get("CSRF_ENABLED", True):
            return None
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # login/logout are exempt
            if request.endpoint in ("auth.login_post", "auth.logout"):
                return None
            if not validate_csrf(request):
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not str(app.config.get("DATABASE_URL") or "").strip():
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if app.config.get("EMAIL_BACKEND") == "resend" and not app.config.get("RESEND_API_KEY"):
            app.logger.error("EMAIL CONFIG ERROR: EMAIL_BACKEND=resend but RESEND_API_KEY is empty")
        if not app.config.get("EMAIL_TRACKING_SECRET"):
            app.logger.warning("EMAIL_TRACKING_SECRET not set; email open/click tracking is disabled")

    init_db(app)
    init_mailer(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(apply_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(members_bp)
    app.register_blueprint(groups_bp)
    app.register_blueprint(discussion_bp)
    app.register_blueprint(resources_bp)
    app.register_blueprint(email_tracking_bp, url_prefix="/email")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(applications_bp, url_prefix="/admin")
    app.register_blueprint(groups_admin_bp, url_prefix="/admin")
    app.register_blueprint(email_templates_bp, url_prefix="/admin")
    app.register_blueprint(deletion_requests_bp, url_prefix="/admin")
    app.register_blueprint(resources_admin_bp, url_prefix="/admin")

    def _load_user_wrapper():
        if request.path.startswith(_UNGUARDED_PREFIXES):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(400)
    def _err_400(e):  # type: ignore[no-redef]
        return render_template("errors/400.html", message=getattr(e, "description", None)), 400

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return render_template("errors/404.html"), 404

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        from flask import flash, redirect, url_for

        flash("File too large. Maximum size is 25MB.", "danger")
        referrer = request.referrer
        if referrer and referrer.startswith(request.host_url):
            return redirect(referrer), 302
        return redirect(url_for("routes.index")), 302

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return render_template("errors/500.html"), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
