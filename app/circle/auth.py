from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from werkzeug.security import check_password_hash, generate_password_hash

from app.circle.audit import record_event
from app.circle.constants import MIN_PASSWORD_LENGTH, NOTIFY_INSTANT
from app.circle.db import db_session
from app.circle.models import User
from app.circle.modules.applications.service import check_application_approval
from app.circle.modules.members.models import Profile
from app.circle.rbac import user_has_permission
from app.circle.security import is_safe_next
from app.circle.utils import normalize_email

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def _home_for(user: User):
    if user_has_permission(user, "admin.view"):
        return redirect(url_for("admin.index"))
    return redirect(url_for("members.dashboard"))


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie and assigns a
    per-request request_id for audit/log correlation.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz", "/email/")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    s = db_session()
    user = s.get(User, int(user_id))
    if not user or not user.is_active:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


@bp.get("/login")
def login_get():
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    email = normalize_email(request.form.get("email"))
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))

    _record_attempt(ip)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        flash("Invalid email or password.", "danger")
        return redirect(url_for("auth.login_get", next=nxt) if nxt else url_for("auth.login_get"))

    session["user_id"] = user.id
    _login_attempts[ip].clear()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    if nxt and is_safe_next(nxt):
        return redirect(nxt)
    return _home_for(user)


@bp.get("/signup")
def signup_get():
    return render_template("auth/signup.html", form={})


@bp.post("/signup")
def signup_post():
    """Account creation is only open to emails with an approved application."""
    name = (request.form.get("name") or "").strip()
    email = normalize_email(request.form.get("email"))
    password = request.form.get("password") or ""
    form = {"name": name, "email": email}

    errors: list[str] = []
    if not name:
        errors.append("Please enter your name.")
    if not email:
        errors.append("Please enter your email address.")
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("auth/signup.html", form=form), 400

    s = db_session()
    approval = check_application_approval(s, email)
    if not approval.is_approved:
        record_event(
            s,
            actor=None,
            action="auth.signup_refused",
            entity_type="User",
            entity_id=email,
            reason="No approved application",
        )
        s.commit()
        flash(
            "We couldn't find an approved application for this email. "
            "Please apply to join the Accountability Circle first.",
            "danger",
        )
        return render_template("auth/signup.html", form=form, show_apply_link=True), 403

    if s.query(User).filter(User.email == email).one_or_none() is not None:
        flash("An account with this email already exists. Please sign in.", "danger")
        return render_template("auth/signup.html", form=form), 409

    user = User(email=email, password_hash=generate_password_hash(password), is_active=True)
    s.add(user)
    s.flush()
    s.add(Profile(user_id=user.id, name=name, notification_preference=NOTIFY_INSTANT))
    record_event(s, actor=user, action="auth.signup", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("New member signed up user_id=%s", user.id)

    session["user_id"] = user.id
    flash("Welcome to the Accountability Circle!", "success")
    return redirect(url_for("members.dashboard"))


@bp.get("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return redirect(url_for("routes.index"))
