from __future__ import annotations

import random

from flask import Blueprint, current_app, flash, redirect, render_template, request, session, url_for

from app.circle.constants import AVAILABILITY_CHOICES, COMMITMENT_MAX, COMMITMENT_MIN, WORD_LIMITS
from app.circle.db import db_session
from app.circle.modules.applications.service import submit_application, validate_application_payload
from app.circle.modules.notifications.service import notify_new_application

bp = Blueprint("apply", __name__)

FORM_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "location",
    "availability",
    "commitment_level",
    "commitment_explanation",
    "growth_goal",
    "digital_product",
    "excitement",
    "agree_guidelines",
    "gdpr_consent",
)


def _new_captcha() -> tuple[int, int]:
    pair = (random.randint(1, 10), random.randint(1, 10))
    session["captcha"] = list(pair)
    return pair


def _captcha_ok(answer: str | None) -> bool:
    pair = session.pop("captcha", None)
    if not pair:
        return False
    try:
        return int((answer or "").strip()) == sum(pair)
    except ValueError:
        return False


def _render_form(form: dict, status: int = 200):
    a, b = _new_captcha()
    return (
        render_template(
            "public/apply.html",
            form=form,
            captcha_a=a,
            captcha_b=b,
            availability_choices=AVAILABILITY_CHOICES,
            commitment_range=range(COMMITMENT_MIN, COMMITMENT_MAX + 1),
            word_limits=WORD_LIMITS,
        ),
        status,
    )


@bp.get("/apply")
def apply_get():
    return _render_form({})


@bp.post("/apply")
def apply_post():
    payload = {k: request.form.get(k) for k in FORM_FIELDS}
    errors = validate_application_payload(payload)
    if not _captcha_ok(request.form.get("captcha_answer")):
        errors.append("Incorrect answer to the verification question. Please try again.")
    if errors:
        for e in errors:
            flash(e, "danger")
        return _render_form(payload, 400)

    s = db_session()
    application = submit_application(s, payload)
    s.commit()
    current_app.logger.info("Application submitted id=%s", application.id)

    notify_new_application(application)
    return redirect(url_for("apply.apply_submitted"))


@bp.get("/apply/submitted")
def apply_submitted():
    return render_template("public/apply_submitted.html")
