from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from app.circle.audit import record_event
from app.circle.constants import (
    APPLICATION_STATUSES,
    AVAILABILITY_CHOICES,
    COMMITMENT_MAX,
    COMMITMENT_MIN,
    STATUS_FILTER_ALL,
    WORD_LIMITS,
)
from app.circle.modules.applications.models import Application, ApplicationNote
from app.circle.utils import count_words, is_valid_email, normalize_email, week_start

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.circle.models import User


@dataclass(frozen=True)
class ApprovalCheck:
    is_approved: bool
    first_name: str | None = None
    last_name: str | None = None


@dataclass
class ApplicationStats:
    total: int = 0
    counts: dict[str, int] = field(default_factory=dict)
    conversion_rate: int = 0
    weekly_trend: list[tuple[str, int]] = field(default_factory=list)


def _text(payload: dict, key: str) -> str:
    return (payload.get(key) or "").strip()


def validate_application_payload(payload: dict) -> list[str]:
    """Validate an intake form submission. Returns list of errors."""
    errors: list[str] = []
    if not _text(payload, "first_name"):
        errors.append("Please enter your first name.")
    if not _text(payload, "last_name"):
        errors.append("Please enter your last name.")
    email = _text(payload, "email")
    if not email:
        errors.append("Please enter your email address.")
    elif not is_valid_email(email):
        errors.append("Please enter a valid email address.")
    if not _text(payload, "location"):
        errors.append("Please select your location.")
    if _text(payload, "availability") not in AVAILABILITY_CHOICES:
        errors.append("Please select your availability.")

    try:
        level = int(_text(payload, "commitment_level"))
    except ValueError:
        level = None
    if level is None or not COMMITMENT_MIN <= level <= COMMITMENT_MAX:
        errors.append(f"Commitment level must be between {COMMITMENT_MIN} and {COMMITMENT_MAX}.")
    if not _text(payload, "commitment_explanation"):
        errors.append("Please explain your commitment rating.")

    labels = {
        "growth_goal": ("Please describe your growth goal.", "Growth goal"),
        "digital_product": ("Please describe your digital product.", "Digital product description"),
        "excitement": ("Please share what excites you about joining.", "Excitement response"),
    }
    for key, (missing_msg, label) in labels.items():
        value = _text(payload, key)
        if not value:
            errors.append(missing_msg)
        elif count_words(value) > WORD_LIMITS[key]:
            errors.append(f"{label} exceeds {WORD_LIMITS[key]} words.")

    if _text(payload, "agree_guidelines") not in ("yes", "no"):
        errors.append("Please indicate whether you agree to the group guidelines.")
    if not payload.get("gdpr_consent"):
        errors.append("Please provide consent to proceed.")
    return errors


def submit_application(s: "Session", payload: dict) -> Application:
    """Store a validated application with status pending."""
    now = datetime.utcnow()
    application = Application(
        first_name=_text(payload, "first_name"),
        last_name=_text(payload, "last_name"),
        email=normalize_email(payload.get("email")),
        location=_text(payload, "location"),
        availability=_text(payload, "availability"),
        commitment_level=int(_text(payload, "commitment_level")),
        commitment_explanation=_text(payload, "commitment_explanation"),
        growth_goal=_text(payload, "growth_goal"),
        digital_product=_text(payload, "digital_product"),
        excitement=_text(payload, "excitement"),
        agreed_to_guidelines=_text(payload, "agree_guidelines") == "yes",
        gdpr_consent=bool(payload.get("gdpr_consent")),
        status="pending",
        created_at=now,
        updated_at=now,
    )
    s.add(application)
    s.flush()
    record_event(
        s,
        actor=None,
        action="application.submit",
        entity_type="Application",
        entity_id=str(application.id),
        metadata={"email": application.email},
    )
    return application


def check_application_approval(s: "Session", email: str | None) -> ApprovalCheck:
    """
    Signup gate: an email may register only once one of its applications is approved.
    Names come from the most recent approved application.
    """
    normalized = normalize_email(email)
    if not normalized:
        return ApprovalCheck(is_approved=False)
    approved = (
        s.query(Application)
        .filter(Application.email == normalized)
        .filter(Application.status == "approved")
        .order_by(Application.created_at.desc(), Application.id.desc())
        .first()
    )
    if not approved:
        return ApprovalCheck(is_approved=False)
    return ApprovalCheck(is_approved=True, first_name=approved.first_name, last_name=approved.last_name)


def list_applications(s: "Session", status_filter: str = STATUS_FILTER_ALL) -> list[Application]:
    q = s.query(Application)
    if status_filter and status_filter != STATUS_FILTER_ALL:
        q = q.filter(Application.status == status_filter)
    return q.order_by(Application.created_at.desc(), Application.id.desc()).all()


def update_application_status(s: "Session", application: Application, new_status: str, user: "User") -> str:
    """Change an application's status. Returns the previous status."""
    new_status = (new_status or "").strip().lower()
    if new_status not in APPLICATION_STATUSES:
        raise ValueError(f"Invalid status. Must be one of: {', '.join(APPLICATION_STATUSES)}")
    old_status = application.status
    if new_status == old_status:
        return old_status

    application.status = new_status
    application.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="application.status_change",
        entity_type="Application",
        entity_id=str(application.id),
        old_value={"status": old_status},
        new_value={"status": new_status},
        metadata={"email": application.email, "name": application.full_name},
    )
    return old_status


def add_note(s: "Session", application: Application, content: str, user: "User") -> ApplicationNote:
    content = (content or "").strip()
    if not content:
        raise ValueError("Note cannot be empty.")
    note = ApplicationNote(application_id=application.id, admin_user_id=user.id, content=content)
    s.add(note)
    s.flush()
    record_event(
        s,
        actor=user,
        action="application.note_add",
        entity_type="ApplicationNote",
        entity_id=str(note.id),
        metadata={"application_id": application.id},
    )
    return note


def delete_note(s: "Session", note: ApplicationNote, user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="application.note_delete",
        entity_type="ApplicationNote",
        entity_id=str(note.id),
        old_value={"content": note.content},
        metadata={"application_id": note.application_id},
    )
    s.delete(note)


def compute_stats(applications: list[Application], today: date | None = None, weeks: int = 8) -> ApplicationStats:
    """Per-status totals, approval conversion rate and a Monday-start weekly trend."""
    counts = {status: 0 for status in APPLICATION_STATUSES}
    for a in applications:
        counts[a.status] = counts.get(a.status, 0) + 1

    decided = counts["approved"] + counts["rejected"]
    conversion = round(counts["approved"] / decided * 100) if decided else 0

    current = week_start(today)
    starts = [current - timedelta(weeks=i) for i in range(weeks - 1, -1, -1)]
    per_week = {ws: 0 for ws in starts}
    for a in applications:
        ws = week_start(a.created_at.date())
        if ws in per_week:
            per_week[ws] += 1
    trend = [(ws.strftime("%b %d").replace(" 0", " "), per_week[ws]) for ws in starts]

    return ApplicationStats(total=len(applications), counts=counts, conversion_rate=conversion, weekly_trend=trend)


EXPORT_COLUMNS = (
    "id",
    "created_at",
    "status",
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
    "agreed_to_guidelines",
    "gdpr_consent",
)


def export_csv(applications: list[Application]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(EXPORT_COLUMNS)
    for a in applications:
        row = []
        for col in EXPORT_COLUMNS:
            value = getattr(a, col)
            if isinstance(value, datetime):
                value = value.isoformat(sep=" ", timespec="seconds")
            elif isinstance(value, bool):
                value = "yes" if value else "no"
            row.append(value)
        writer.writerow(row)
    return buf.getvalue()
