from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING
from urllib.parse import quote, urlparse

from flask import current_app, render_template
from markupsafe import escape

from app.circle.audit import record_event
from app.circle.constants import (
    EMAIL_STATUS_FAILED,
    EMAIL_STATUS_SENT,
    NOTIFY_DIGEST,
    NOTIFY_INSTANT,
    NOTIFY_OFF,
    TEMPLATE_KEYS,
)
from app.circle.mailer import MailError, get_mailer
from app.circle.modules.discussion.service import author_name
from app.circle.modules.groups.models import GroupMember
from app.circle.modules.notifications.defaults import DEFAULT_TEMPLATES
from app.circle.modules.notifications.models import DigestQueueItem, EmailClick, EmailHistory, EmailTemplate
from app.circle.security import sign_value, verify_signature
from app.circle.utils import first_name, truncate

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.circle.models import User
    from app.circle.modules.applications.models import Application
    from app.circle.modules.deletion_requests.models import DeletionRequest
    from app.circle.modules.discussion.models import GroupAnswer, GroupQuestion

logger = logging.getLogger(__name__)

QUESTION_PREVIEW_CHARS = 200
REPLY_QUESTION_CHARS = 100
REPLY_ANSWER_CHARS = 200
DIGEST_QUESTION_CHARS = 150

_HREF_RE = re.compile(r'href="(https?://[^"]+)"')


@dataclass
class FanoutResult:
    sent: int = 0
    failed: int = 0
    queued: int = 0


@dataclass
class DigestResult:
    sent: int = 0
    failed: int = 0
    questions_processed: int = 0


def render_placeholders(text: str, name: str, html: bool = False) -> str:
    """Substitute {{name}}. HTML bodies get the name escaped."""
    value = str(escape(name)) if html else name
    return (text or "").replace("{{name}}", value)


def _base_url() -> str:
    return current_app.config.get("APP_BASE_URL") or ""


def _deliver(to: str, subject: str, html: str) -> tuple[bool, str | None]:
    """Send through the configured mailer. Failures are logged and returned, never raised."""
    if not to:
        return False, "No recipient address."
    try:
        get_mailer().send(to, subject, html)
    except MailError as e:
        logger.warning("Email send failed to=%s subject=%s error=%s", to, subject, e)
        return False, str(e)
    return True, None


# ---------- Q&A ----------

def notify_new_question(s: "Session", question: "GroupQuestion") -> FanoutResult:
    """
    Fan a new question out to the rest of the group according to each member's
    notification preference: instant email, digest queue, or nothing.
    """
    result = FanoutResult()
    asker = author_name(question.author)
    members = (
        s.query(GroupMember)
        .filter(GroupMember.group_id == question.group_id)
        .filter(GroupMember.user_id != question.user_id)
        .all()
    )
    subject = f"{asker} asked a question in your group"
    preview = truncate(question.content, QUESTION_PREVIEW_CHARS)

    for member in members:
        user = member.user
        profile = user.profile
        preference = profile.notification_preference if profile else NOTIFY_INSTANT

        if preference == NOTIFY_OFF:
            continue

        if preference == NOTIFY_DIGEST:
            item = s.query(DigestQueueItem).filter(DigestQueueItem.question_id == question.id).one_or_none()
            if item is None:
                s.add(
                    DigestQueueItem(
                        group_id=question.group_id,
                        question_id=question.id,
                        author_name=asker,
                        question_content=question.content,
                    )
                )
                s.flush()
            else:
                item.author_name = asker
                item.question_content = question.content
            result.queued += 1
            continue

        html = render_template(
            "emails/new_question.html",
            greeting=first_name(profile.name if profile else None),
            author=asker,
            preview=preview,
            link=f"{_base_url()}/group",
        )
        ok, _ = _deliver(user.email, subject, html)
        if ok:
            result.sent += 1
        else:
            result.failed += 1

    logger.info(
        "New question fan-out question_id=%s sent=%s failed=%s queued=%s",
        question.id,
        result.sent,
        result.failed,
        result.queued,
    )
    return result


def notify_question_reply(s: "Session", question: "GroupQuestion", answer: "GroupAnswer") -> bool:
    """Email the question's author about a reply. Self-replies are skipped."""
    if answer.user_id == question.user_id:
        return False
    author = question.author
    if author is None:
        return False
    replier = author_name(answer.author)
    html = render_template(
        "emails/question_reply.html",
        greeting=first_name(author.profile.name if author.profile else None),
        replier=replier,
        question=truncate(question.content, REPLY_QUESTION_CHARS),
        answer=truncate(answer.content, REPLY_ANSWER_CHARS),
        link=f"{_base_url()}/group",
    )
    ok, _ = _deliver(author.email, f"{replier} replied to your question", html)
    return ok


def digest_subject(count: int) -> str:
    noun = "question" if count == 1 else "questions"
    return f"Your Weekly Digest: {count} new {noun} in your group"


def send_weekly_digest(s: "Session") -> DigestResult:
    """
    Send one digest email per digest-preference member per group with queued
    questions, then clear the queue.
    """
    items = s.query(DigestQueueItem).order_by(DigestQueueItem.created_at.asc(), DigestQueueItem.id.asc()).all()
    result = DigestResult(questions_processed=len(items))
    if not items:
        logger.info("Weekly digest: queue empty")
        return result

    by_group: dict[int, list[DigestQueueItem]] = defaultdict(list)
    for item in items:
        by_group[item.group_id].append(item)

    for group_id, group_items in by_group.items():
        questions = [
            {"author": i.author_name, "content": truncate(i.question_content, DIGEST_QUESTION_CHARS)}
            for i in group_items
        ]
        subject = digest_subject(len(questions))
        members = s.query(GroupMember).filter(GroupMember.group_id == group_id).all()
        for member in members:
            profile = member.user.profile
            if not profile or profile.notification_preference != NOTIFY_DIGEST:
                continue
            html = render_template(
                "emails/weekly_digest.html",
                greeting=first_name(profile.name),
                questions=questions,
                link=f"{_base_url()}/group",
            )
            ok, _ = _deliver(member.user.email, subject, html)
            if ok:
                result.sent += 1
            else:
                result.failed += 1

    s.query(DigestQueueItem).filter(DigestQueueItem.id.in_([i.id for i in items])).delete(synchronize_session=False)
    logger.info(
        "Weekly digest complete sent=%s failed=%s questions=%s",
        result.sent,
        result.failed,
        result.questions_processed,
    )
    return result


# ---------- Application status ----------

def resolve_template(s: "Session", template_key: str) -> tuple[str, str]:
    """(subject, html) for a status key: the stored template, else the built-in one."""
    template = s.query(EmailTemplate).filter(EmailTemplate.template_key == template_key).one_or_none()
    if template is not None:
        return template.subject, template.html_content
    fallback = DEFAULT_TEMPLATES[template_key]
    return fallback["subject"], fallback["html_content"]


def tracking_signature(history_id: int) -> str | None:
    secret = current_app.config.get("EMAIL_TRACKING_SECRET") or ""
    return sign_value(secret, str(history_id)) if secret else None


def tracked_link(history_id: int, url: str) -> str:
    sig = tracking_signature(history_id)
    if not sig:
        return url
    return f"{_base_url()}/email/click/{history_id}?sig={sig}&url={quote(url, safe='')}"


def add_tracking(html: str, history_id: int) -> str:
    """
    Rewrite links through the click tracker and append the open pixel. Only links
    to allowed hosts are rewritten since the click endpoint refuses the rest.
    """
    sig = tracking_signature(history_id)
    if not sig:
        return html
    allowed = current_app.config.get("TRACKING_ALLOWED_DOMAINS") or ()

    def _rewrite(m: re.Match) -> str:
        url = m.group(1)
        parsed = parse_click_url(url)
        if parsed is None or not is_allowed_host(parsed.hostname, allowed):
            return m.group(0)
        return f'href="{tracked_link(history_id, url)}"'

    html = _HREF_RE.sub(_rewrite, html)
    pixel = (
        f'<img src="{_base_url()}/email/open/{history_id}?sig={sig}" '
        'width="1" height="1" alt="" style="display:none" />'
    )
    return html + pixel


def send_status_notification(
    s: "Session",
    application: "Application",
    status: str,
    sent_by: "User | None",
) -> EmailHistory | None:
    """
    Email the applicant about a status change and record it in the email history.
    Nothing is sent for `removed`.
    """
    if status not in TEMPLATE_KEYS:
        return None
    subject_tpl, html_tpl = resolve_template(s, status)
    name = first_name(application.first_name)
    subject = render_placeholders(subject_tpl, name)
    html = render_placeholders(html_tpl, name, html=True)

    history = EmailHistory(
        application_id=application.id,
        recipient_email=application.email,
        recipient_name=application.full_name,
        template_key=status,
        subject=subject,
        status=EMAIL_STATUS_SENT,
        sent_by_user_id=sent_by.id if sent_by else None,
        sent_at=datetime.utcnow(),
    )
    s.add(history)
    s.flush()

    ok, error = _deliver(application.email, subject, add_tracking(html, history.id))
    if not ok:
        history.status = EMAIL_STATUS_FAILED
        history.error_message = error
    logger.info("Status email application_id=%s status=%s result=%s", application.id, status, history.status)
    return history


def list_email_history(s: "Session", application_id: int | None = None, limit: int = 100) -> list[EmailHistory]:
    q = s.query(EmailHistory)
    if application_id is not None:
        q = q.filter(EmailHistory.application_id == application_id)
    return q.order_by(EmailHistory.sent_at.desc(), EmailHistory.id.desc()).limit(limit).all()


# ---------- Applications / deletion requests ----------

def notify_new_application(application: "Application") -> tuple[bool, bool]:
    """Facilitator alert and applicant confirmation. Returns (facilitator_ok, applicant_ok)."""
    facilitator = current_app.config.get("FACILITATOR_EMAIL") or ""
    facilitator_ok = False
    if facilitator:
        html = render_template(
            "emails/new_application_facilitator.html",
            application=application,
            link=f"{_base_url()}/admin/applications/{application.id}",
        )
        facilitator_ok, _ = _deliver(facilitator, f"New Application: {application.full_name}", html)
    else:
        logger.warning("FACILITATOR_EMAIL not configured; skipping new application alert")

    html = render_template("emails/application_received.html", greeting=first_name(application.first_name))
    applicant_ok, _ = _deliver(application.email, "We've Received Your Application!", html)
    return facilitator_ok, applicant_ok


def notify_deletion_request(request_row: "DeletionRequest") -> bool:
    facilitator = current_app.config.get("FACILITATOR_EMAIL") or ""
    if not facilitator:
        logger.warning("FACILITATOR_EMAIL not configured; skipping deletion request alert")
        return False
    html = render_template(
        "emails/deletion_request_facilitator.html",
        request_row=request_row,
        link=f"{_base_url()}/admin/deletion-requests",
    )
    ok, _ = _deliver(facilitator, f"Account Deletion Request: {request_row.user_name}", html)
    return ok


def notify_deletion_processed(request_row: "DeletionRequest", completed: bool) -> bool:
    greeting = first_name(request_row.user_name)
    if completed:
        subject = "Your Account Has Been Deleted - Accountability Circle"
        html = render_template("emails/deletion_completed.html", greeting=greeting)
    else:
        subject = "Your Account Deletion Request Was Cancelled"
        html = render_template("emails/deletion_cancelled.html", greeting=greeting)
    ok, _ = _deliver(request_row.user_email, subject, html)
    return ok


# ---------- Email templates (admin) ----------

def ensure_default_templates(s: "Session") -> int:
    """Insert built-in templates for any missing status key. Returns how many were created."""
    existing = {t.template_key for t in s.query(EmailTemplate).all()}
    created = 0
    for key in TEMPLATE_KEYS:
        if key in existing:
            continue
        default = DEFAULT_TEMPLATES[key]
        s.add(
            EmailTemplate(
                template_key=key,
                subject=default["subject"],
                html_content=default["html_content"],
                description=default["description"],
            )
        )
        created += 1
    if created:
        s.flush()
    return created


def list_templates(s: "Session") -> list[EmailTemplate]:
    return s.query(EmailTemplate).order_by(EmailTemplate.template_key.asc()).all()


def validate_template_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    if not (payload.get("subject") or "").strip():
        errors.append("Subject is required.")
    if not (payload.get("html_content") or "").strip():
        errors.append("Email content is required.")
    return errors


def update_template(s: "Session", template: EmailTemplate, payload: dict, user: "User") -> EmailTemplate:
    old = {"subject": template.subject, "description": template.description}
    template.subject = (payload.get("subject") or "").strip()
    template.html_content = (payload.get("html_content") or "").strip()
    template.description = (payload.get("description") or "").strip() or None
    template.updated_at = datetime.utcnow()
    template.updated_by_user_id = user.id
    record_event(
        s,
        actor=user,
        action="email_template.update",
        entity_type="EmailTemplate",
        entity_id=template.template_key,
        old_value=old,
        new_value={"subject": template.subject, "description": template.description},
    )
    return template


def send_test_email(template: EmailTemplate, to_email: str, test_name: str = "Test User") -> tuple[bool, str | None]:
    """Preview a template with the whole test name in place of {{name}}."""
    name = (test_name or "").strip() or "Test User"
    subject = "[TEST] " + render_placeholders(template.subject, name)
    html = render_placeholders(template.html_content, name, html=True)
    return _deliver(to_email, subject, html)


# ---------- Tracking ----------

def is_allowed_host(host: str | None, allowed_domains: tuple[str, ...] | list[str]) -> bool:
    host = (host or "").lower().rstrip(".")
    if not host:
        return False
    return any(host == d or host.endswith("." + d) for d in allowed_domains)


def parse_click_url(url: str | None):
    """Parsed http(s) URL with a host, or None."""
    if not url:
        return None
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    return parsed


def record_open(s: "Session", history_id: int, signature: str | None) -> bool:
    """Count an open when the signature checks out. Returns True when recorded."""
    secret = current_app.config.get("EMAIL_TRACKING_SECRET") or ""
    if not verify_signature(secret, str(history_id), signature):
        return False
    history = s.get(EmailHistory, history_id)
    if history is None:
        return False
    now = datetime.utcnow()
    if history.opened_at is None:
        history.opened_at = now
    history.open_count = (history.open_count or 0) + 1
    return True


def record_click(s: "Session", history: EmailHistory, url: str) -> EmailClick:
    click = EmailClick(email_history_id=history.id, url=url)
    s.add(click)
    history.click_count = (history.click_count or 0) + 1
    return click
