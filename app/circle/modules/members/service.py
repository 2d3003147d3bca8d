from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from werkzeug.utils import secure_filename

from app.circle.audit import record_event
from app.circle.constants import AVATAR_CONTENT_TYPES, AVATAR_EXTENSIONS, AVATAR_MAX_BYTES, NOTIFICATION_PREFERENCES
from app.circle.modules.members.models import MiniMove, Profile, WeeklyEntry
from app.circle.utils import week_start

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.circle.models import User
    from app.circle.storage import Storage


PROFILE_FIELDS = ("name", "growth_goal", "monthly_milestones", "notification_preference")
WEEKLY_FIELDS = ("obstacles", "wins", "self_care")


class MemberError(ValueError):
    pass


def get_profile(s: "Session", user: "User") -> Profile:
    """Profile for user, created on first access."""
    profile = s.query(Profile).filter(Profile.user_id == user.id).one_or_none()
    if profile is None:
        profile = Profile(user_id=user.id, name="", notification_preference="instant")
        s.add(profile)
        s.flush()
    return profile


def update_profile_fields(s: "Session", user: "User", updates: dict) -> Profile:
    profile = get_profile(s, user)
    for key, raw in updates.items():
        if key not in PROFILE_FIELDS:
            raise MemberError(f"Unknown profile field: {key}")
        value = (raw or "").strip()
        if key == "name" and not value:
            raise MemberError("Name cannot be empty.")
        if key == "notification_preference" and value not in NOTIFICATION_PREFERENCES:
            raise MemberError(f"Notification preference must be one of: {', '.join(NOTIFICATION_PREFERENCES)}")
        if key in ("growth_goal", "monthly_milestones"):
            setattr(profile, key, value or None)
        else:
            setattr(profile, key, value)
    profile.updated_at = datetime.utcnow()
    return profile


# ---------- Weekly entries ----------

def previous_week_start(today: date | None = None) -> date:
    return week_start(today) - timedelta(weeks=1)


def is_week_editable(ws: date, today: date | None = None) -> bool:
    """Only the current and the previous week can be edited."""
    return ws in (week_start(today), previous_week_start(today))


def get_or_create_current_week(s: "Session", user: "User", today: date | None = None) -> WeeklyEntry:
    ws = week_start(today)
    entry = (
        s.query(WeeklyEntry)
        .filter(WeeklyEntry.user_id == user.id)
        .filter(WeeklyEntry.week_start == ws)
        .one_or_none()
    )
    if entry is None:
        entry = WeeklyEntry(user_id=user.id, week_start=ws)
        s.add(entry)
        s.flush()
    return entry


def previous_week_entry(s: "Session", user: "User", today: date | None = None) -> WeeklyEntry | None:
    return (
        s.query(WeeklyEntry)
        .filter(WeeklyEntry.user_id == user.id)
        .filter(WeeklyEntry.week_start == previous_week_start(today))
        .one_or_none()
    )


def past_entries(s: "Session", user: "User", today: date | None = None) -> list[WeeklyEntry]:
    """All entries before the current week, newest first."""
    return (
        s.query(WeeklyEntry)
        .filter(WeeklyEntry.user_id == user.id)
        .filter(WeeklyEntry.week_start < week_start(today))
        .order_by(WeeklyEntry.week_start.desc())
        .all()
    )


def get_own_entry(s: "Session", user: "User", entry_id: int) -> WeeklyEntry | None:
    entry = s.get(WeeklyEntry, entry_id)
    if entry is None or entry.user_id != user.id:
        return None
    return entry


def update_weekly_entry(
    s: "Session",
    entry: WeeklyEntry,
    user: "User",
    updates: dict,
    today: date | None = None,
) -> WeeklyEntry:
    if entry.user_id != user.id:
        raise MemberError("You can only edit your own reflections.")
    if not is_week_editable(entry.week_start, today):
        raise MemberError("Only this week and last week can be edited.")
    for key, raw in updates.items():
        if key not in WEEKLY_FIELDS:
            raise MemberError(f"Unknown weekly field: {key}")
        setattr(entry, key, (raw or "").strip() or None)
    entry.updated_at = datetime.utcnow()
    return entry


# ---------- Mini moves ----------

def add_mini_move(s: "Session", entry: WeeklyEntry, user: "User", title: str) -> MiniMove:
    title = (title or "").strip()
    if not title:
        raise MemberError("Mini move title cannot be empty.")
    if entry.user_id != user.id:
        raise MemberError("You can only add mini moves to your own week.")
    move = MiniMove(weekly_entry_id=entry.id, user_id=user.id, title=title, completed=False)
    s.add(move)
    s.flush()
    return move


def get_own_mini_move(s: "Session", user: "User", move_id: int) -> MiniMove | None:
    move = s.get(MiniMove, move_id)
    if move is None or move.user_id != user.id:
        return None
    return move


def toggle_mini_move(move: MiniMove) -> MiniMove:
    move.completed = not move.completed
    move.updated_at = datetime.utcnow()
    return move


def delete_mini_move(s: "Session", move: MiniMove) -> None:
    s.delete(move)


# ---------- Avatar ----------

def build_avatar_storage_key(user_id: int, content_type: str) -> str:
    """The extension comes from the checked content type, never from the uploaded filename."""
    stamp = datetime.utcnow().strftime("%Y%m%d%H%M%S")
    return f"avatars/{user_id}/{stamp}-avatar{AVATAR_EXTENSIONS[content_type]}"


def avatar_mimetype(storage_key: str) -> str | None:
    """Image content type for a stored avatar key, or None for anything else."""
    for content_type, ext in AVATAR_EXTENSIONS.items():
        if storage_key.lower().endswith(ext):
            return content_type
    return None


def upload_avatar(
    s: "Session",
    storage: "Storage",
    user: "User",
    file_bytes: bytes,
    filename: str,
    content_type: str | None,
) -> Profile:
    content_type = (content_type or "").strip().lower()
    if content_type not in AVATAR_CONTENT_TYPES:
        raise MemberError("Avatar must be a PNG, JPEG, GIF or WebP image.")
    if not file_bytes:
        raise MemberError("Avatar file is empty.")
    if len(file_bytes) > AVATAR_MAX_BYTES:
        raise MemberError("Avatar must be 5MB or smaller.")

    profile = get_profile(s, user)
    old_key = profile.avatar_key
    key = build_avatar_storage_key(user.id, content_type)
    storage.put_bytes(key, file_bytes, content_type=content_type)
    if old_key and old_key != key:
        storage.delete(old_key)
    profile.avatar_key = key
    profile.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="profile.avatar_upload",
        entity_type="Profile",
        entity_id=str(profile.id),
        metadata={"file_name": secure_filename(filename or ""), "content_type": content_type},
    )
    return profile
