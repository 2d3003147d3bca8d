from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.circle.audit import record_event
from app.circle.modules.groups.models import Group, GroupMember
from app.circle.modules.members.models import MiniMove, Profile, WeeklyEntry
from app.circle.modules.members.service import previous_week_start
from app.circle.utils import week_start

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.circle.models import User


class GroupError(ValueError):
    pass


@dataclass
class MemberOverview:
    """One member's row in the group view."""

    user_id: int
    name: str
    profile: Profile | None
    current_week: WeeklyEntry | None = None
    previous_week: WeeklyEntry | None = None
    current_moves: list[MiniMove] = field(default_factory=list)
    previous_moves: list[MiniMove] = field(default_factory=list)

    @property
    def completed_count(self) -> int:
        return sum(1 for m in self.current_moves if m.completed)


def user_group_ids(s: "Session", user_id: int) -> list[int]:
    return list(s.scalars(select(GroupMember.group_id).where(GroupMember.user_id == user_id)))


def user_groups(s: "Session", user_id: int) -> list[Group]:
    ids = user_group_ids(s, user_id)
    if not ids:
        return []
    return s.query(Group).filter(Group.id.in_(ids)).order_by(Group.name.asc()).all()


def is_group_member(s: "Session", group_id: int, user_id: int) -> bool:
    return (
        s.query(GroupMember.id)
        .filter(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
        .first()
        is not None
    )


def is_in_same_group(s: "Session", user_id: int, other_user_id: int) -> bool:
    mine = set(user_group_ids(s, user_id))
    if not mine:
        return False
    return bool(mine.intersection(user_group_ids(s, other_user_id)))


def group_overview(s: "Session", user: "User", today: date | None = None) -> list[MemberOverview]:
    """
    Every member across the caller's groups (caller included), with their
    current and previous week reflections and mini moves.
    """
    group_ids = user_group_ids(s, user.id)
    if not group_ids:
        return []
    member_ids = sorted(
        set(s.scalars(select(GroupMember.user_id).where(GroupMember.group_id.in_(group_ids))))
    )
    if not member_ids:
        return []

    profiles = {p.user_id: p for p in s.query(Profile).filter(Profile.user_id.in_(member_ids)).all()}
    current_ws = week_start(today)
    previous_ws = previous_week_start(today)
    entries = (
        s.query(WeeklyEntry)
        .filter(WeeklyEntry.user_id.in_(member_ids))
        .filter(WeeklyEntry.week_start.in_([current_ws, previous_ws]))
        .all()
    )
    by_key = {(e.user_id, e.week_start): e for e in entries}

    rows: list[MemberOverview] = []
    for uid in member_ids:
        profile = profiles.get(uid)
        current = by_key.get((uid, current_ws))
        previous = by_key.get((uid, previous_ws))
        rows.append(
            MemberOverview(
                user_id=uid,
                name=(profile.name if profile and profile.name else "Unknown"),
                profile=profile,
                current_week=current,
                previous_week=previous,
                current_moves=list(current.mini_moves) if current else [],
                previous_moves=list(previous.mini_moves) if previous else [],
            )
        )
    rows.sort(key=lambda r: (r.user_id != user.id, r.name.lower()))
    return rows


# ---------- Admin ----------

def list_groups(s: "Session") -> list[Group]:
    return s.query(Group).order_by(Group.created_at.desc(), Group.id.desc()).all()


def create_group(s: "Session", name: str, user: "User") -> Group:
    name = (name or "").strip()
    if not name:
        raise GroupError("Group name is required.")
    group = Group(name=name)
    s.add(group)
    s.flush()
    record_event(s, actor=user, action="group.create", entity_type="Group", entity_id=str(group.id), metadata={"name": name})
    return group


def delete_group(s: "Session", group: Group, user: "User") -> None:
    member_ids = [m.user_id for m in group.members]
    # members first, then the group
    for membership in list(group.members):
        s.delete(membership)
    s.flush()
    record_event(
        s,
        actor=user,
        action="group.delete",
        entity_type="Group",
        entity_id=str(group.id),
        old_value={"name": group.name, "member_user_ids": member_ids},
    )
    s.delete(group)


def add_member(s: "Session", group: Group, member_user: "User", actor: "User") -> GroupMember:
    if is_group_member(s, group.id, member_user.id):
        raise GroupError("That member is already in this group.")
    membership = GroupMember(group_id=group.id, user_id=member_user.id)
    s.add(membership)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="group.member_add",
        entity_type="GroupMember",
        entity_id=str(membership.id),
        metadata={"group_id": group.id, "user_id": member_user.id},
    )
    return membership


def remove_member(s: "Session", membership: GroupMember, actor: "User") -> None:
    record_event(
        s,
        actor=actor,
        action="group.member_remove",
        entity_type="GroupMember",
        entity_id=str(membership.id),
        metadata={"group_id": membership.group_id, "user_id": membership.user_id},
    )
    s.delete(membership)
