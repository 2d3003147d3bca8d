from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.circle.audit import record_event
from app.circle.constants import DELETION_CANCELLED, DELETION_COMPLETED, DELETION_PENDING
from app.circle.models import User
from app.circle.modules.deletion_requests.models import DeletionRequest
from app.circle.modules.groups.models import GroupMember
from app.circle.modules.members.models import MiniMove, Profile, WeeklyEntry

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


class DeletionRequestError(ValueError):
    pass


def pending_request_for(s: "Session", user: User) -> DeletionRequest | None:
    return (
        s.query(DeletionRequest)
        .filter(DeletionRequest.user_id == user.id)
        .filter(DeletionRequest.status == DELETION_PENDING)
        .first()
    )


def request_deletion(s: "Session", user: User, reason: str | None = None) -> DeletionRequest:
    if pending_request_for(s, user) is not None:
        raise DeletionRequestError("You already have a pending deletion request.")
    row = DeletionRequest(
        user_id=user.id,
        user_email=user.email,
        user_name=user.display_name,
        reason=(reason or "").strip() or None,
        status=DELETION_PENDING,
    )
    s.add(row)
    s.flush()
    record_event(s, actor=user, action="deletion_request.create", entity_type="DeletionRequest", entity_id=str(row.id))
    return row


def list_requests(s: "Session") -> list[DeletionRequest]:
    return s.query(DeletionRequest).order_by(DeletionRequest.requested_at.desc(), DeletionRequest.id.desc()).all()


def pending_count(s: "Session") -> int:
    return s.query(DeletionRequest).filter(DeletionRequest.status == DELETION_PENDING).count()


def _require_pending(row: DeletionRequest) -> None:
    if row.status != DELETION_PENDING:
        raise DeletionRequestError(f"Request is already {row.status}.")


def complete_request(s: "Session", row: DeletionRequest, admin: User) -> None:
    """
    Remove the member's personal data (mini moves, weekly entries, group
    memberships, profile) and deactivate the login.
    """
    _require_pending(row)
    uid = row.user_id
    if uid is not None:
        s.query(MiniMove).filter(MiniMove.user_id == uid).delete(synchronize_session=False)
        s.query(WeeklyEntry).filter(WeeklyEntry.user_id == uid).delete(synchronize_session=False)
        s.query(GroupMember).filter(GroupMember.user_id == uid).delete(synchronize_session=False)
        s.query(Profile).filter(Profile.user_id == uid).delete(synchronize_session=False)
        user = s.get(User, uid)
        if user is not None:
            user.is_active = False
            s.expire(user, ["profile"])

    row.status = DELETION_COMPLETED
    row.processed_at = datetime.utcnow()
    row.processed_by_user_id = admin.id
    record_event(
        s,
        actor=admin,
        action="process_deletion",
        entity_type="DeletionRequest",
        entity_id=str(row.id),
        old_value={"status": DELETION_PENDING},
        new_value={"status": DELETION_COMPLETED},
        metadata={"deleted_user_id": uid, "deleted_user_email": row.user_email, "deleted_user_name": row.user_name},
    )


def cancel_request(s: "Session", row: DeletionRequest, admin: User) -> None:
    _require_pending(row)
    row.status = DELETION_CANCELLED
    row.processed_at = datetime.utcnow()
    row.processed_by_user_id = admin.id
    record_event(
        s,
        actor=admin,
        action="cancel_deletion",
        entity_type="DeletionRequest",
        entity_id=str(row.id),
        old_value={"status": DELETION_PENDING},
        new_value={"status": DELETION_CANCELLED},
    )
