from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from werkzeug.utils import secure_filename

from app.circle.audit import record_event
from app.circle.constants import RESOURCE_MAX_BYTES
from app.circle.modules.resources.models import Resource
from app.circle.utils import file_digest

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.circle.models import User
    from app.circle.storage import Storage


def validate_resource_payload(payload: dict, file_bytes: bytes | None) -> list[str]:
    errors: list[str] = []
    if not (payload.get("title") or "").strip():
        errors.append("Title is required.")
    if not file_bytes:
        errors.append("Please choose a file to upload.")
    elif len(file_bytes) > RESOURCE_MAX_BYTES:
        errors.append("File must be 20MB or smaller.")
    return errors


def build_resource_storage_key(filename: str) -> str:
    safe = secure_filename(filename) or "resource"
    stamp = datetime.utcnow().strftime("%Y%m%d%H%M%S%f")
    return f"resources/{stamp}-{safe}"


def list_resources(s: "Session") -> list[Resource]:
    return s.query(Resource).order_by(Resource.created_at.desc(), Resource.id.desc()).all()


def upload_resource(
    s: "Session",
    storage: "Storage",
    payload: dict,
    file_bytes: bytes,
    filename: str,
    content_type: str | None,
    user: "User",
) -> Resource:
    sha256, size = file_digest(file_bytes)
    key = build_resource_storage_key(filename)
    storage.put_bytes(key, file_bytes, content_type=content_type)
    resource = Resource(
        title=(payload.get("title") or "").strip(),
        description=(payload.get("description") or "").strip() or None,
        file_name=secure_filename(filename) or "resource",
        storage_key=key,
        content_type=content_type,
        file_size=size,
        sha256=sha256,
        uploaded_by_user_id=user.id,
    )
    s.add(resource)
    s.flush()
    record_event(
        s,
        actor=user,
        action="resource.upload",
        entity_type="Resource",
        entity_id=str(resource.id),
        metadata={"file_name": resource.file_name, "sha256": sha256, "size": size},
    )
    return resource


def delete_resource(s: "Session", storage: "Storage", resource: Resource, user: "User") -> None:
    storage.delete(resource.storage_key)
    record_event(
        s,
        actor=user,
        action="resource.delete",
        entity_type="Resource",
        entity_id=str(resource.id),
        old_value={"title": resource.title, "file_name": resource.file_name},
    )
    s.delete(resource)
