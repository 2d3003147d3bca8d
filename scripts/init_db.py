import os
import sys
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy.orm import Session, sessionmaker
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.circle.db import build_engine
from app.circle.models import Permission, Role, User
from app.circle.modules.members.models import Profile
from app.circle.modules.notifications.defaults import DEFAULT_TEMPLATES
from app.circle.modules.notifications.models import EmailTemplate

PERMISSIONS = (
    ("admin.view", "Admin: view back office"),
    ("applications.review", "Applications: review and change status"),
    ("groups.manage", "Groups: create, delete and manage members"),
    ("email_templates.edit", "Email templates: edit and send tests"),
    ("deletion_requests.process", "Deletion requests: complete or cancel"),
    ("resources.manage", "Resources: upload and delete"),
    ("audit.view", "Audit log: view"),
)


@contextmanager
def _session_scope(database_url: str):
    engine = build_engine(database_url)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def seed_session(s: Session, admin_email: str, admin_password: str) -> User:
    """
    Permissions, the admin role, the admin user and the default status email
    templates. Idempotent; never overwrites an existing password or template.
    """
    def ensure_perm(key: str, name: str) -> Permission:
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        return p

    perms = [ensure_perm(key, name) for key, name in PERMISSIONS]

    role_admin = s.query(Role).filter(Role.key == "admin").one_or_none()
    if not role_admin:
        role_admin = Role(key="admin", name="Administrator")
        s.add(role_admin)
    for p in perms:
        if p not in role_admin.permissions:
            role_admin.permissions.append(p)

    user = s.query(User).filter(User.email == admin_email).one_or_none()
    if not user:
        user = User(email=admin_email, password_hash=generate_password_hash(admin_password), is_active=True)
        s.add(user)
        s.flush()
        s.add(Profile(user_id=user.id, name="Facilitator", notification_preference="instant"))
    if role_admin not in user.roles:
        user.roles.append(role_admin)

    for key, default in DEFAULT_TEMPLATES.items():
        if s.query(EmailTemplate).filter(EmailTemplate.template_key == key).one_or_none() is None:
            s.add(
                EmailTemplate(
                    template_key=key,
                    subject=default["subject"],
                    html_content=default["html_content"],
                    description=default["description"],
                )
            )
    return user


def seed_only(*, database_url: str | None = None) -> None:
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@accountabilitycircle.co.uk").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///circle.db").strip()

    # Direct engine/session so this can run in release without importing app.wsgi.
    with _session_scope(db_url) as s:
        seed_session(s, admin_email, admin_password)

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
