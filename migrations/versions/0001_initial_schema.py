"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=False), nullable=nullable)


def upgrade() -> None:
    bind = op.get_bind()
    existing_tables = set(inspect(bind).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _ts("created_at"),
        )

    if "roles" not in existing_tables:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("key", sa.String(64), nullable=False, unique=True),
            sa.Column("name", sa.String(128), nullable=False),
            _ts("created_at"),
        )

    if "permissions" not in existing_tables:
        op.create_table(
            "permissions",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("key", sa.String(128), nullable=False, unique=True),
            sa.Column("name", sa.String(128), nullable=False),
            _ts("created_at"),
        )

    if "user_roles" not in existing_tables:
        op.create_table(
            "user_roles",
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        )

    if "role_permissions" not in existing_tables:
        op.create_table(
            "role_permissions",
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("permission_id", sa.Integer(), sa.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
        )

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            _ts("created_at"),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_user_email", sa.String(320), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("old_value_json", sa.Text(), nullable=True),
            sa.Column("new_value_json", sa.Text(), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
        )
        op.create_index("idx_audit_events_created_at", "audit_events", ["created_at"])
        op.create_index("idx_audit_events_entity", "audit_events", ["entity_type", "entity_id"])

    if "applications" not in existing_tables:
        op.create_table(
            "applications",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("first_name", sa.String(128), nullable=False),
            sa.Column("last_name", sa.String(128), nullable=False),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("location", sa.String(128), nullable=False),
            sa.Column("availability", sa.String(64), nullable=False),
            sa.Column("commitment_level", sa.Integer(), nullable=False),
            sa.Column("commitment_explanation", sa.Text(), nullable=False),
            sa.Column("growth_goal", sa.Text(), nullable=False),
            sa.Column("digital_product", sa.Text(), nullable=False),
            sa.Column("excitement", sa.Text(), nullable=False),
            sa.Column("agreed_to_guidelines", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("gdpr_consent", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
            _ts("created_at"),
            _ts("updated_at"),
        )
        op.create_index("idx_applications_email", "applications", ["email"])
        op.create_index("idx_applications_status", "applications", ["status"])
        op.create_index("idx_applications_created_at", "applications", ["created_at"])

    if "application_notes" not in existing_tables:
        op.create_table(
            "application_notes",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("application_id", sa.Integer(), sa.ForeignKey("applications.id", ondelete="CASCADE"), nullable=False),
            sa.Column("admin_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("content", sa.Text(), nullable=False),
            _ts("created_at"),
        )
        op.create_index("ix_application_notes_application_id", "application_notes", ["application_id"])

    if "profiles" not in existing_tables:
        op.create_table(
            "profiles",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
            sa.Column("name", sa.String(255), nullable=False, server_default=""),
            sa.Column("avatar_key", sa.String(512), nullable=True),
            sa.Column("growth_goal", sa.Text(), nullable=True),
            sa.Column("monthly_milestones", sa.Text(), nullable=True),
            sa.Column("notification_preference", sa.String(16), nullable=False, server_default="instant"),
            _ts("created_at"),
            _ts("updated_at"),
        )

    if "weekly_entries" not in existing_tables:
        op.create_table(
            "weekly_entries",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("week_start", sa.Date(), nullable=False),
            sa.Column("obstacles", sa.Text(), nullable=True),
            sa.Column("wins", sa.Text(), nullable=True),
            sa.Column("self_care", sa.Text(), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
            sa.UniqueConstraint("user_id", "week_start", name="uq_weekly_entries_user_week"),
        )
        op.create_index("ix_weekly_entries_user_id", "weekly_entries", ["user_id"])

    if "mini_moves" not in existing_tables:
        op.create_table(
            "mini_moves",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("weekly_entry_id", sa.Integer(), sa.ForeignKey("weekly_entries.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("title", sa.String(512), nullable=False),
            sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            _ts("created_at"),
            _ts("updated_at"),
        )
        op.create_index("ix_mini_moves_weekly_entry_id", "mini_moves", ["weekly_entry_id"])
        op.create_index("ix_mini_moves_user_id", "mini_moves", ["user_id"])

    if "groups" not in existing_tables:
        op.create_table(
            "groups",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            _ts("created_at"),
        )

    if "group_members" not in existing_tables:
        op.create_table(
            "group_members",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            _ts("created_at"),
            sa.UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
        )
        op.create_index("ix_group_members_group_id", "group_members", ["group_id"])
        op.create_index("ix_group_members_user_id", "group_members", ["user_id"])

    if "group_questions" not in existing_tables:
        op.create_table(
            "group_questions",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            _ts("created_at"),
            _ts("updated_at"),
        )
        op.create_index("ix_group_questions_group_id", "group_questions", ["group_id"])

    if "group_answers" not in existing_tables:
        op.create_table(
            "group_answers",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("question_id", sa.Integer(), sa.ForeignKey("group_questions.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            _ts("created_at"),
            _ts("updated_at"),
        )
        op.create_index("ix_group_answers_question_id", "group_answers", ["question_id"])

    if "group_reactions" not in existing_tables:
        op.create_table(
            "group_reactions",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("question_id", sa.Integer(), sa.ForeignKey("group_questions.id", ondelete="CASCADE"), nullable=True),
            sa.Column("answer_id", sa.Integer(), sa.ForeignKey("group_answers.id", ondelete="CASCADE"), nullable=True),
            sa.Column("reaction_type", sa.String(32), nullable=False, server_default="heart"),
            _ts("created_at"),
            sa.CheckConstraint("(question_id IS NULL) <> (answer_id IS NULL)", name="ck_group_reactions_single_target"),
        )
        op.create_index("ix_group_reactions_user_id", "group_reactions", ["user_id"])
        op.create_index("ix_group_reactions_question_id", "group_reactions", ["question_id"])
        op.create_index("ix_group_reactions_answer_id", "group_reactions", ["answer_id"])

    if "digest_queue" not in existing_tables:
        op.create_table(
            "digest_queue",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
            sa.Column("question_id", sa.Integer(), sa.ForeignKey("group_questions.id", ondelete="CASCADE"), nullable=False, unique=True),
            sa.Column("author_name", sa.String(255), nullable=False),
            sa.Column("question_content", sa.Text(), nullable=False),
            _ts("created_at"),
        )
        op.create_index("ix_digest_queue_group_id", "digest_queue", ["group_id"])

    if "email_templates" not in existing_tables:
        op.create_table(
            "email_templates",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("template_key", sa.String(64), nullable=False, unique=True),
            sa.Column("subject", sa.String(512), nullable=False),
            sa.Column("html_content", sa.Text(), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
            sa.Column("updated_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )

    if "email_history" not in existing_tables:
        op.create_table(
            "email_history",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("application_id", sa.Integer(), sa.ForeignKey("applications.id", ondelete="SET NULL"), nullable=True),
            sa.Column("recipient_email", sa.String(320), nullable=False),
            sa.Column("recipient_name", sa.String(255), nullable=False),
            sa.Column("template_key", sa.String(64), nullable=False),
            sa.Column("subject", sa.String(512), nullable=False),
            sa.Column("status", sa.String(16), nullable=False, server_default="sent"),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("sent_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            _ts("sent_at"),
            _ts("opened_at", nullable=True),
            sa.Column("open_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("click_count", sa.Integer(), nullable=False, server_default="0"),
        )
        op.create_index("idx_email_history_sent_at", "email_history", ["sent_at"])
        op.create_index("ix_email_history_application_id", "email_history", ["application_id"])

    if "email_clicks" not in existing_tables:
        op.create_table(
            "email_clicks",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email_history_id", sa.Integer(), sa.ForeignKey("email_history.id", ondelete="CASCADE"), nullable=False),
            sa.Column("url", sa.Text(), nullable=False),
            _ts("clicked_at"),
        )
        op.create_index("ix_email_clicks_email_history_id", "email_clicks", ["email_history_id"])

    if "deletion_requests" not in existing_tables:
        op.create_table(
            "deletion_requests",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("user_email", sa.String(320), nullable=False),
            sa.Column("user_name", sa.String(255), nullable=False),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
            _ts("requested_at"),
            _ts("processed_at", nullable=True),
            sa.Column("processed_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )
        op.create_index("idx_deletion_requests_status", "deletion_requests", ["status"])
        op.create_index("ix_deletion_requests_user_id", "deletion_requests", ["user_id"])

    if "resources" not in existing_tables:
        op.create_table(
            "resources",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("file_name", sa.String(255), nullable=False),
            sa.Column("storage_key", sa.String(512), nullable=False, unique=True),
            sa.Column("content_type", sa.String(128), nullable=True),
            sa.Column("file_size", sa.Integer(), nullable=True),
            sa.Column("sha256", sa.String(64), nullable=True),
            sa.Column("uploaded_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
        )


def downgrade() -> None:
    for table in (
        "resources",
        "deletion_requests",
        "email_clicks",
        "email_history",
        "email_templates",
        "digest_queue",
        "group_reactions",
        "group_answers",
        "group_questions",
        "group_members",
        "groups",
        "mini_moves",
        "weekly_entries",
        "profiles",
        "application_notes",
        "applications",
        "audit_events",
        "role_permissions",
        "user_roles",
        "permissions",
        "roles",
        "users",
    ):
        op.drop_table(table)
