"""Initial schema for apps, groups, users, memberships and permissions."""

from __future__ import annotations
from typing import Union, Sequence

from alembic import op
import sqlalchemy as sa
from authcore.models.types import IdList, JSONType, StringList

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column("deleted_by", sa.Integer(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Initial schema for apps, groups, users, memberships and permissions."""
    user_type_ref = sa.Enum("USER", "ADMIN", "SUPER_ADMIN", name="user_type", native_enum=False)
    user_group_role_ref = sa.Enum("USER", "ADMIN", name="user_group_role", native_enum=False)
    permission_role_ref = sa.Enum("USER", "ADMIN", name="permission_role", native_enum=False)

    op.create_table(
        "apps",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=120), nullable=False),
        sa.Column("api_key", sa.String(length=1024), nullable=True),
        sa.Column("url", sa.String(length=1024), nullable=True),
        sa.Column("settings", JSONType(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_apps")),
        sa.UniqueConstraint("type", name="uq_apps_type"),
    )
    op.create_index("ix_apps_type", "apps", ["type"], unique=False)

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("parent_id", sa.Integer(), nullable=True),
        sa.Column("apps_ids", IdList(), nullable=False),
        sa.Column("company_code", sa.String(length=64), nullable=True),
        sa.Column("company_email", sa.String(length=255), nullable=True),
        sa.Column("company_phone", sa.String(length=64), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["parent_id"], ["groups.id"], name=op.f("fk_groups_parent_id_groups"), ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_groups")),
    )
    op.create_index("ix_groups_parent", "groups", ["parent_id"], unique=False)
    op.create_index(
        "uq_groups_company_code",
        "groups",
        ["company_code"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
        sqlite_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("first_name", sa.String(length=255), nullable=True),
        sa.Column("last_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("type", user_type_ref, nullable=False),
        sa.Column("apps_ids", IdList(), nullable=False),
        sa.Column("last_logged_in_at", sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_users")),
    )
    op.create_index("ix_users_type", "users", ["type"], unique=False)
    op.create_index("ix_users_email", "users", ["email"], unique=False)

    op.create_table(
        "user_groups",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("role", user_group_role_ref, nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name=op.f("fk_user_groups_user_id_users"), ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"], name=op.f("fk_user_groups_group_id_groups"), ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_user_groups")),
    )
    op.create_index("ix_user_groups_user", "user_groups", ["user_id"], unique=False)
    op.create_index("ix_user_groups_group", "user_groups", ["group_id"], unique=False)

    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("group_id", sa.Integer(), nullable=True),
        sa.Column("app_id", sa.Integer(), nullable=True),
        sa.Column("role", permission_role_ref, nullable=True),
        sa.Column("accesses", StringList(), nullable=False),
        sa.Column("features", StringList(), nullable=False),
        sa.Column("municipalities", IdList(), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name=op.f("fk_permissions_user_id_users"), ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"], name=op.f("fk_permissions_group_id_groups"), ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["app_id"], ["apps.id"], name=op.f("fk_permissions_app_id_apps"), ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_permissions")),
    )
    op.create_index("ix_permissions_user", "permissions", ["user_id"], unique=False)
    op.create_index("ix_permissions_group", "permissions", ["group_id"], unique=False)
    op.create_index("ix_permissions_app", "permissions", ["app_id"], unique=False)

    op.create_table(
        "platform_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("event_id", sa.String(length=64), nullable=False),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("source", sa.String(length=128), nullable=False),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("payload", JSONType(), nullable=False),
        sa.Column("context", JSONType(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_platform_events")),
        sa.UniqueConstraint("event_id", name=op.f("uq_platform_events_event_id")),
    )
    op.create_index("ix_platform_events_event_type", "platform_events", ["event_type"], unique=False)
    op.create_index("ix_platform_events_occurred_at", "platform_events", ["occurred_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_platform_events_occurred_at", table_name="platform_events")
    op.drop_index("ix_platform_events_event_type", table_name="platform_events")
    op.drop_table("platform_events")
    op.drop_index("ix_permissions_app", table_name="permissions")
    op.drop_index("ix_permissions_group", table_name="permissions")
    op.drop_index("ix_permissions_user", table_name="permissions")
    op.drop_table("permissions")
    op.drop_index("ix_user_groups_group", table_name="user_groups")
    op.drop_index("ix_user_groups_user", table_name="user_groups")
    op.drop_table("user_groups")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_type", table_name="users")
    op.drop_table("users")
    op.drop_index("uq_groups_company_code", table_name="groups")
    op.drop_index("ix_groups_parent", table_name="groups")
    op.drop_table("groups")
    op.drop_index("ix_apps_type", table_name="apps")
    op.drop_table("apps")
