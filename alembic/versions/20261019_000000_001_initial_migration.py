"""Initial migration - create all tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all database tables."""
    # Create profiles table
    op.create_table(
        "profiles",
        sa.Column("userid", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("login_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("realname", sa.String(255), nullable=False, server_default=""),
        sa.Column("nickname", sa.String(255), nullable=False, server_default=""),
        sa.Column("extern_id", sa.String(64), nullable=True),
        sa.Column("cryptpassword", sa.String(255), nullable=True),
        sa.Column("password_change_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("password_change_reason", sa.String(64), nullable=False, server_default=""),
        sa.Column("mfa", sa.String(8), nullable=False, server_default=""),
        sa.Column("mfa_required_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disabledtext", sa.Text(), nullable=False, server_default=""),
        sa.Column("disable_mail", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("mybugslink", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("bounce_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("creation_ts", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_seen_date", sa.Date(), nullable=True),
        sa.PrimaryKeyConstraint("userid"),
        sa.UniqueConstraint("extern_id"),
    )
    op.create_index("ix_profiles_login_name", "profiles", ["login_name"], unique=True)
    op.create_index("ix_profiles_email", "profiles", ["email"])
    op.create_index("ix_profiles_nickname", "profiles", ["nickname"])

    # Create groups table
    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("isbuggroup", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("userregexp", sa.String(255), nullable=False, server_default=""),
        sa.Column("isactive", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("icon_url", sa.String(255), nullable=True),
        sa.Column("owner_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["owner_user_id"], ["profiles.userid"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_groups_name", "groups", ["name"], unique=True)

    # Create user_group_map table
    op.create_table(
        "user_group_map",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("isbless", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("grant_type", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.userid"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id", "group_id", "isbless", "grant_type",
            name="user_group_map_user_id_idx",
        ),
    )
    op.create_index("ix_user_group_map_user_id", "user_group_map", ["user_id"])
    op.create_index("ix_user_group_map_group_id", "user_group_map", ["group_id"])

    # Create group_group_map table
    op.create_table(
        "group_group_map",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("grantor_id", sa.Integer(), nullable=False),
        sa.Column("grant_type", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["member_id"], ["groups.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["grantor_id"], ["groups.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "member_id", "grantor_id", "grant_type",
            name="group_group_map_member_id_idx",
        ),
    )
    op.create_index("ix_group_group_map_member_id", "group_group_map", ["member_id"])
    op.create_index("ix_group_group_map_grantor_id", "group_group_map", ["grantor_id"])

    # Create products table
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("isactive", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_products_name", "products", ["name"], unique=True)

    # Create group_control_map table
    op.create_table(
        "group_control_map",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("entry", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("membercontrol", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("othercontrol", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("canedit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("editcomponents", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("editbugs", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("canconfirm", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "group_id", name="group_control_map_product_id_idx"),
    )
    op.create_index("ix_group_control_map_group_id", "group_control_map", ["group_id"])
    op.create_index("ix_group_control_map_product_id", "group_control_map", ["product_id"])

    # Create profiles_activity table
    op.create_table(
        "profiles_activity",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("userid", sa.Integer(), nullable=False),
        sa.Column("who", sa.Integer(), nullable=False),
        sa.Column("profiles_when", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("fieldname", sa.String(64), nullable=False),
        sa.Column("oldvalue", sa.Text(), nullable=True),
        sa.Column("newvalue", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["userid"], ["profiles.userid"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["who"], ["profiles.userid"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_profiles_activity_userid", "profiles_activity", ["userid"])
    op.create_index("ix_profiles_activity_who", "profiles_activity", ["who"])

    # Create audit_log table
    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("class", sa.String(255), nullable=False),
        sa.Column("object_id", sa.Integer(), nullable=False),
        sa.Column("field", sa.String(64), nullable=False),
        sa.Column("removed", sa.Text(), nullable=True),
        sa.Column("added", sa.Text(), nullable=True),
        sa.Column("at_time", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.userid"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_log_user_id", "audit_log", ["user_id"])
    op.create_index("ix_audit_log_object_id", "audit_log", ["object_id"])

    # Create login_failure table
    op.create_table(
        "login_failure",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("ip_addr", sa.String(40), nullable=False),
        sa.Column("login_time", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.userid"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_login_failure_user_id", "login_failure", ["user_id"])
    op.create_index("ix_login_failure_login_time", "login_failure", ["login_time"])

    # Create email_setting table
    op.create_table(
        "email_setting",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("relationship", sa.Integer(), nullable=False),
        sa.Column("event", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.userid"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "relationship", "event", name="email_setting_user_id_idx"),
    )
    op.create_index("ix_email_setting_user_id", "email_setting", ["user_id"])

    # Create tokens table
    op.create_table(
        "tokens",
        sa.Column("token", sa.String(16), nullable=False),
        sa.Column("userid", sa.Integer(), nullable=True),
        sa.Column("issuedate", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("tokentype", sa.String(16), nullable=False),
        sa.Column("eventdata", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["userid"], ["profiles.userid"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("token"),
    )
    op.create_index("ix_tokens_userid", "tokens", ["userid"])

    # Create setting tables
    op.create_table(
        "setting",
        sa.Column("name", sa.String(32), nullable=False),
        sa.Column("default_value", sa.String(32), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("subclass", sa.String(32), nullable=True),
        sa.PrimaryKeyConstraint("name"),
    )
    op.create_table(
        "setting_value",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(32), nullable=False),
        sa.Column("value", sa.String(32), nullable=False),
        sa.Column("sortindex", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["name"], ["setting.name"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", "value", name="setting_value_nv_unique_idx"),
    )
    op.create_table(
        "profile_setting",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("setting_name", sa.String(32), nullable=False),
        sa.Column("setting_value", sa.String(32), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.userid"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["setting_name"], ["setting.name"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "setting_name", name="profile_setting_value_unique_idx"),
    )
    op.create_index("ix_profile_setting_user_id", "profile_setting", ["user_id"])


def downgrade() -> None:
    """Drop all database tables."""
    # Drop tables in reverse order (respect foreign keys)
    op.drop_index("ix_profile_setting_user_id", "profile_setting")
    op.drop_table("profile_setting")
    op.drop_table("setting_value")
    op.drop_table("setting")

    op.drop_index("ix_tokens_userid", "tokens")
    op.drop_table("tokens")

    op.drop_index("ix_email_setting_user_id", "email_setting")
    op.drop_table("email_setting")

    op.drop_index("ix_login_failure_login_time", "login_failure")
    op.drop_index("ix_login_failure_user_id", "login_failure")
    op.drop_table("login_failure")

    op.drop_index("ix_audit_log_object_id", "audit_log")
    op.drop_index("ix_audit_log_user_id", "audit_log")
    op.drop_table("audit_log")

    op.drop_index("ix_profiles_activity_who", "profiles_activity")
    op.drop_index("ix_profiles_activity_userid", "profiles_activity")
    op.drop_table("profiles_activity")

    op.drop_index("ix_group_control_map_product_id", "group_control_map")
    op.drop_index("ix_group_control_map_group_id", "group_control_map")
    op.drop_table("group_control_map")

    op.drop_index("ix_products_name", "products")
    op.drop_table("products")

    op.drop_index("ix_group_group_map_grantor_id", "group_group_map")
    op.drop_index("ix_group_group_map_member_id", "group_group_map")
    op.drop_table("group_group_map")

    op.drop_index("ix_user_group_map_group_id", "user_group_map")
    op.drop_index("ix_user_group_map_user_id", "user_group_map")
    op.drop_table("user_group_map")

    op.drop_index("ix_groups_name", "groups")
    op.drop_table("groups")

    op.drop_index("ix_profiles_nickname", "profiles")
    op.drop_index("ix_profiles_email", "profiles")
    op.drop_index("ix_profiles_login_name", "profiles")
    op.drop_table("profiles")
