"""Risk engine tables

Revision ID: 0001_risk_engine_tables
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

from loginguard.db.base import UUID


# revision identifiers, used by Alembic.
revision = "0001_risk_engine_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "login_attempts",
        sa.Column("id", UUID(), primary_key=True, nullable=False),
        sa.Column("user_id", UUID(), nullable=True, index=True),
        sa.Column("device_fingerprint", sa.String(64), nullable=False, index=True),
        sa.Column("client_fingerprint", sa.String(64), nullable=True),
        sa.Column(
            "client_fingerprint_fallback",
            sa.Boolean,
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column(
            "attempted_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("success", sa.Boolean, nullable=False),
        sa.Column("failure_reason", sa.String(50), nullable=True),
        sa.Column("country", sa.String(10), nullable=True),
        sa.Column("region", sa.String(100), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column("timezone", sa.String(64), nullable=True),
        sa.Column("isp", sa.String(255), nullable=True),
        sa.Column("is_vpn", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("location_confidence", sa.Float, nullable=False, server_default="0"),
        sa.Column("user_agent", sa.Text, nullable=True),
        sa.Column(
            "login_method", sa.String(50), nullable=False, server_default="password"
        ),
        sa.Column("risk_score", sa.Float, nullable=False, server_default="0"),
        sa.Column("risk_level", sa.String(16), nullable=False, server_default="minimal"),
        sa.Column("security_flags", sa.JSON, nullable=True),
    )
    op.create_index("ix_login_attempts_attempted_at", "login_attempts", ["attempted_at"])
    op.create_index("ix_login_attempts_ip_address", "login_attempts", ["ip_address"])
    op.create_index("ix_login_attempts_success", "login_attempts", ["success"])
    op.create_index("ix_login_attempts_risk_score", "login_attempts", ["risk_score"])
    op.create_index(
        "ix_login_attempts_user_attempted", "login_attempts", ["user_id", "attempted_at"]
    )

    op.create_table(
        "user_devices",
        sa.Column("id", UUID(), primary_key=True, nullable=False),
        sa.Column("user_id", UUID(), nullable=False, index=True),
        sa.Column("device_fingerprint", sa.String(64), nullable=False, index=True),
        sa.Column("client_fingerprint", sa.String(64), nullable=True),
        sa.Column("is_trusted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("trust_changed_by", sa.String(255), nullable=True),
        sa.Column("trust_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("login_count", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "first_seen_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "last_seen_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("risk_score", sa.Float, nullable=False, server_default="0"),
        sa.Column("risk_level", sa.String(16), nullable=False, server_default="minimal"),
        sa.Column("security_flags", sa.JSON, nullable=True),
        sa.Column("device_type", sa.String(50), nullable=True),
        sa.Column("browser_name", sa.String(100), nullable=True),
        sa.Column("os_name", sa.String(100), nullable=True),
        sa.Column("last_ip", sa.String(45), nullable=True),
        sa.Column("country", sa.String(10), nullable=True),
        sa.Column("region", sa.String(100), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("location_confidence", sa.Float, nullable=True),
        sa.UniqueConstraint(
            "user_id", "device_fingerprint", name="uq_user_devices_user_fingerprint"
        ),
    )
    op.create_index("ix_user_devices_last_login_at", "user_devices", ["last_login_at"])
    op.create_index("ix_user_devices_risk_level", "user_devices", ["risk_level"])

    op.create_table(
        "risk_thresholds",
        sa.Column("id", sa.Integer, primary_key=True, nullable=False),
        sa.Column("low", sa.Float, nullable=False),
        sa.Column("medium", sa.Float, nullable=False),
        sa.Column("high", sa.Float, nullable=False),
        sa.Column("block", sa.Float, nullable=False),
        sa.Column("updated_by", sa.String(255), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "0 <= low AND low <= medium AND medium <= high "
            "AND high <= block AND block <= 1",
            name="ck_risk_thresholds_ordering",
        ),
    )


def downgrade():
    op.drop_table("risk_thresholds")
    op.drop_index("ix_user_devices_risk_level", table_name="user_devices")
    op.drop_index("ix_user_devices_last_login_at", table_name="user_devices")
    op.drop_table("user_devices")
    op.drop_index("ix_login_attempts_user_attempted", table_name="login_attempts")
    op.drop_index("ix_login_attempts_risk_score", table_name="login_attempts")
    op.drop_index("ix_login_attempts_success", table_name="login_attempts")
    op.drop_index("ix_login_attempts_ip_address", table_name="login_attempts")
    op.drop_index("ix_login_attempts_attempted_at", table_name="login_attempts")
    op.drop_table("login_attempts")
