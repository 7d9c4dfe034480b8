"""Users and physician profiles.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-19
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255)),
        sa.Column("full_name", sa.String(255), nullable=False, server_default=""),
        sa.Column(
            "role",
            sa.Enum("PHYSICIAN", "FACILITY", "ADMIN", name="userrole"),
            nullable=False,
            server_default="PHYSICIAN",
        ),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("user_metadata", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "physician_profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        # Personal identifiers
        sa.Column("first_name", sa.String(100)),
        sa.Column("middle_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("dba", sa.String(255)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone_number", sa.Text()),
        sa.Column("alternate_phone", sa.Text()),
        sa.Column("address_line1", sa.String(255)),
        sa.Column("address_line2", sa.String(255)),
        sa.Column("city", sa.String(100)),
        sa.Column("state", sa.Text()),
        sa.Column("zip_code", sa.Text()),
        # Professional information
        sa.Column("npi_number", sa.String(10)),
        sa.Column("dea_number", sa.String(20)),
        sa.Column("specialty", sa.String(100)),
        sa.Column("subspecialty", sa.String(100)),
        sa.Column("years_experience", sa.Text()),
        sa.Column("board_certified", sa.Boolean()),
        sa.Column("board_certification_details", sa.Text()),
        # Multi-instance / free-form sections
        sa.Column("licenses", sa.JSON()),
        sa.Column("documents", sa.JSON()),
        sa.Column("questionnaires", sa.JSON()),
        sa.Column("travel_preferences", sa.JSON()),
        # Digital attestation
        sa.Column("digital_signature", sa.String(255)),
        sa.Column("attestation_date", sa.String(100)),
        sa.Column("signature_timestamp", sa.String(40)),
        sa.Column("signature_ip", sa.String(45)),
        sa.Column("signature_device", sa.Text()),
        sa.Column("signature_version", sa.String(10)),
        sa.Column("attestation_agreed", sa.Boolean(), server_default=sa.false()),
        # Progress
        sa.Column("completion_status", sa.JSON()),
        sa.Column("completion_percentage", sa.Integer(), server_default="0"),
        sa.Column("is_complete", sa.Boolean(), server_default=sa.false()),
        sa.Column("current_section", sa.String(40)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_physician_profiles_user_id", "physician_profiles", ["user_id"], unique=True
    )
    op.create_index("ix_physician_profiles_npi_number", "physician_profiles", ["npi_number"])


def downgrade() -> None:
    op.drop_index("ix_physician_profiles_npi_number", table_name="physician_profiles")
    op.drop_index("ix_physician_profiles_user_id", table_name="physician_profiles")
    op.drop_table("physician_profiles")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    sa.Enum(name="userrole").drop(op.get_bind(), checkfirst=True)
