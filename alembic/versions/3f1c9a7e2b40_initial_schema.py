"""initial_schema

Revision ID: 3f1c9a7e2b40
Revises:
Create Date: 2026-10-19 00:00:00.000000

The single authoritative schema for the certification service: users,
farmers, farms, inspections, inspection status history and certificates,
plus the three PostgreSQL enum types.  The partial unique index
``uq_certificates_farm_active`` allows at most one active certificate per
farm; ``uq_certificates_inspection`` allows at most one certificate per
inspection.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7e2b40"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# ── Enum type names (PostgreSQL CREATE TYPE) ────────────────────────────────
ENUM_USER_ROLE = postgresql.ENUM(
    "admin", "agronomist", "inspector", name="user_role", create_type=False
)
ENUM_INSPECTION_STATUS = postgresql.ENUM(
    "scheduled",
    "in_progress",
    "completed",
    "approved",
    "rejected",
    "cancelled",
    name="inspection_status",
    create_type=False,
)
ENUM_CERTIFICATE_STATUS = postgresql.ENUM(
    "active",
    "expired",
    "revoked",
    "suspended",
    "renewal_pending",
    name="certificate_status",
    create_type=False,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # ── 1. Create enum types ────────────────────────────────────────────
    ENUM_USER_ROLE.create(op.get_bind(), checkfirst=True)
    ENUM_INSPECTION_STATUS.create(op.get_bind(), checkfirst=True)
    ENUM_CERTIFICATE_STATUS.create(op.get_bind(), checkfirst=True)

    # ── 2. People ───────────────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("uid", sa.String(255), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "role",
            ENUM_USER_ROLE,
            server_default=sa.text("'agronomist'"),
            nullable=False,
        ),
        sa.Column(
            "is_active",
            sa.Boolean(),
            server_default=sa.text("true"),
            nullable=False,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_uid", "users", ["uid"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "farmers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(20), nullable=False),
        sa.Column("id_number", sa.String(50), nullable=False),
        sa.Column("county", sa.String(100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sa.UniqueConstraint("id_number"),
    )

    # ── 3. Farms ────────────────────────────────────────────────────────

    op.create_table(
        "farms",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("farmer_id", sa.Integer(), nullable=False),
        sa.Column("farm_name", sa.String(255), nullable=False),
        sa.Column("location", sa.Text(), nullable=False),
        sa.Column("total_area", sa.Float(), nullable=True),
        sa.Column(
            "crop_types",
            postgresql.JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(["farmer_id"], ["farmers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_farms_farmer_id", "farms", ["farmer_id"])

    # ── 4. Inspections ──────────────────────────────────────────────────

    op.create_table(
        "inspections",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("farm_id", sa.Integer(), nullable=False),
        sa.Column("inspector_id", sa.Integer(), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("inspection_date", sa.Date(), nullable=True),
        sa.Column(
            "status",
            ENUM_INSPECTION_STATUS,
            server_default=sa.text("'scheduled'"),
            nullable=False,
        ),
        sa.Column("checklist", postgresql.JSONB(), nullable=False),
        sa.Column("compliance_score", sa.Integer(), nullable=True),
        sa.Column(
            "is_eligible_for_certification",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column("findings", sa.Text(), nullable=True),
        sa.Column("recommendations", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "violations",
            postgresql.JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column("updated_by", sa.String(255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "compliance_score IS NULL OR compliance_score BETWEEN 0 AND 100",
            name="ck_inspections_compliance_score_range",
        ),
        sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["inspector_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_inspections_farm_status", "inspections", ["farm_id", "status"])
    op.create_index("ix_inspections_inspector_id", "inspections", ["inspector_id"])

    op.create_table(
        "inspection_status_history",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("inspection_id", sa.Integer(), nullable=False),
        sa.Column("old_status", ENUM_INSPECTION_STATUS, nullable=True),
        sa.Column("new_status", ENUM_INSPECTION_STATUS, nullable=False),
        sa.Column("changed_by", sa.String(255), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column(
            "changed_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["inspection_id"], ["inspections.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_inspection_status_history_inspection",
        "inspection_status_history",
        ["inspection_id", "id"],
    )

    # ── 5. Certificates ─────────────────────────────────────────────────

    op.create_table(
        "certificates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("certificate_number", sa.String(100), nullable=False),
        sa.Column("farm_id", sa.Integer(), nullable=False),
        sa.Column("inspection_id", sa.Integer(), nullable=True),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column(
            "status",
            ENUM_CERTIFICATE_STATUS,
            server_default=sa.text("'active'"),
            nullable=False,
        ),
        sa.Column("certifying_body", sa.String(255), nullable=False),
        sa.Column("scope", sa.Text(), nullable=False),
        sa.Column(
            "crop_types",
            postgresql.JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column("pdf_url", sa.String(500), nullable=True),
        sa.Column("issued_by", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("expiry_date > issue_date", name="ck_certificates_expiry_after_issue"),
        sa.ForeignKeyConstraint(["farm_id"], ["farms.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["inspection_id"], ["inspections.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["issued_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("certificate_number"),
    )
    op.create_index(
        "uq_certificates_farm_active",
        "certificates",
        ["farm_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )
    op.create_index(
        "uq_certificates_inspection",
        "certificates",
        ["inspection_id"],
        unique=True,
        postgresql_where=sa.text("inspection_id IS NOT NULL"),
    )
    op.create_index("ix_certificates_farm_status", "certificates", ["farm_id", "status"])
    op.create_index("ix_certificates_expiry_date", "certificates", ["expiry_date"])


def downgrade() -> None:
    # ── Drop tables in reverse dependency order ─────────────────────────
    op.drop_table("certificates")
    op.drop_table("inspection_status_history")
    op.drop_table("inspections")
    op.drop_table("farms")
    op.drop_table("farmers")
    op.drop_table("users")

    # ── Drop enum types ─────────────────────────────────────────────────
    ENUM_CERTIFICATE_STATUS.drop(op.get_bind(), checkfirst=True)
    ENUM_INSPECTION_STATUS.drop(op.get_bind(), checkfirst=True)
    ENUM_USER_ROLE.drop(op.get_bind(), checkfirst=True)
