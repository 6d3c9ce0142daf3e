"""PostgreSQL-backed enum types for all ORM models.

Each StrEnum maps 1:1 to a PostgreSQL CREATE TYPE ... AS ENUM.
These are separate from the Pydantic StrEnum in agricert/config.py —
config enums validate settings, ORM enums type database columns.
"""

from enum import StrEnum

# ── Inspection enums ────────────────────────────────────────────────────────


class InspectionStatusEnum(StrEnum):
    """Inspection lifecycle states.

    ``approved``, ``rejected`` and ``cancelled`` are terminal.
    """

    scheduled = "scheduled"
    in_progress = "in_progress"
    completed = "completed"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


# ── Certificate enums ───────────────────────────────────────────────────────


class CertificateStatusEnum(StrEnum):
    """Certificate states; at most one ``active`` certificate per farm."""

    active = "active"
    expired = "expired"
    revoked = "revoked"
    suspended = "suspended"
    renewal_pending = "renewal_pending"


# ── Auth enums ──────────────────────────────────────────────────────────────


class UserRoleEnum(StrEnum):
    """User authorization roles for RBAC."""

    admin = "admin"
    agronomist = "agronomist"
    inspector = "inspector"
