"""ORM model registry — importing this module registers every table on Base.metadata.

Alembic ``env.py`` imports ``Base`` from here (not from ``base.py``) so that
autogenerate sees all tables.  Application code can also do::

    from agricert.models import Inspection, Certificate, ...
"""

# ── Auth models ─────────────────────────────────────────────────────────────
from agricert.models.user import User

# ── Base & Mixins ───────────────────────────────────────────────────────────
from agricert.models.base import Base, IntegerPrimaryKeyMixin, TimestampMixin

# ── Certification models ────────────────────────────────────────────────────
from agricert.models.certificate import ACTIVE_CERTIFICATE_INDEX, INSPECTION_CERTIFICATE_INDEX, Certificate

# ── Enums ───────────────────────────────────────────────────────────────────
from agricert.models.enums import (
    CertificateStatusEnum,
    InspectionStatusEnum,
    UserRoleEnum,
)

# ── Farm registry models ────────────────────────────────────────────────────
from agricert.models.farm import Farm, Farmer
from agricert.models.inspection import Inspection, InspectionStatusHistory

__all__ = [
    "ACTIVE_CERTIFICATE_INDEX",
    "INSPECTION_CERTIFICATE_INDEX",
    # Base & mixins
    "Base",
    # Certification
    "Certificate",
    # Enums
    "CertificateStatusEnum",
    # Farm registry
    "Farm",
    "Farmer",
    "Inspection",
    "InspectionStatusEnum",
    "InspectionStatusHistory",
    "IntegerPrimaryKeyMixin",
    "TimestampMixin",
    # Auth
    "User",
    "UserRoleEnum",
]
