"""Certificate ORM model.

The partial unique index ``uq_certificates_farm_active`` is the storage-level
guard for "at most one active certificate per farm": concurrent issuers for
the same farm race on the INSERT and the loser gets an IntegrityError, which
the repository translates into ``DuplicateCertificate``.
``uq_certificates_inspection`` likewise allows one certificate per
inspection (``InspectionAlreadyCertified``).
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import CheckConstraint, Date, Enum, ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from agricert.models.base import Base, IntegerPrimaryKeyMixin, TimestampMixin
from agricert.models.enums import CertificateStatusEnum

ACTIVE_CERTIFICATE_INDEX = "uq_certificates_farm_active"
INSPECTION_CERTIFICATE_INDEX = "uq_certificates_inspection"


class Certificate(Base, IntegerPrimaryKeyMixin, TimestampMixin):
    """An issued organic certificate for one farm."""

    __tablename__ = "certificates"
    __table_args__ = (
        Index(
            ACTIVE_CERTIFICATE_INDEX,
            "farm_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
        ),
        Index(
            INSPECTION_CERTIFICATE_INDEX,
            "inspection_id",
            unique=True,
            postgresql_where=text("inspection_id IS NOT NULL"),
        ),
        Index("ix_certificates_farm_status", "farm_id", "status"),
        Index("ix_certificates_expiry_date", "expiry_date"),
        CheckConstraint("expiry_date > issue_date", name="ck_certificates_expiry_after_issue"),
    )

    certificate_number: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False
    )
    farm_id: Mapped[int] = mapped_column(
        ForeignKey("farms.id", ondelete="CASCADE"),
        nullable=False,
    )
    inspection_id: Mapped[int | None] = mapped_column(
        ForeignKey("inspections.id", ondelete="SET NULL"),
        nullable=True,
    )
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[CertificateStatusEnum] = mapped_column(
        Enum(
            CertificateStatusEnum,
            name="certificate_status",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=False,
        default=CertificateStatusEnum.active,
        server_default=CertificateStatusEnum.active.value,
    )
    certifying_body: Mapped[str] = mapped_column(String(255), nullable=False)
    scope: Mapped[str] = mapped_column(Text, nullable=False)
    crop_types: Mapped[list[str]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )
    pdf_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    issued_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Certificate id={self.id} number={self.certificate_number!r} "
            f"farm={self.farm_id} status={self.status}>"
        )
