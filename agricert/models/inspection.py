"""Inspection and InspectionStatusHistory ORM models.

``checklist`` is stored as a JSONB map from checklist key to answer
(``true`` / ``false`` / ``null`` for unanswered).  ``compliance_score`` is
NULL until the checklist has been scored at least once.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from agricert.models.base import Base, IntegerPrimaryKeyMixin, TimestampMixin
from agricert.models.enums import InspectionStatusEnum

# ═══════════════════════════════════════════════════════════════════════════
# Inspection
# ═══════════════════════════════════════════════════════════════════════════


class Inspection(Base, IntegerPrimaryKeyMixin, TimestampMixin):
    """One scheduled or conducted farm inspection."""

    __tablename__ = "inspections"
    __table_args__ = (
        Index("ix_inspections_farm_status", "farm_id", "status"),
        Index("ix_inspections_inspector_id", "inspector_id"),
        CheckConstraint(
            "compliance_score IS NULL OR compliance_score BETWEEN 0 AND 100",
            name="ck_inspections_compliance_score_range",
        ),
    )

    farm_id: Mapped[int] = mapped_column(
        ForeignKey("farms.id", ondelete="CASCADE"),
        nullable=False,
    )
    inspector_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    inspection_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[InspectionStatusEnum] = mapped_column(
        Enum(
            InspectionStatusEnum,
            name="inspection_status",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=False,
        default=InspectionStatusEnum.scheduled,
        server_default=InspectionStatusEnum.scheduled.value,
    )
    checklist: Mapped[dict[str, bool | None]] = mapped_column(JSONB, nullable=False)
    compliance_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_eligible_for_certification: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    findings: Mapped[str | None] = mapped_column(Text, nullable=True)
    recommendations: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    violations: Mapped[list[str]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Inspection id={self.id} farm={self.farm_id} "
            f"status={self.status} score={self.compliance_score}>"
        )


# ═══════════════════════════════════════════════════════════════════════════
# InspectionStatusHistory
# ═══════════════════════════════════════════════════════════════════════════


class InspectionStatusHistory(Base):
    """Append-only audit trail of inspection status changes.

    The BIGSERIAL ``id`` is the append order; ``changed_at`` is informative
    only (two transitions can share a timestamp).
    """

    __tablename__ = "inspection_status_history"
    __table_args__ = (
        Index("ix_inspection_status_history_inspection", "inspection_id", "id"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=True,
    )
    inspection_id: Mapped[int] = mapped_column(
        ForeignKey("inspections.id", ondelete="CASCADE"),
        nullable=False,
    )
    old_status: Mapped[InspectionStatusEnum | None] = mapped_column(
        Enum(
            InspectionStatusEnum,
            name="inspection_status",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=True,
    )
    new_status: Mapped[InspectionStatusEnum] = mapped_column(
        Enum(
            InspectionStatusEnum,
            name="inspection_status",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=False,
    )
    changed_by: Mapped[str] = mapped_column(String(255), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<InspectionStatusHistory inspection={self.inspection_id} "
            f"{self.old_status}->{self.new_status}>"
        )
