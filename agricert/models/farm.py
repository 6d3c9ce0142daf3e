"""Farmer and Farm ORM models.

Registration and farm CRUD live outside this service; the certification
core only reads these rows to gather the facts printed on a certificate.
"""

from __future__ import annotations

from sqlalchemy import Float, ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from agricert.models.base import Base, IntegerPrimaryKeyMixin, TimestampMixin


class Farmer(Base, IntegerPrimaryKeyMixin, TimestampMixin):
    """A registered farmer — the certificate holder."""

    __tablename__ = "farmers"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    id_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    county: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<Farmer id={self.id} name={self.name!r}>"


class Farm(Base, IntegerPrimaryKeyMixin, TimestampMixin):
    """A farm under certification.

    ``crop_types`` (JSONB list of strings) is copied onto each certificate at
    issuance time so later edits to the farm do not rewrite history.
    """

    __tablename__ = "farms"
    __table_args__ = (Index("ix_farms_farmer_id", "farmer_id"),)

    farmer_id: Mapped[int] = mapped_column(
        ForeignKey("farmers.id", ondelete="CASCADE"),
        nullable=False,
    )
    farm_name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str] = mapped_column(Text, nullable=False)
    total_area: Mapped[float | None] = mapped_column(Float, nullable=True)
    crop_types: Mapped[list[str]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )

    def __repr__(self) -> str:
        return f"<Farm id={self.id} name={self.farm_name!r} farmer={self.farmer_id}>"
