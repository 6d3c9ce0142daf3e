"""User ORM model: inspectors, agronomists and administrators.

Identity is verified upstream; ``uid`` keeps the external identity-provider
subject so an account can be matched without storing credentials here.
"""

from __future__ import annotations

from sqlalchemy import Enum, String, text
from sqlalchemy.orm import Mapped, mapped_column

from agricert.models.base import Base, IntegerPrimaryKeyMixin, TimestampMixin
from agricert.models.enums import UserRoleEnum


class User(Base, IntegerPrimaryKeyMixin, TimestampMixin):
    """Application user — authenticates with a bearer JWT."""

    __tablename__ = "users"

    uid: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(
        String(320), unique=True, nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRoleEnum] = mapped_column(
        Enum(
            UserRoleEnum,
            name="user_role",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=False,
        default=UserRoleEnum.agronomist,
        server_default="agronomist",
    )
    is_active: Mapped[bool] = mapped_column(
        default=True,
        server_default=text("true"),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"
