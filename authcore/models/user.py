"""User model."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import DateTime, Enum as SqlEnum
from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from authcore.models.base import Base, SoftDeleteMixin, TimestampMixin
from authcore.models.types import IdList


class UserType(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class User(TimestampMixin, SoftDeleteMixin, Base):
    """Principal that can be granted apps and permissions."""

    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_type", "type"),
        Index("ix_users_email", "email"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(length=255), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(length=255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(length=255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(length=64), nullable=True)
    type: Mapped[UserType] = mapped_column(
        SqlEnum(UserType, name="user_type", native_enum=False, values_callable=lambda x: [e.value for e in x]),
        default=UserType.USER,
        nullable=False,
    )
    apps_ids: Mapped[List[int]] = mapped_column(IdList, default=list, nullable=False)
    last_logged_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @property
    def is_super_admin(self) -> bool:
        return self.type == UserType.SUPER_ADMIN

    @validates("email")
    def _lower_email(self, key: str, value: Optional[str]) -> Optional[str]:
        return value.lower() if isinstance(value, str) else value
