"""Group model: a node of the organisational forest."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, validates

from authcore.models.base import Base, SoftDeleteMixin, TimestampMixin
from authcore.models.types import IdList


class Group(TimestampMixin, SoftDeleteMixin, Base):
    """Group with an optional parent and an optional direct app assignment.

    A group with ``company_code`` set represents an external organisation and
    takes part in inheritance like any other group.
    """

    __tablename__ = "groups"
    __table_args__ = (
        Index("ix_groups_parent", "parent_id"),
        # company codes are unique among live groups only
        Index(
            "uq_groups_company_code",
            "company_code",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("groups.id", ondelete="SET NULL"),
        nullable=True,
    )
    apps_ids: Mapped[List[int]] = mapped_column(IdList, default=list, nullable=False)
    company_code: Mapped[Optional[str]] = mapped_column(String(length=64), nullable=True)
    company_email: Mapped[Optional[str]] = mapped_column(String(length=255), nullable=True)
    company_phone: Mapped[Optional[str]] = mapped_column(String(length=64), nullable=True)

    @property
    def is_company(self) -> bool:
        return bool(self.company_code)

    @validates("company_email")
    def _lower_email(self, key: str, value: Optional[str]) -> Optional[str]:
        return value.lower() if isinstance(value, str) else value
