"""Operating base (tenant) model."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from livebase.db.base import Base, TimestampMixin


class OperatingBase(Base, TimestampMixin):
    """A live-commerce operating base. Every ledger row is scoped to one."""

    __tablename__ = "bases"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    locations: Mapped[list["Location"]] = relationship("Location", back_populates="base")
    personnel: Mapped[list["Personnel"]] = relationship("Personnel", back_populates="base")


# Forward references
from livebase.models.location import Location
from livebase.models.personnel import Personnel
