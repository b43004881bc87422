"""Personnel (stock handler) model."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Enum as SQLEnum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from livebase.db.base import Base, TimestampMixin, generate_id


class PersonnelRole(str, Enum):
    ANCHOR = "ANCHOR"
    WAREHOUSE_KEEPER = "WAREHOUSE_KEEPER"


class Personnel(Base, TimestampMixin):
    """A person who custodies stock: anchors in live rooms, keepers in warehouses."""

    __tablename__ = "personnel"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    base_id: Mapped[int] = mapped_column(
        ForeignKey("bases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[PersonnelRole] = mapped_column(
        SQLEnum(PersonnelRole), default=PersonnelRole.ANCHOR, nullable=False
    )
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    base: Mapped["OperatingBase"] = relationship("OperatingBase", back_populates="personnel")


# Forward references
from livebase.models.operating_base import OperatingBase
