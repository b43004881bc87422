"""Location model."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Enum as SQLEnum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from livebase.db.base import Base, TimestampMixin


class LocationType(str, Enum):
    """Kind of stock-holding location."""

    MAIN_WAREHOUSE = "MAIN_WAREHOUSE"
    WAREHOUSE = "WAREHOUSE"
    LIVE_ROOM = "LIVE_ROOM"  # Stock here is custodied by the handler, not the location


WAREHOUSE_TYPES = (LocationType.MAIN_WAREHOUSE, LocationType.WAREHOUSE)


class Location(Base, TimestampMixin):
    """Warehouse or live room belonging to a base."""

    __tablename__ = "locations"
    __table_args__ = (
        UniqueConstraint("base_id", "name", name="uq_location_base_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    base_id: Mapped[int] = mapped_column(
        ForeignKey("bases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    type: Mapped[LocationType] = mapped_column(
        SQLEnum(LocationType), default=LocationType.WAREHOUSE, nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    base: Mapped["OperatingBase"] = relationship("OperatingBase", back_populates="locations")

    @property
    def is_warehouse(self) -> bool:
        return self.type in WAREHOUSE_TYPES


# Forward references
from livebase.models.operating_base import OperatingBase
