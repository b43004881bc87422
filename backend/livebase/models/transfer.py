"""Transfer ledger: stock moved between two locations and handlers."""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Optional

from sqlalchemy import Date, Enum as SQLEnum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from livebase.db.base import Base, QuantityMixin, TimestampMixin, generate_id


class TransferStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TransferRecord(Base, QuantityMixin, TimestampMixin):
    """A movement of goods from a source to a destination location.

    Every status counts towards stock; the status is informational.
    """

    __tablename__ = "transfer_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    base_id: Mapped[int] = mapped_column(
        ForeignKey("bases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    goods_id: Mapped[str] = mapped_column(
        ForeignKey("goods.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source_location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    destination_location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source_handler_id: Mapped[str] = mapped_column(
        ForeignKey("personnel.id", ondelete="CASCADE"), nullable=False, index=True
    )
    destination_handler_id: Mapped[str] = mapped_column(
        ForeignKey("personnel.id", ondelete="CASCADE"), nullable=False, index=True
    )
    transfer_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[TransferStatus] = mapped_column(
        SQLEnum(TransferStatus), default=TransferStatus.COMPLETED, nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    # Relationships
    goods: Mapped["Goods"] = relationship("Goods")
    source_location: Mapped["Location"] = relationship("Location", foreign_keys=[source_location_id])
    destination_location: Mapped["Location"] = relationship(
        "Location", foreign_keys=[destination_location_id]
    )
    source_handler: Mapped["Personnel"] = relationship("Personnel", foreign_keys=[source_handler_id])
    destination_handler: Mapped["Personnel"] = relationship(
        "Personnel", foreign_keys=[destination_handler_id]
    )


# Forward references
from livebase.models.goods import Goods
from livebase.models.location import Location
from livebase.models.personnel import Personnel
