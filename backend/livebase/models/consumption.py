"""Consumption ledger: opening/closing reconciliation of a handler's holdings."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from livebase.db.base import Base, QuantityMixin, TimestampMixin, generate_id


class StockConsumption(Base, QuantityMixin, TimestampMixin):
    """What a handler used up over a period.

    The inherited box/pack/piece columns hold the derived consumption
    (opening - closing); opening and closing are kept for audit.
    """

    __tablename__ = "stock_consumptions"
    __table_args__ = (
        UniqueConstraint(
            "consumption_date", "goods_id", "location_id", "handler_id",
            name="uq_consumption_period",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    base_id: Mapped[int] = mapped_column(
        ForeignKey("bases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    goods_id: Mapped[str] = mapped_column(
        ForeignKey("goods.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    handler_id: Mapped[str] = mapped_column(
        ForeignKey("personnel.id", ondelete="CASCADE"), nullable=False, index=True
    )
    consumption_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    opening_box_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    opening_pack_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    opening_piece_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    closing_box_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    closing_pack_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    closing_piece_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Average cost per box at creation time
    unit_price_per_box: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    # Relationships
    goods: Mapped["Goods"] = relationship("Goods")
    location: Mapped["Location"] = relationship("Location")
    handler: Mapped["Personnel"] = relationship("Personnel")


# Forward references
from livebase.models.goods import Goods
from livebase.models.location import Location
from livebase.models.personnel import Personnel
