"""Anchor profit records derived from consumptions."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from livebase.db.base import Base, TimestampMixin, generate_id


class AnchorProfit(Base, TimestampMixin):
    """Profit booked for a consumption. While one exists the consumption cannot be deleted."""

    __tablename__ = "anchor_profits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    base_id: Mapped[int] = mapped_column(
        ForeignKey("bases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    consumption_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("stock_consumptions.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    handler_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("personnel.id", ondelete="SET NULL"), nullable=True
    )
    profit_date: Mapped[date] = mapped_column(Date, nullable=False)
    gmv_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    ad_spend_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    consumption_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    profit_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    consumption: Mapped[Optional["StockConsumption"]] = relationship("StockConsumption")


# Forward references
from livebase.models.consumption import StockConsumption
