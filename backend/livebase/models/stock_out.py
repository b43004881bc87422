"""Stock-out ledger: direct depletion not tied to a handler reconciliation."""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Optional

from sqlalchemy import Date, Enum as SQLEnum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from livebase.db.base import Base, QuantityMixin, TimestampMixin, generate_id


class StockOutType(str, Enum):
    POINT_ORDER = "POINT_ORDER"  # Shipped to a sales point
    TRANSFER = "TRANSFER"  # Moved out of the base
    MANUAL = "MANUAL"


class StockOut(Base, QuantityMixin, TimestampMixin):
    __tablename__ = "stock_outs"

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
    stock_out_date: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    type: Mapped[StockOutType] = mapped_column(
        SQLEnum(StockOutType), default=StockOutType.MANUAL, nullable=False
    )
    target_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    related_order_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    remark: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    # Relationships
    goods: Mapped["Goods"] = relationship("Goods")
    location: Mapped["Location"] = relationship("Location")


# Forward references
from livebase.models.goods import Goods
from livebase.models.location import Location
