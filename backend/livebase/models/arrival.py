"""Arrival ledger: goods received against a purchase order."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from livebase.db.base import Base, QuantityMixin, TimestampMixin, generate_id


class ArrivalRecord(Base, QuantityMixin, TimestampMixin):
    """One receipt of goods at a location. Append-only."""

    __tablename__ = "arrival_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    base_id: Mapped[int] = mapped_column(
        ForeignKey("bases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    goods_id: Mapped[str] = mapped_column(
        ForeignKey("goods.id", ondelete="CASCADE"), nullable=False, index=True
    )
    purchase_order_id: Mapped[str] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    handler_id: Mapped[str] = mapped_column(
        ForeignKey("personnel.id", ondelete="CASCADE"), nullable=False, index=True
    )
    arrival_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    logistics_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    # Relationships
    goods: Mapped["Goods"] = relationship("Goods")
    purchase_order: Mapped["PurchaseOrder"] = relationship("PurchaseOrder")
    location: Mapped["Location"] = relationship("Location")
    handler: Mapped["Personnel"] = relationship("Personnel")


# Forward references
from livebase.models.goods import Goods
from livebase.models.location import Location
from livebase.models.personnel import Personnel
from livebase.models.purchase import PurchaseOrder
