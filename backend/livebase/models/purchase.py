"""Purchase order models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from livebase.db.base import Base, TimestampMixin, generate_id


class PurchaseOrder(Base, TimestampMixin):
    """A purchase order placed by a base."""

    __tablename__ = "purchase_orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    base_id: Mapped[int] = mapped_column(
        ForeignKey("bases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    supplier_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    # Relationships
    items: Mapped[list["PurchaseOrderItem"]] = relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
    )

    @property
    def first_item(self) -> Optional["PurchaseOrderItem"]:
        """The line item arrivals are booked against."""
        return self.items[0] if self.items else None


class PurchaseOrderItem(Base):
    """A goods line of a purchase order. ``unit_price`` is per box."""

    __tablename__ = "purchase_order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    purchase_order_id: Mapped[str] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    goods_id: Mapped[str] = mapped_column(
        ForeignKey("goods.id", ondelete="CASCADE"), nullable=False, index=True
    )
    box_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    pack_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    piece_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)

    # Relationships
    purchase_order: Mapped["PurchaseOrder"] = relationship("PurchaseOrder", back_populates="items")
    goods: Mapped["Goods"] = relationship("Goods")


# Forward references
from livebase.models.goods import Goods
