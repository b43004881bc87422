"""Moving weighted-average cost per (goods, base)."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from livebase.db.base import Base, TimestampMixin


class Inventory(Base, TimestampMixin):
    """Average cost per box. Holds no quantity; stock always comes from the ledgers."""

    __tablename__ = "inventories"
    __table_args__ = (
        UniqueConstraint("goods_id", "base_id", name="uq_inventory_goods_base"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    goods_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("goods.id", ondelete="CASCADE"), nullable=False, index=True
    )
    base_id: Mapped[int] = mapped_column(
        ForeignKey("bases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    average_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)

    goods: Mapped["Goods"] = relationship("Goods")


# Forward references
from livebase.models.goods import Goods
