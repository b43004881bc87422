"""Goods catalog models: Category, Goods and per-base GoodsLocalSetting."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Boolean, ForeignKey, Integer, JSON, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from livebase.db.base import Base, TimestampMixin, generate_id


class QuantityUnit(str, Enum):
    """Units of the box > pack > piece hierarchy."""

    BOX = "box"
    PACK = "pack"
    PIECE = "piece"


class Category(Base, TimestampMixin):
    """Goods category."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    name_i18n: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    goods: Mapped[list["Goods"]] = relationship("Goods", back_populates="category")


class Goods(Base, TimestampMixin):
    """A trackable item, shared across bases.

    ``name`` holds either a locale map (``{"zh_CN": ..., "en": ...}``) or a
    bare string on rows created before multilingual names existed.
    """

    __tablename__ = "goods"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    name: Mapped[Any] = mapped_column(JSON, nullable=False)
    name_i18n: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    manufacturer: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    pack_per_box: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    piece_per_pack: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    category: Mapped[Optional["Category"]] = relationship("Category", back_populates="goods")
    local_settings: Mapped[list["GoodsLocalSetting"]] = relationship(
        "GoodsLocalSetting", back_populates="goods", cascade="all, delete-orphan"
    )


class GoodsLocalSetting(Base, TimestampMixin):
    """Per-base activation, pricing and low-stock threshold for a good."""

    __tablename__ = "goods_local_settings"
    __table_args__ = (
        UniqueConstraint("goods_id", "base_id", name="uq_goods_local_setting"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    goods_id: Mapped[str] = mapped_column(
        ForeignKey("goods.id", ondelete="CASCADE"), nullable=False, index=True
    )
    base_id: Mapped[int] = mapped_column(
        ForeignKey("bases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    retail_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    pack_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    alias: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Low-stock threshold override, compared strictly (<) in the given unit
    low_stock_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    low_stock_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    low_stock_unit: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    goods: Mapped["Goods"] = relationship("Goods", back_populates="local_settings")
