"""SQLAlchemy declarative base and common utilities."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


def generate_id() -> str:
    """String primary key for catalog and ledger rows."""
    return str(uuid.uuid4())


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class QuantityMixin:
    """Integer box/pack/piece columns shared by every ledger table.

    Values are stored exactly as entered; normalization only happens when a
    quantity is read back for display.
    """

    box_quantity: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    pack_quantity: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    piece_quantity: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
