"""Global key/value settings."""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import Boolean, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from livebase.db.base import Base, TimestampMixin


class GlobalSetting(Base, TimestampMixin):
    """System-wide setting stored as JSON, e.g. the default low-stock threshold."""

    __tablename__ = "global_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
