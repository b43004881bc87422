"""Goods cost schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class GoodsCostItem(BaseModel):
    goods_id: str
    goods_code: str
    goods_name: str
    average_cost: Decimal
    updated_at: Optional[datetime] = None
