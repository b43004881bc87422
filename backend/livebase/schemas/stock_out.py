"""Stock-out schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from livebase.models.stock_out import StockOutType
from livebase.schemas.pagination import PaginationParams


class StockOutCreate(BaseModel):
    goods_id: str = Field(min_length=1)
    location_id: int
    stock_out_date: date
    type: StockOutType = StockOutType.MANUAL
    target_name: Optional[str] = Field(default=None, max_length=200)
    related_order_id: Optional[str] = None
    box_quantity: int = Field(default=0, ge=0)
    pack_quantity: int = Field(default=0, ge=0)
    piece_quantity: int = Field(default=0, ge=0)
    remark: Optional[str] = Field(default=None, max_length=1000)


class StockOutResponse(BaseModel):
    id: str
    base_id: int
    goods_id: str
    location_id: int
    stock_out_date: date
    type: StockOutType
    target_name: Optional[str] = None
    related_order_id: Optional[str] = None
    box_quantity: int
    pack_quantity: int
    piece_quantity: int
    remark: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class StockOutListParams(PaginationParams):
    goods_id: Optional[str] = None
    location_id: Optional[int] = None
    type: Optional[StockOutType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
