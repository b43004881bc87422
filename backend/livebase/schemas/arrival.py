"""Arrival record schemas."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from livebase.schemas.pagination import PaginationParams


class ArrivalCreate(BaseModel):
    """Goods are implied by the purchase order, never sent by the caller."""

    purchase_order_id: str = Field(min_length=1)
    location_id: int
    handler_id: str = Field(min_length=1)
    arrival_date: date
    box_quantity: int = Field(default=0, ge=0)
    pack_quantity: int = Field(default=0, ge=0)
    piece_quantity: int = Field(default=0, ge=0)
    logistics_fee: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = Field(default=None, max_length=1000)


class ArrivalResponse(BaseModel):
    id: str
    base_id: int
    goods_id: str
    goods_code: str = ""
    goods_name: str = ""
    purchase_order_id: str
    purchase_order_code: str = ""
    location_id: int
    location_name: str = ""
    handler_id: str
    handler_name: str = ""
    arrival_date: date
    box_quantity: int
    pack_quantity: int
    piece_quantity: int
    logistics_fee: Decimal
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


class ArrivalListParams(PaginationParams):
    goods_id: Optional[str] = None
    purchase_order_id: Optional[str] = None
    location_id: Optional[int] = None
    handler_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class RemainingQuantity(BaseModel):
    """Ordered vs received for the purchase order's booked line item."""

    purchase_order_id: str
    goods_id: str
    ordered_box: int
    ordered_pack: int
    ordered_piece: int
    received_box: int
    received_pack: int
    received_piece: int
    remaining_box: int
    remaining_pack: int
    remaining_piece: int
    ordered_pieces: int
    received_pieces: int
    remaining_pieces: int


class ArrivalStats(BaseModel):
    total_records: int
    today_records: int
    this_month_records: int
