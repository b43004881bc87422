"""Consumption schemas."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from livebase.schemas.pagination import PaginationParams
from livebase.schemas.stock import QuantityIn


class ConsumptionCreate(BaseModel):
    """Create request. ``opening`` defaults to the handler's ledger-derived balance."""

    consumption_date: date
    goods_id: str = Field(min_length=1)
    location_id: int
    handler_id: str = Field(min_length=1)
    opening: Optional[QuantityIn] = None
    closing: QuantityIn
    notes: Optional[str] = Field(default=None, max_length=1000)


class ConsumptionImportRow(BaseModel):
    """Spreadsheet row: references by name, opening always derived from the ledgers."""

    consumption_date: date
    goods_name: str = Field(min_length=1)
    location_name: str = Field(min_length=1)
    handler_name: str = Field(min_length=1)
    closing: QuantityIn = Field(default_factory=QuantityIn)
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("goods_name", "location_name", "handler_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be blank")
        return v


class ConsumptionUpdate(BaseModel):
    """Partial update; unspecified fields keep their stored value."""

    consumption_date: Optional[date] = None
    goods_id: Optional[str] = None
    location_id: Optional[int] = None
    handler_id: Optional[str] = None
    opening: Optional[QuantityIn] = None
    closing: Optional[QuantityIn] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class OpeningStock(BaseModel):
    opening_box_qty: int
    opening_pack_qty: int
    opening_piece_qty: int
    total_pieces: int
    unit_price_per_box: Decimal
    pack_per_box: int
    piece_per_pack: int


class ConsumptionResponse(BaseModel):
    id: str
    base_id: int
    consumption_date: date
    goods_id: str
    goods_code: str = ""
    goods_name: str = ""
    pack_per_box: int = 1
    piece_per_pack: int = 1
    location_id: int
    location_name: str = ""
    handler_id: str
    handler_name: str = ""
    opening_box_qty: int
    opening_pack_qty: int
    opening_piece_qty: int
    closing_box_qty: int
    closing_pack_qty: int
    closing_piece_qty: int
    box_quantity: int
    pack_quantity: int
    piece_quantity: int
    unit_price_per_box: Decimal
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ConsumptionListParams(PaginationParams):
    goods_id: Optional[str] = None
    goods_name: Optional[str] = None
    location_id: Optional[int] = None
    handler_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class ConsumptionStats(BaseModel):
    total_records: int
    total_goods: int
    total_box_quantity: int
    total_pack_quantity: int
    total_piece_quantity: int
    today_records: int
