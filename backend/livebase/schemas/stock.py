"""Stock schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from livebase.models.goods import QuantityUnit
from livebase.schemas.pagination import PaginatedResponse


class QuantityIn(BaseModel):
    """A box/pack/piece quantity entered by a user."""

    box: int = Field(default=0, ge=0)
    pack: int = Field(default=0, ge=0)
    piece: int = Field(default=0, ge=0)


class StockStatus(str, Enum):
    OUT_OF_STOCK = "out_of_stock"
    LOW_STOCK = "low_stock"
    NORMAL = "normal"


STATUS_PRIORITY = {
    StockStatus.OUT_OF_STOCK: 0,
    StockStatus.LOW_STOCK: 1,
    StockStatus.NORMAL: 2,
}


class StockSummary(BaseModel):
    """Ledger sums and derived current stock for one (goods, location)."""

    arrival_box: int = 0
    arrival_pack: int = 0
    arrival_piece: int = 0
    transfer_in_box: int = 0
    transfer_in_pack: int = 0
    transfer_in_piece: int = 0
    transfer_out_box: int = 0
    transfer_out_pack: int = 0
    transfer_out_piece: int = 0
    stock_out_box: int = 0
    stock_out_pack: int = 0
    stock_out_piece: int = 0
    consumption_box: int = 0
    consumption_pack: int = 0
    consumption_piece: int = 0

    # Borrow-normalized display triple
    current_box: int = 0
    current_pack: int = 0
    current_piece: int = 0
    # Flattened before normalization; negative means the ledgers are inconsistent
    total_pieces: int = 0


class LocationStock(BaseModel):
    location_id: int
    location_name: str
    stock: StockSummary


class RequiredQuantity(BaseModel):
    box: int
    pack: int
    piece: int
    total_pieces: int


class StockCheckResult(BaseModel):
    sufficient: bool
    available: StockSummary
    required: RequiredQuantity


class BatchStockItem(BaseModel):
    goods_id: str
    box_quantity: int = Field(default=0, ge=0)
    pack_quantity: int = Field(default=0, ge=0)
    piece_quantity: int = Field(default=0, ge=0)


class BatchStockCheckDetail(BaseModel):
    goods_id: str
    goods_name: str
    sufficient: bool
    required_box: int
    required_pack: int
    required_piece: int
    available_box: int
    available_pack: int
    available_piece: int


class BatchStockCheckResult(BaseModel):
    all_sufficient: bool
    details: List[BatchStockCheckDetail]


class WarehouseInfo(BaseModel):
    id: int
    name: str
    type: str

    model_config = {"from_attributes": True}


class LocationStockItem(BaseModel):
    """Stock of one good at one location."""

    goods_id: str
    goods_code: str
    goods_name: str
    goods_name_i18n: Optional[Dict[str, str]] = None
    category_code: str = ""
    category_name: str = ""
    pack_per_box: int
    piece_per_pack: int
    location_id: int
    location_name: str
    box_quantity: int
    pack_quantity: int
    piece_quantity: int
    total_pieces: int
    average_cost: Decimal


class RealTimeStockItem(BaseModel):
    """One row of the base-wide stock snapshot."""

    goods_id: str
    goods_code: str
    goods_name: str
    goods_name_i18n: Optional[Dict[str, str]] = None
    category_code: str = ""
    category_name: str = ""
    category_name_i18n: Optional[Dict[str, str]] = None
    pack_per_box: int
    piece_per_pack: int
    stock_box: int
    stock_pack: int
    stock_piece: int
    total_pieces: int
    warehouse_names: str = ""
    avg_price_per_box: Decimal
    avg_price_per_pack: Decimal
    avg_price_per_piece: Decimal
    total_value: Decimal
    is_low_stock: bool
    stock_status: StockStatus


class StockSnapshot(BaseModel):
    """Full, unfiltered snapshot as stored in the cache."""

    computed_at: datetime
    items: List[RealTimeStockItem]


SortField = Literal[
    "goods_code", "goods_name", "category_code", "total_pieces", "stock_box",
    "avg_price_per_box", "total_value", "stock_status",
]


class RealTimeStockFilters(BaseModel):
    """Post-hoc filters and sort applied to the cached snapshot."""

    location_id: Optional[int] = None
    goods_name: Optional[str] = None
    goods_code: Optional[str] = None
    category_codes: Optional[List[str]] = None
    stock_statuses: Optional[List[StockStatus]] = None
    # Keep rows whose stock, expressed in stock_unit, is below stock_threshold
    stock_threshold: Optional[int] = Field(default=None, ge=0)
    stock_unit: QuantityUnit = QuantityUnit.BOX
    sort_field: Optional[SortField] = None
    sort_order: Literal["asc", "desc"] = "asc"
    locale: Optional[str] = None


class RealTimeStockPage(PaginatedResponse[RealTimeStockItem]):
    last_updated: datetime


class BaseStockStats(BaseModel):
    total_goods: int
    total_value: Decimal
    low_stock_count: int
    out_of_stock_count: int


class LowStockThreshold(BaseModel):
    """Threshold as stored per good or in the global setting."""

    value: int = Field(ge=0)
    unit: QuantityUnit = QuantityUnit.BOX
    enabled: bool = True

    @model_validator(mode="before")
    @classmethod
    def coerce_unit(cls, data):
        if isinstance(data, dict) and isinstance(data.get("unit"), str):
            data = {**data, "unit": data["unit"].lower()}
        return data
