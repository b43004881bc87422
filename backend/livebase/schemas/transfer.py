"""Transfer record schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from livebase.models.transfer import TransferStatus
from livebase.schemas.pagination import PaginationParams


class TransferCreate(BaseModel):
    goods_id: str = Field(min_length=1)
    source_location_id: int
    destination_location_id: int
    source_handler_id: str = Field(min_length=1)
    destination_handler_id: str = Field(min_length=1)
    transfer_date: date
    box_quantity: int = Field(default=0, ge=0)
    pack_quantity: int = Field(default=0, ge=0)
    piece_quantity: int = Field(default=0, ge=0)
    status: TransferStatus = TransferStatus.COMPLETED
    notes: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def check_distinct_locations(self):
        if self.source_location_id == self.destination_location_id:
            raise ValueError("source and destination locations must differ")
        return self


class TransferResponse(BaseModel):
    id: str
    base_id: int
    goods_id: str
    goods_code: str = ""
    goods_name: str = ""
    source_location_id: int
    source_location_name: str = ""
    destination_location_id: int
    destination_location_name: str = ""
    source_handler_id: str
    source_handler_name: str = ""
    destination_handler_id: str
    destination_handler_name: str = ""
    transfer_date: date
    box_quantity: int
    pack_quantity: int
    piece_quantity: int
    status: TransferStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TransferListParams(PaginationParams):
    goods_id: Optional[str] = None
    location_id: Optional[int] = None  # Matches either side
    handler_id: Optional[str] = None  # Matches either side
    status: Optional[TransferStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
