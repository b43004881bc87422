"""Transfer Record Service - stock moved between locations and handlers.

A transfer reduces the source location and increases the destination. It is
also what hands goods to a handler: transfers to a handler raise their
opening stock, transfers from a live room lower it.

Sufficiency at the source is not enforced. An overdraw is booked as requested
and reported as a warning so the ledgers can be reconciled later.
"""

import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from livebase.core.cache import StockCache
from livebase.core.config import Settings, settings as default_settings
from livebase.core.exceptions import DomainValidationError, NotFoundError
from livebase.core.i18n import display_name
from livebase.db.transaction import commit_or_raise
from livebase.models.goods import Goods, GoodsLocalSetting
from livebase.models.location import Location
from livebase.models.personnel import Personnel
from livebase.models.transfer import TransferRecord, TransferStatus
from livebase.schemas.pagination import PaginatedResponse, paginate_query
from livebase.schemas.transfer import TransferCreate, TransferListParams, TransferResponse
from livebase.services.stock_service import StockService
from livebase.services.units import Quantity, UnitSpec, format_quantity, to_pieces

logger = logging.getLogger(__name__)


class TransferRecordService:
    """Service for transfer records."""

    def __init__(
        self,
        db: Session,
        cache: Optional[StockCache] = None,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.config = config or default_settings
        self.stock = StockService(db, cache, self.config)

    def _get_active_goods(self, base_id: int, goods_id: str) -> Goods:
        goods = (
            self.db.query(Goods)
            .join(GoodsLocalSetting, GoodsLocalSetting.goods_id == Goods.id)
            .filter(
                Goods.id == goods_id,
                GoodsLocalSetting.base_id == base_id,
                GoodsLocalSetting.is_active.is_(True),
            )
            .first()
        )
        if goods is None:
            raise NotFoundError("Goods", goods_id, base_id)
        return goods

    def _get_location(self, base_id: int, location_id: int, role: str) -> Location:
        location = self.db.get(Location, location_id)
        if location is None or location.base_id != base_id:
            raise NotFoundError(f"{role} location", location_id, base_id)
        return location

    def _get_handler(self, base_id: int, handler_id: str, role: str) -> Personnel:
        handler = self.db.get(Personnel, handler_id)
        if handler is None or handler.base_id != base_id:
            raise NotFoundError(f"{role} handler", handler_id, base_id)
        return handler

    def _get_record(self, base_id: int, record_id: str) -> TransferRecord:
        record = self.db.get(TransferRecord, record_id)
        if record is None or record.base_id != base_id:
            raise NotFoundError("Transfer record", record_id, base_id)
        return record

    def create_transfer_record(
        self, base_id: int, data: TransferCreate, user_id: Optional[str] = None
    ) -> TransferResponse:
        """Book a transfer between two locations of the base."""
        if data.source_location_id == data.destination_location_id:
            raise DomainValidationError(
                "Source and destination locations must differ",
                location_id=data.source_location_id,
            )

        goods = self._get_active_goods(base_id, data.goods_id)
        source = self._get_location(base_id, data.source_location_id, "Source")
        destination = self._get_location(base_id, data.destination_location_id, "Destination")
        source_handler = self._get_handler(base_id, data.source_handler_id, "Source")
        destination_handler = self._get_handler(base_id, data.destination_handler_id, "Destination")

        ratios = UnitSpec.for_goods(goods)
        requested = Quantity(data.box_quantity, data.pack_quantity, data.piece_quantity)
        if to_pieces(requested, *ratios) <= 0:
            raise DomainValidationError("Transfer quantity must be greater than zero")

        check = self.stock.check_stock_sufficient(
            base_id, goods.id, source.id, requested.box, requested.pack, requested.piece
        )
        if not check.sufficient:
            logger.warning(
                "Transfer overdraws location %s for goods %s in base %s: "
                "requested %d pieces, available %d",
                source.id, goods.id, base_id,
                check.required.total_pieces, check.available.total_pieces,
            )

        record = TransferRecord(
            base_id=base_id,
            goods_id=goods.id,
            source_location_id=source.id,
            destination_location_id=destination.id,
            source_handler_id=source_handler.id,
            destination_handler_id=destination_handler.id,
            transfer_date=data.transfer_date,
            box_quantity=requested.box,
            pack_quantity=requested.pack,
            piece_quantity=requested.piece,
            status=data.status,
            notes=data.notes,
            created_by=user_id,
        )
        self.db.add(record)
        commit_or_raise(
            self.db, "create transfer record",
            base_id=base_id, goods_id=goods.id,
            source_location_id=source.id, destination_location_id=destination.id,
        )
        self.db.refresh(record)
        self.stock.clear_cache(base_id)
        logger.info(
            "Transfer recorded: record=%s base=%s goods=%s %s -> %s qty=%s user=%s",
            record.id, base_id, goods.id, source.id, destination.id,
            format_quantity(requested), user_id,
        )
        return self._to_response(record)

    def update_transfer_status(
        self, base_id: int, record_id: str, status: TransferStatus, user_id: Optional[str] = None
    ) -> TransferResponse:
        """Overwrite the status; stock sums are unaffected."""
        record = self._get_record(base_id, record_id)
        previous = record.status
        record.status = status
        record.updated_by = user_id
        commit_or_raise(self.db, "update transfer status", base_id=base_id, record_id=record_id)
        self.db.refresh(record)
        self.stock.clear_cache(base_id)
        logger.info(
            "Transfer status changed: record=%s base=%s %s -> %s user=%s",
            record_id, base_id, previous.value, status.value, user_id,
        )
        return self._to_response(record)

    def delete_transfer_record(self, base_id: int, record_id: str, user_id: Optional[str] = None) -> None:
        record = self._get_record(base_id, record_id)
        goods_id = record.goods_id
        self.db.delete(record)
        commit_or_raise(self.db, "delete transfer record", base_id=base_id, record_id=record_id)
        self.stock.clear_cache(base_id)
        logger.info("Transfer deleted: record=%s base=%s goods=%s user=%s", record_id, base_id, goods_id, user_id)

    def _to_response(self, record: TransferRecord) -> TransferResponse:
        goods = record.goods
        return TransferResponse(
            id=record.id,
            base_id=record.base_id,
            goods_id=record.goods_id,
            goods_code=goods.code if goods else "",
            goods_name=(
                display_name(goods.name, goods.name_i18n, default_locale=self.config.default_locale)
                if goods else ""
            ),
            source_location_id=record.source_location_id,
            source_location_name=record.source_location.name if record.source_location else "",
            destination_location_id=record.destination_location_id,
            destination_location_name=(
                record.destination_location.name if record.destination_location else ""
            ),
            source_handler_id=record.source_handler_id,
            source_handler_name=record.source_handler.name if record.source_handler else "",
            destination_handler_id=record.destination_handler_id,
            destination_handler_name=(
                record.destination_handler.name if record.destination_handler else ""
            ),
            transfer_date=record.transfer_date,
            box_quantity=record.box_quantity,
            pack_quantity=record.pack_quantity,
            piece_quantity=record.piece_quantity,
            status=record.status,
            notes=record.notes,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def get_base_transfer_records(
        self, base_id: int, params: Optional[TransferListParams] = None
    ) -> PaginatedResponse[TransferResponse]:
        """Transfers of a base, newest first."""
        params = params or TransferListParams()
        query = self.db.query(TransferRecord).filter(TransferRecord.base_id == base_id)
        if params.goods_id:
            query = query.filter(TransferRecord.goods_id == params.goods_id)
        if params.location_id is not None:
            query = query.filter(or_(
                TransferRecord.source_location_id == params.location_id,
                TransferRecord.destination_location_id == params.location_id,
            ))
        if params.handler_id:
            query = query.filter(or_(
                TransferRecord.source_handler_id == params.handler_id,
                TransferRecord.destination_handler_id == params.handler_id,
            ))
        if params.status:
            query = query.filter(TransferRecord.status == params.status)
        if params.start_date:
            query = query.filter(TransferRecord.transfer_date >= params.start_date)
        if params.end_date:
            query = query.filter(TransferRecord.transfer_date <= params.end_date)

        query = query.order_by(TransferRecord.transfer_date.desc(), TransferRecord.created_at.desc())
        records, total = paginate_query(query, params.skip, params.limit)
        return PaginatedResponse[TransferResponse].create(
            items=[self._to_response(r) for r in records],
            total=total,
            skip=params.skip,
            limit=params.limit,
        )
