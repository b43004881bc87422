"""Arrival Record Service - goods received against purchase orders.

An arrival never names its goods: they come from the purchase order's first
line item, which also fixes the ordered quantity. Across the order's
lifetime the arrivals booked against it can never exceed that quantity
(compared in pieces).

Cost maintenance is a secondary effect. It runs after the arrival is
committed, inside its own error boundary, so a failed cost update is logged
and never undoes the arrival.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from livebase.core.cache import StockCache
from livebase.core.config import Settings, settings as default_settings
from livebase.core.exceptions import (
    ArrivalExceedsOrderError,
    DomainValidationError,
    LivebaseError,
    NotFoundError,
)
from livebase.core.i18n import display_name
from livebase.db.transaction import commit_or_raise
from livebase.models.arrival import ArrivalRecord
from livebase.models.goods import Goods
from livebase.models.location import Location
from livebase.models.personnel import Personnel
from livebase.models.purchase import PurchaseOrder, PurchaseOrderItem
from livebase.schemas.arrival import (
    ArrivalCreate,
    ArrivalListParams,
    ArrivalResponse,
    ArrivalStats,
    RemainingQuantity,
)
from livebase.schemas.pagination import PaginatedResponse, paginate_query
from livebase.services.goods_cost_service import GoodsCostService, to_decimal
from livebase.services.ledger_reader import LedgerReader
from livebase.services.stock_service import StockService
from livebase.services.units import (
    Quantity,
    UnitSpec,
    format_quantity,
    from_pieces,
    to_box_equivalent,
    to_pieces,
)

logger = logging.getLogger(__name__)


class ArrivalRecordService:
    """Service for arrival records."""

    def __init__(
        self,
        db: Session,
        cache: Optional[StockCache] = None,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.config = config or default_settings
        self.ledger = LedgerReader(db)
        self.costs = GoodsCostService(db, self.config)
        self.stock = StockService(db, cache, self.config)

    def _get_order_item(self, base_id: int, purchase_order_id: str):
        order = self.db.get(PurchaseOrder, purchase_order_id)
        if order is None or order.base_id != base_id:
            raise NotFoundError("Purchase order", purchase_order_id, base_id)
        item = order.first_item
        if item is None:
            raise DomainValidationError(
                f"Purchase order '{order.code}' has no items", purchase_order_id=purchase_order_id
            )
        return order, item

    def get_remaining_quantity(self, base_id: int, purchase_order_id: str) -> RemainingQuantity:
        """Ordered, received and still receivable quantity of a purchase order."""
        order, item = self._get_order_item(base_id, purchase_order_id)
        goods = self.db.get(Goods, item.goods_id)
        ratios = UnitSpec.for_goods(goods) if goods else UnitSpec()

        ordered = Quantity(item.box_quantity, item.pack_quantity, item.piece_quantity)
        ordered_pieces = to_pieces(ordered, *ratios)
        received_pieces = to_pieces(self.ledger.sum_arrivals_for_order(base_id, order.id), *ratios)
        remaining_pieces = max(ordered_pieces - received_pieces, 0)
        received = from_pieces(received_pieces, *ratios)
        remaining = from_pieces(remaining_pieces, *ratios)

        return RemainingQuantity(
            purchase_order_id=order.id,
            goods_id=item.goods_id,
            ordered_box=ordered.box,
            ordered_pack=ordered.pack,
            ordered_piece=ordered.piece,
            received_box=received.box,
            received_pack=received.pack,
            received_piece=received.piece,
            remaining_box=remaining.box,
            remaining_pack=remaining.pack,
            remaining_piece=remaining.piece,
            ordered_pieces=ordered_pieces,
            received_pieces=received_pieces,
            remaining_pieces=remaining_pieces,
        )

    def create_arrival_record(
        self, base_id: int, data: ArrivalCreate, user_id: Optional[str] = None
    ) -> ArrivalResponse:
        """Book an arrival, bounded by the purchase order's ordered quantity."""
        order, item = self._get_order_item(base_id, data.purchase_order_id)
        goods = self.db.get(Goods, item.goods_id)
        if goods is None:
            raise NotFoundError("Goods", item.goods_id)

        location = self.db.get(Location, data.location_id)
        if location is None or location.base_id != base_id:
            raise NotFoundError("Location", data.location_id, base_id)
        handler = self.db.get(Personnel, data.handler_id)
        if handler is None or handler.base_id != base_id:
            raise NotFoundError("Handler", data.handler_id, base_id)

        ratios = UnitSpec.for_goods(goods)
        requested = Quantity(data.box_quantity, data.pack_quantity, data.piece_quantity)
        requested_pieces = to_pieces(requested, *ratios)
        if requested_pieces <= 0:
            raise DomainValidationError("Arrival quantity must be greater than zero")

        ordered = Quantity(item.box_quantity, item.pack_quantity, item.piece_quantity)
        ordered_pieces = to_pieces(ordered, *ratios)
        received_pieces = to_pieces(self.ledger.sum_arrivals_for_order(base_id, order.id), *ratios)
        if received_pieces + requested_pieces > ordered_pieces:
            remaining = from_pieces(max(ordered_pieces - received_pieces, 0), *ratios)
            raise ArrivalExceedsOrderError(
                ordered=format_quantity(ordered),
                received=format_quantity(from_pieces(received_pieces, *ratios)),
                requested=format_quantity(requested),
                remaining=format_quantity(remaining),
            )

        record = ArrivalRecord(
            base_id=base_id,
            goods_id=goods.id,
            purchase_order_id=order.id,
            location_id=location.id,
            handler_id=handler.id,
            arrival_date=data.arrival_date,
            box_quantity=requested.box,
            pack_quantity=requested.pack,
            piece_quantity=requested.piece,
            logistics_fee=data.logistics_fee,
            notes=data.notes,
            created_by=user_id,
        )
        self.db.add(record)
        commit_or_raise(
            self.db, "create arrival record",
            base_id=base_id, purchase_order_id=order.id, goods_id=goods.id,
        )
        self.db.refresh(record)
        self.stock.clear_cache(base_id)
        logger.info(
            "Arrival recorded: record=%s base=%s order=%s goods=%s qty=%s user=%s",
            record.id, base_id, order.id, goods.id, format_quantity(requested), user_id,
        )

        self._update_cost_after_arrival(base_id, record, item, ratios)
        return self._to_response(record)

    def _base_stock_pieces(self, base_id: int, goods_id: str, ratios: UnitSpec) -> int:
        """Pieces on hand across every location of the base, inactive ones included."""
        location_ids = self.db.query(Location.id).filter(Location.base_id == base_id).all()
        return sum(
            to_pieces(self.ledger.read(base_id, goods_id, location_id).delta(), *ratios)
            for (location_id,) in location_ids
        )

    def _update_cost_after_arrival(
        self, base_id: int, record: ArrivalRecord, item: PurchaseOrderItem, ratios: UnitSpec
    ) -> None:
        """Blend the arrival into the average cost; failures are logged, not raised."""
        goods_id = record.goods_id
        try:
            arrival = Quantity(record.box_quantity, record.pack_quantity, record.piece_quantity)
            stock_after = self._base_stock_pieces(base_id, goods_id, ratios)
            stock_before = max(stock_after - to_pieces(arrival, *ratios), 0)
            self.costs.update_average_cost(
                goods_id,
                base_id,
                arrival_unit_cost=to_decimal(item.unit_price),
                arrival_qty=to_box_equivalent(arrival, *ratios),
                current_stock_qty=Decimal(stock_before) / Decimal(ratios.pieces_per_box),
                logistics_fee=to_decimal(record.logistics_fee),
            )
        except (LivebaseError, SQLAlchemyError, ArithmeticError):
            logger.error(
                "Average cost update failed after arrival %s (base=%s goods=%s); arrival kept",
                record.id, base_id, goods_id, exc_info=True,
            )

    def delete_arrival_record(self, base_id: int, record_id: str, user_id: Optional[str] = None) -> None:
        """Delete an arrival and rebuild the goods' average cost."""
        record = self.db.get(ArrivalRecord, record_id)
        if record is None or record.base_id != base_id:
            raise NotFoundError("Arrival record", record_id, base_id)
        goods_id = record.goods_id

        self.db.delete(record)
        commit_or_raise(self.db, "delete arrival record", base_id=base_id, record_id=record_id)
        self.stock.clear_cache(base_id)
        logger.info("Arrival deleted: record=%s base=%s goods=%s user=%s", record_id, base_id, goods_id, user_id)

        try:
            self.costs.recalculate_average_cost(goods_id, base_id)
        except (LivebaseError, SQLAlchemyError, ArithmeticError):
            logger.error(
                "Average cost recalculation failed after deleting arrival %s (base=%s goods=%s)",
                record_id, base_id, goods_id, exc_info=True,
            )

    def _to_response(self, record: ArrivalRecord) -> ArrivalResponse:
        goods = record.goods
        return ArrivalResponse(
            id=record.id,
            base_id=record.base_id,
            goods_id=record.goods_id,
            goods_code=goods.code if goods else "",
            goods_name=(
                display_name(goods.name, goods.name_i18n, default_locale=self.config.default_locale)
                if goods else ""
            ),
            purchase_order_id=record.purchase_order_id,
            purchase_order_code=record.purchase_order.code if record.purchase_order else "",
            location_id=record.location_id,
            location_name=record.location.name if record.location else "",
            handler_id=record.handler_id,
            handler_name=record.handler.name if record.handler else "",
            arrival_date=record.arrival_date,
            box_quantity=record.box_quantity,
            pack_quantity=record.pack_quantity,
            piece_quantity=record.piece_quantity,
            logistics_fee=to_decimal(record.logistics_fee),
            notes=record.notes,
            created_by=record.created_by,
            created_at=record.created_at,
        )

    def get_base_arrival_records(
        self, base_id: int, params: Optional[ArrivalListParams] = None
    ) -> PaginatedResponse[ArrivalResponse]:
        """Arrivals of a base, newest first."""
        params = params or ArrivalListParams()
        query = self.db.query(ArrivalRecord).filter(ArrivalRecord.base_id == base_id)
        if params.goods_id:
            query = query.filter(ArrivalRecord.goods_id == params.goods_id)
        if params.purchase_order_id:
            query = query.filter(ArrivalRecord.purchase_order_id == params.purchase_order_id)
        if params.location_id is not None:
            query = query.filter(ArrivalRecord.location_id == params.location_id)
        if params.handler_id:
            query = query.filter(ArrivalRecord.handler_id == params.handler_id)
        if params.start_date:
            query = query.filter(ArrivalRecord.arrival_date >= params.start_date)
        if params.end_date:
            query = query.filter(ArrivalRecord.arrival_date <= params.end_date)

        query = query.order_by(ArrivalRecord.arrival_date.desc(), ArrivalRecord.created_at.desc())
        records, total = paginate_query(query, params.skip, params.limit)
        return PaginatedResponse[ArrivalResponse].create(
            items=[self._to_response(r) for r in records],
            total=total,
            skip=params.skip,
            limit=params.limit,
        )

    def get_arrival_stats(self, base_id: int, today: Optional[date] = None) -> ArrivalStats:
        today = today or date.today()
        month_start = today.replace(day=1)

        def count_since(since: Optional[date] = None) -> int:
            query = self.db.query(func.count(ArrivalRecord.id)).filter(ArrivalRecord.base_id == base_id)
            if since is not None:
                query = query.filter(ArrivalRecord.arrival_date >= since)
            return query.scalar() or 0

        return ArrivalStats(
            total_records=count_since(),
            today_records=count_since(today),
            this_month_records=count_since(month_start),
        )
