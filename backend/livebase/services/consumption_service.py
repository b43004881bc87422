"""Consumption Service - opening/closing reconciliation of handler holdings.

A consumption says: the handler held some stock (opening), what is left is
the closing balance, the difference was consumed.

The opening balance of a (goods, handler) is derived, never stored:

    opening = pieces(transfers to the handler)
            - pieces(transfers from the handler out of a LIVE_ROOM)
            - pieces(consumptions already booked for the handler)

Transfers leaving a warehouse are not charged to the handler because
warehouse stock belongs to the location, not the person moving it.

Rules enforced on every write:
- goods, location and handler exist and are active for the base
- closing <= opening (in pieces); consumption can never be negative
- one record per (date, goods, location, handler)
- the average cost per box is snapshotted when the record is created
"""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from livebase.core.cache import StockCache
from livebase.core.config import Settings, settings as default_settings
from livebase.core.exceptions import (
    ClosingExceedsOpeningError,
    ConsumptionInUseError,
    DuplicateConsumptionError,
    NotFoundError,
    PersistenceError,
)
from livebase.core.i18n import name_matches, parse_name, resolve_name
from livebase.db.transaction import commit_or_raise
from livebase.models.anchor_profit import AnchorProfit
from livebase.models.consumption import StockConsumption
from livebase.models.goods import Goods, GoodsLocalSetting
from livebase.models.location import Location
from livebase.models.personnel import Personnel
from livebase.schemas.consumption import (
    ConsumptionCreate,
    ConsumptionImportRow,
    ConsumptionListParams,
    ConsumptionResponse,
    ConsumptionStats,
    ConsumptionUpdate,
    OpeningStock,
)
from livebase.schemas.pagination import PaginatedResponse, paginate_query
from livebase.services.goods_cost_service import GoodsCostService, to_decimal
from livebase.services.ledger_reader import LedgerReader
from livebase.services.stock_service import StockService
from livebase.services.units import Quantity, UnitSpec, format_quantity, from_pieces, to_pieces

logger = logging.getLogger(__name__)


def _violates_period_constraint(error: IntegrityError) -> bool:
    """PostgreSQL names the constraint; SQLite lists the table and columns."""
    message = str(error.orig)
    return (
        "uq_consumption_period" in message
        or "UNIQUE constraint failed: stock_consumptions.consumption_date" in message
    )


class ConsumptionService:
    """Service for handler consumption records."""

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

    # ===== VALIDATION =====

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

    def _get_active_location(self, base_id: int, location_id: int) -> Location:
        location = self.db.get(Location, location_id)
        if location is None or location.base_id != base_id or not location.is_active:
            raise NotFoundError("Location", location_id, base_id)
        return location

    def _get_active_handler(self, base_id: int, handler_id: str) -> Personnel:
        handler = self.db.get(Personnel, handler_id)
        if handler is None or handler.base_id != base_id or not handler.is_active:
            raise NotFoundError("Handler", handler_id, base_id)
        return handler

    def _get_record(self, base_id: int, record_id: str) -> StockConsumption:
        record = self.db.get(StockConsumption, record_id)
        if record is None or record.base_id != base_id:
            raise NotFoundError("Consumption record", record_id, base_id)
        return record

    def _ensure_unique(
        self,
        consumption_date: date,
        goods_id: str,
        location_id: int,
        handler_id: str,
        exclude_id: Optional[str] = None,
    ) -> None:
        query = self.db.query(StockConsumption.id).filter(
            StockConsumption.consumption_date == consumption_date,
            StockConsumption.goods_id == goods_id,
            StockConsumption.location_id == location_id,
            StockConsumption.handler_id == handler_id,
        )
        if exclude_id:
            query = query.filter(StockConsumption.id != exclude_id)
        if query.first() is not None:
            raise DuplicateConsumptionError(consumption_date, goods_id, location_id, handler_id)

    @staticmethod
    def _derive_consumed(opening: Quantity, closing: Quantity, ratios: UnitSpec) -> Quantity:
        opening_total = to_pieces(opening, *ratios)
        closing_total = to_pieces(closing, *ratios)
        if closing_total > opening_total:
            raise ClosingExceedsOpeningError(format_quantity(opening), format_quantity(closing))
        return from_pieces(opening_total - closing_total, *ratios)

    def _commit(self, operation: str, record: StockConsumption) -> None:
        # Rollback expires the record, so capture what the errors need first
        period = (record.consumption_date, record.goods_id, record.location_id, record.handler_id)
        context = {"record_id": record.id, "base_id": record.base_id}
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if _violates_period_constraint(e):
                logger.warning("Duplicate consumption period during %s: %s", operation, e.orig)
                raise DuplicateConsumptionError(*period) from e
            logger.error("Integrity error during consumption %s %s", operation, context, exc_info=True)
            raise PersistenceError(f"consumption {operation}", **context) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Database error during consumption %s %s", operation, context, exc_info=True)
            raise PersistenceError(f"consumption {operation}", **context) from e

    # ===== OPENING STOCK =====

    def get_opening_stock(
        self,
        base_id: int,
        goods_id: str,
        handler_id: str,
        exclude_consumption_id: Optional[str] = None,
    ) -> OpeningStock:
        """Ledger-derived balance a handler holds of a goods."""
        goods = self.db.get(Goods, goods_id)
        if goods is None:
            raise NotFoundError("Goods", goods_id)
        ratios = UnitSpec.for_goods(goods)

        received = self.ledger.sum_transfers_to_handler(base_id, goods_id, handler_id)
        handed_over = self.ledger.sum_transfers_from_handler(
            base_id, goods_id, handler_id, live_room_only=True
        )
        consumed = self.ledger.sum_consumptions_for_handler(
            base_id, goods_id, handler_id, exclude_id=exclude_consumption_id
        )
        total = to_pieces(received, *ratios) - to_pieces(handed_over, *ratios) - to_pieces(consumed, *ratios)
        opening = from_pieces(total, *ratios)

        return OpeningStock(
            opening_box_qty=opening.box,
            opening_pack_qty=opening.pack,
            opening_piece_qty=opening.piece,
            total_pieces=total,
            unit_price_per_box=self.costs.get_average_cost(goods_id, base_id),
            pack_per_box=ratios.pack_per_box,
            piece_per_pack=ratios.piece_per_pack,
        )

    def _derived_opening(self, base_id: int, goods_id: str, handler_id: str,
                         exclude_id: Optional[str] = None) -> Quantity:
        opening = self.get_opening_stock(base_id, goods_id, handler_id, exclude_id)
        return Quantity(opening.opening_box_qty, opening.opening_pack_qty, opening.opening_piece_qty)

    # ===== WRITES =====

    def _create_record(
        self,
        base_id: int,
        goods: Goods,
        location: Location,
        handler: Personnel,
        consumption_date: date,
        opening: Quantity,
        closing: Quantity,
        notes: Optional[str],
        user_id: Optional[str],
        operation: str,
    ) -> StockConsumption:
        consumed = self._derive_consumed(opening, closing, UnitSpec.for_goods(goods))
        self._ensure_unique(consumption_date, goods.id, location.id, handler.id)

        record = StockConsumption(
            base_id=base_id,
            goods_id=goods.id,
            location_id=location.id,
            handler_id=handler.id,
            consumption_date=consumption_date,
            opening_box_qty=opening.box,
            opening_pack_qty=opening.pack,
            opening_piece_qty=opening.piece,
            closing_box_qty=closing.box,
            closing_pack_qty=closing.pack,
            closing_piece_qty=closing.piece,
            box_quantity=consumed.box,
            pack_quantity=consumed.pack,
            piece_quantity=consumed.piece,
            unit_price_per_box=self.costs.get_average_cost(goods.id, base_id),
            notes=notes,
            created_by=user_id,
            updated_by=user_id,
        )
        self.db.add(record)
        self._commit(operation, record)
        self.db.refresh(record)
        self.stock.clear_cache(base_id)

        logger.info(
            "Consumption %s (%s): record=%s base=%s goods=%s handler=%s consumed=%s user=%s",
            operation, consumption_date, record.id, base_id, goods.id, handler.id,
            format_quantity(consumed), user_id,
        )
        return record

    def create_consumption(
        self, base_id: int, data: ConsumptionCreate, user_id: Optional[str] = None
    ) -> ConsumptionResponse:
        """Book a consumption. Without ``opening`` the ledger-derived balance is used."""
        goods = self._get_active_goods(base_id, data.goods_id)
        location = self._get_active_location(base_id, data.location_id)
        handler = self._get_active_handler(base_id, data.handler_id)

        if data.opening is not None:
            opening = Quantity(data.opening.box, data.opening.pack, data.opening.piece)
        else:
            opening = self._derived_opening(base_id, goods.id, handler.id)
        closing = Quantity(data.closing.box, data.closing.pack, data.closing.piece)

        record = self._create_record(
            base_id, goods, location, handler, data.consumption_date,
            opening, closing, data.notes, user_id, "create",
        )
        return self._to_response(record)

    def _find_goods_by_name(self, base_id: int, goods_name: str) -> Goods:
        rows = (
            self.db.query(Goods, GoodsLocalSetting.alias)
            .join(GoodsLocalSetting, GoodsLocalSetting.goods_id == Goods.id)
            .filter(
                GoodsLocalSetting.base_id == base_id,
                GoodsLocalSetting.is_active.is_(True),
            )
            .order_by(Goods.code)
            .all()
        )
        matches = [
            goods for goods, alias in rows
            if name_matches(parse_name(goods.name, goods.name_i18n), goods_name, exact=True)
            or (alias and alias.strip().lower() == goods_name.lower())
        ]
        if not matches:
            raise NotFoundError("Goods", goods_name, base_id)
        if len(matches) > 1:
            logger.warning(
                "Goods name %r is ambiguous in base %s (%d matches), using %s",
                goods_name, base_id, len(matches), matches[0].code,
            )
        return matches[0]

    def import_consumption(
        self, base_id: int, data: ConsumptionImportRow, user_id: Optional[str] = None
    ) -> ConsumptionResponse:
        """Book a consumption from a spreadsheet row.

        References are resolved by name and the opening balance always comes
        from the ledgers.
        """
        goods = self._find_goods_by_name(base_id, data.goods_name)
        location = self.db.query(Location).filter(
            Location.base_id == base_id,
            func.lower(Location.name) == data.location_name.strip().lower(),
            Location.is_active.is_(True),
        ).first()
        if location is None:
            raise NotFoundError("Location", data.location_name, base_id)
        handler = self.db.query(Personnel).filter(
            Personnel.base_id == base_id,
            func.lower(Personnel.name) == data.handler_name.strip().lower(),
            Personnel.is_active.is_(True),
        ).first()
        if handler is None:
            raise NotFoundError("Handler", data.handler_name, base_id)

        opening = self._derived_opening(base_id, goods.id, handler.id)
        closing = Quantity(data.closing.box, data.closing.pack, data.closing.piece)
        record = self._create_record(
            base_id, goods, location, handler, data.consumption_date,
            opening, closing, data.notes, user_id, "import",
        )
        return self._to_response(record)

    def update_consumption(
        self, base_id: int, record_id: str, data: ConsumptionUpdate, user_id: Optional[str] = None
    ) -> ConsumptionResponse:
        """Revalidate and rewrite a record.

        The default opening excludes the record's own prior consumption. The
        cost snapshot is retaken only when the goods change.
        """
        record = self._get_record(base_id, record_id)

        goods = self._get_active_goods(base_id, data.goods_id or record.goods_id)
        location = self._get_active_location(
            base_id, data.location_id if data.location_id is not None else record.location_id
        )
        handler = self._get_active_handler(base_id, data.handler_id or record.handler_id)
        consumption_date = data.consumption_date or record.consumption_date

        if data.opening is not None:
            opening = Quantity(data.opening.box, data.opening.pack, data.opening.piece)
        else:
            opening = self._derived_opening(base_id, goods.id, handler.id, exclude_id=record.id)
        if data.closing is not None:
            closing = Quantity(data.closing.box, data.closing.pack, data.closing.piece)
        else:
            closing = Quantity(record.closing_box_qty, record.closing_pack_qty, record.closing_piece_qty)

        consumed = self._derive_consumed(opening, closing, UnitSpec.for_goods(goods))
        self._ensure_unique(consumption_date, goods.id, location.id, handler.id, exclude_id=record.id)

        goods_changed = goods.id != record.goods_id
        record.goods_id = goods.id
        record.location_id = location.id
        record.handler_id = handler.id
        record.consumption_date = consumption_date
        record.opening_box_qty, record.opening_pack_qty, record.opening_piece_qty = opening
        record.closing_box_qty, record.closing_pack_qty, record.closing_piece_qty = closing
        record.box_quantity, record.pack_quantity, record.piece_quantity = consumed
        if goods_changed:
            record.unit_price_per_box = self.costs.get_average_cost(goods.id, base_id)
        if data.notes is not None:
            record.notes = data.notes
        record.updated_by = user_id

        self._commit("update", record)
        self.db.refresh(record)
        self.stock.clear_cache(base_id)
        logger.info(
            "Consumption updated: record=%s base=%s consumed=%s user=%s",
            record.id, base_id, format_quantity(consumed), user_id,
        )
        return self._to_response(record)

    def delete_consumption(self, base_id: int, record_id: str, user_id: Optional[str] = None) -> None:
        """Delete a record unless an anchor profit depends on it."""
        record = self._get_record(base_id, record_id)
        profit = self.db.query(AnchorProfit.id).filter(
            AnchorProfit.consumption_id == record.id
        ).first()
        if profit is not None:
            raise ConsumptionInUseError(record.id, profit.id)

        self.db.delete(record)
        commit_or_raise(self.db, "delete consumption", base_id=base_id, record_id=record_id)
        self.stock.clear_cache(base_id)
        logger.info("Consumption deleted: record=%s base=%s user=%s", record_id, base_id, user_id)

    # ===== READS =====

    def _to_response(self, record: StockConsumption) -> ConsumptionResponse:
        goods = record.goods
        ratios = UnitSpec.for_goods(goods) if goods else UnitSpec()
        return ConsumptionResponse(
            id=record.id,
            base_id=record.base_id,
            consumption_date=record.consumption_date,
            goods_id=record.goods_id,
            goods_code=goods.code if goods else "",
            goods_name=(
                resolve_name(
                    parse_name(goods.name, goods.name_i18n, self.config.default_locale),
                    default_locale=self.config.default_locale,
                )
                if goods else ""
            ),
            pack_per_box=ratios.pack_per_box,
            piece_per_pack=ratios.piece_per_pack,
            location_id=record.location_id,
            location_name=record.location.name if record.location else "",
            handler_id=record.handler_id,
            handler_name=record.handler.name if record.handler else "",
            opening_box_qty=record.opening_box_qty,
            opening_pack_qty=record.opening_pack_qty,
            opening_piece_qty=record.opening_piece_qty,
            closing_box_qty=record.closing_box_qty,
            closing_pack_qty=record.closing_pack_qty,
            closing_piece_qty=record.closing_piece_qty,
            box_quantity=record.box_quantity,
            pack_quantity=record.pack_quantity,
            piece_quantity=record.piece_quantity,
            unit_price_per_box=to_decimal(record.unit_price_per_box),
            notes=record.notes,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def _goods_ids_matching(self, base_id: int, goods_name: str) -> List[str]:
        booked = select(StockConsumption.goods_id).where(StockConsumption.base_id == base_id)
        rows = self.db.query(Goods).filter(Goods.id.in_(booked)).all()
        return [g.id for g in rows if name_matches(parse_name(g.name, g.name_i18n), goods_name)]

    def get_consumption_list(
        self, base_id: int, params: Optional[ConsumptionListParams] = None
    ) -> PaginatedResponse[ConsumptionResponse]:
        """Records of a base, newest first."""
        params = params or ConsumptionListParams()
        query = self.db.query(StockConsumption).filter(StockConsumption.base_id == base_id)
        if params.goods_id:
            query = query.filter(StockConsumption.goods_id == params.goods_id)
        if params.goods_name:
            query = query.filter(
                StockConsumption.goods_id.in_(self._goods_ids_matching(base_id, params.goods_name))
            )
        if params.location_id is not None:
            query = query.filter(StockConsumption.location_id == params.location_id)
        if params.handler_id:
            query = query.filter(StockConsumption.handler_id == params.handler_id)
        if params.start_date:
            query = query.filter(StockConsumption.consumption_date >= params.start_date)
        if params.end_date:
            query = query.filter(StockConsumption.consumption_date <= params.end_date)

        query = query.order_by(
            StockConsumption.consumption_date.desc(), StockConsumption.created_at.desc()
        )
        records, total = paginate_query(query, params.skip, params.limit)
        return PaginatedResponse[ConsumptionResponse].create(
            items=[self._to_response(r) for r in records],
            total=total,
            skip=params.skip,
            limit=params.limit,
        )

    def get_consumption_stats(self, base_id: int, today: Optional[date] = None) -> ConsumptionStats:
        today = today or date.today()
        total_records, total_goods, box, pack, piece = self.db.query(
            func.count(StockConsumption.id),
            func.count(func.distinct(StockConsumption.goods_id)),
            func.coalesce(func.sum(StockConsumption.box_quantity), 0),
            func.coalesce(func.sum(StockConsumption.pack_quantity), 0),
            func.coalesce(func.sum(StockConsumption.piece_quantity), 0),
        ).filter(StockConsumption.base_id == base_id).one()
        today_records = self.db.query(func.count(StockConsumption.id)).filter(
            StockConsumption.base_id == base_id,
            StockConsumption.consumption_date == today,
        ).scalar()
        return ConsumptionStats(
            total_records=total_records,
            total_goods=total_goods,
            total_box_quantity=box,
            total_pack_quantity=pack,
            total_piece_quantity=piece,
            today_records=today_records or 0,
        )
