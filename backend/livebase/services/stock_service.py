"""Stock Service - current stock derived from the ledgers.

Stock is never stored. For one (base, goods, location):

    current = arrivals + transfers in - transfers out - stock-outs - consumptions

summed column by column (box, pack and piece separately). ``total_pieces`` is
flattened from that raw delta before any normalization, so it is always the
exact absolute quantity; the display triple is then passed through
``normalize_borrow`` which only reshapes it.

The base-wide snapshot (every goods active for the base across its active
warehouses) is expensive and is served from an injected ``StockCache`` keyed
by (base_id, location_id). Filters, sorting and pagination are applied to the
cached full result, never pushed into the computation. There is no lock
around a recompute: concurrent cold reads may both compute and overwrite the
same entry.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from livebase.core.cache import (
    CacheKeys,
    StockCache,
    get_stock_cache,
    stock_snapshot_key,
    stock_snapshot_prefix,
)
from livebase.core.config import Settings, settings as default_settings
from livebase.core.exceptions import NotFoundError
from livebase.core.i18n import LocalizedName, name_matches, parse_name, resolve_name
from livebase.models.arrival import ArrivalRecord
from livebase.models.global_setting import GlobalSetting
from livebase.models.goods import Goods, GoodsLocalSetting
from livebase.models.location import Location, LocationType, WAREHOUSE_TYPES
from livebase.models.purchase import PurchaseOrderItem
from livebase.schemas.pagination import PaginationParams, paginate_list
from livebase.schemas.stock import (
    STATUS_PRIORITY,
    BaseStockStats,
    BatchStockCheckDetail,
    BatchStockCheckResult,
    BatchStockItem,
    LocationStock,
    LocationStockItem,
    LowStockThreshold,
    RealTimeStockFilters,
    RealTimeStockItem,
    RealTimeStockPage,
    RequiredQuantity,
    StockCheckResult,
    StockSnapshot,
    StockStatus,
    StockSummary,
    WarehouseInfo,
)
from livebase.services.goods_cost_service import GoodsCostService, to_decimal
from livebase.services.ledger_reader import LedgerReader
from livebase.services.units import (
    Quantity,
    UnitSpec,
    convert_pieces_to_unit,
    normalize_borrow,
    to_box_equivalent,
    to_pieces,
)

logger = logging.getLogger(__name__)


class StockService:
    """Service for derived stock quantities and the cached base snapshot."""

    def __init__(
        self,
        db: Session,
        cache: Optional[StockCache] = None,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.config = config or default_settings
        self.cache = cache if cache is not None else get_stock_cache()
        self.ledger = LedgerReader(db)
        self.costs = GoodsCostService(db, self.config)

    # ===== LOOKUPS =====

    def _get_goods(self, goods_id: str) -> Goods:
        goods = self.db.get(Goods, goods_id)
        if goods is None:
            raise NotFoundError("Goods", goods_id)
        return goods

    def _get_location(self, base_id: int, location_id: int) -> Location:
        location = self.db.get(Location, location_id)
        if location is None or location.base_id != base_id:
            raise NotFoundError("Location", location_id, base_id)
        return location

    def _active_locations(self, base_id: int, warehouses_only: bool = False) -> List[Location]:
        query = self.db.query(Location).filter(
            Location.base_id == base_id,
            Location.is_active.is_(True),
        )
        if warehouses_only:
            query = query.filter(Location.type.in_(WAREHOUSE_TYPES))
        return query.order_by(Location.id).all()

    def _active_goods(self, base_id: int) -> List[Goods]:
        return (
            self.db.query(Goods)
            .join(GoodsLocalSetting, GoodsLocalSetting.goods_id == Goods.id)
            .filter(
                GoodsLocalSetting.base_id == base_id,
                GoodsLocalSetting.is_active.is_(True),
            )
            .order_by(Goods.code)
            .all()
        )

    # ===== CORE: CURRENT STOCK =====

    def _compute_stock(self, base_id: int, goods_id: str, location_id: int, ratios: UnitSpec) -> StockSummary:
        totals = self.ledger.read(base_id, goods_id, location_id)
        raw = totals.delta()
        total_pieces = to_pieces(raw, *ratios)
        current = normalize_borrow(raw.box, raw.pack, raw.piece, *ratios)

        if total_pieces < 0:
            logger.warning(
                "Negative stock for goods %s at location %s in base %s: %d pieces "
                "(ledgers are inconsistent)",
                goods_id, location_id, base_id, total_pieces,
            )

        return StockSummary(
            arrival_box=totals.arrivals.box,
            arrival_pack=totals.arrivals.pack,
            arrival_piece=totals.arrivals.piece,
            transfer_in_box=totals.transfers_in.box,
            transfer_in_pack=totals.transfers_in.pack,
            transfer_in_piece=totals.transfers_in.piece,
            transfer_out_box=totals.transfers_out.box,
            transfer_out_pack=totals.transfers_out.pack,
            transfer_out_piece=totals.transfers_out.piece,
            stock_out_box=totals.stock_outs.box,
            stock_out_pack=totals.stock_outs.pack,
            stock_out_piece=totals.stock_outs.piece,
            consumption_box=totals.consumptions.box,
            consumption_pack=totals.consumptions.pack,
            consumption_piece=totals.consumptions.piece,
            current_box=current.box,
            current_pack=current.pack,
            current_piece=current.piece,
            total_pieces=total_pieces,
        )

    def get_stock(self, base_id: int, goods_id: str, location_id: int) -> StockSummary:
        """Current stock of one goods at one location."""
        goods = self._get_goods(goods_id)
        return self._compute_stock(base_id, goods_id, location_id, UnitSpec.for_goods(goods))

    def get_goods_stock_by_locations(self, base_id: int, goods_id: str) -> List[LocationStock]:
        """Stock of a goods at every active location of the base."""
        ratios = UnitSpec.for_goods(self._get_goods(goods_id))
        return [
            LocationStock(
                location_id=location.id,
                location_name=location.name,
                stock=self._compute_stock(base_id, goods_id, location.id, ratios),
            )
            for location in self._active_locations(base_id)
        ]

    def check_stock_sufficient(
        self,
        base_id: int,
        goods_id: str,
        location_id: int,
        box: int,
        pack: int,
        piece: int = 0,
    ) -> StockCheckResult:
        """Compare a required quantity with the available stock, in pieces."""
        ratios = UnitSpec.for_goods(self._get_goods(goods_id))
        available = self._compute_stock(base_id, goods_id, location_id, ratios)
        required_pieces = to_pieces(Quantity(box, pack, piece), *ratios)
        return StockCheckResult(
            sufficient=available.total_pieces >= required_pieces,
            available=available,
            required=RequiredQuantity(box=box, pack=pack, piece=piece, total_pieces=required_pieces),
        )

    def batch_check_stock(
        self, base_id: int, location_id: int, items: List[BatchStockItem]
    ) -> BatchStockCheckResult:
        """Sufficiency of several goods at one location."""
        details = []
        for item in items:
            goods = self._get_goods(item.goods_id)
            check = self.check_stock_sufficient(
                base_id, item.goods_id, location_id,
                item.box_quantity, item.pack_quantity, item.piece_quantity,
            )
            details.append(BatchStockCheckDetail(
                goods_id=item.goods_id,
                goods_name=resolve_name(
                    parse_name(goods.name, goods.name_i18n, self.config.default_locale),
                    default_locale=self.config.default_locale,
                ),
                sufficient=check.sufficient,
                required_box=item.box_quantity,
                required_pack=item.pack_quantity,
                required_piece=item.piece_quantity,
                available_box=check.available.current_box,
                available_pack=check.available.current_pack,
                available_piece=check.available.current_piece,
            ))
        return BatchStockCheckResult(
            all_sufficient=all(d.sufficient for d in details),
            details=details,
        )

    def get_location_stock(self, base_id: int, location_id: int) -> List[LocationStockItem]:
        """Stock of every goods with ledger activity at a location."""
        location = self._get_location(base_id, location_id)
        goods_ids = self.ledger.goods_with_activity(base_id, location_id)
        costs = self.costs.get_batch_average_cost(goods_ids, base_id)

        results = []
        for goods_id in goods_ids:
            goods = self.db.get(Goods, goods_id)
            if goods is None:
                continue
            ratios = UnitSpec.for_goods(goods)
            stock = self._compute_stock(base_id, goods_id, location_id, ratios)
            name = parse_name(goods.name, goods.name_i18n, self.config.default_locale)
            results.append(LocationStockItem(
                goods_id=goods.id,
                goods_code=goods.code,
                goods_name=resolve_name(name, default_locale=self.config.default_locale),
                goods_name_i18n=name.translations if isinstance(name, LocalizedName) else None,
                category_code=goods.category.code if goods.category else "",
                category_name=goods.category.name if goods.category else "",
                pack_per_box=ratios.pack_per_box,
                piece_per_pack=ratios.piece_per_pack,
                location_id=location.id,
                location_name=location.name,
                box_quantity=stock.current_box,
                pack_quantity=stock.current_pack,
                piece_quantity=stock.current_piece,
                total_pieces=stock.total_pieces,
                average_cost=costs.get(goods_id, Decimal("0")),
            ))
        return results

    def get_main_warehouse(self, base_id: int) -> Optional[WarehouseInfo]:
        location = self.db.query(Location).filter(
            Location.base_id == base_id,
            Location.type == LocationType.MAIN_WAREHOUSE,
            Location.is_active.is_(True),
        ).order_by(Location.id).first()
        if location is None:
            return None
        return WarehouseInfo(id=location.id, name=location.name, type=location.type.value)

    def get_warehouses(self, base_id: int) -> List[WarehouseInfo]:
        """Active warehouses, main warehouse first, then by name."""
        locations = self._active_locations(base_id, warehouses_only=True)
        locations.sort(key=lambda loc: (loc.type != LocationType.MAIN_WAREHOUSE, loc.name))
        return [WarehouseInfo(id=loc.id, name=loc.name, type=loc.type.value) for loc in locations]

    # ===== LOW-STOCK THRESHOLD =====

    def _global_threshold(self) -> Optional[LowStockThreshold]:
        setting = self.db.query(GlobalSetting).filter(
            GlobalSetting.key == self.config.low_stock_setting_key,
            GlobalSetting.is_active.is_(True),
        ).first()
        if setting is None or not isinstance(setting.value, dict):
            return None
        try:
            threshold = LowStockThreshold.model_validate(setting.value)
        except ValidationError as e:
            logger.warning(
                "Ignoring malformed global setting %s=%r: %s",
                setting.key, setting.value, e,
            )
            return None
        return threshold if threshold.enabled else None

    def get_low_stock_threshold(self, base_id: int, goods_id: str) -> Optional[LowStockThreshold]:
        """Per-goods threshold if enabled, else the enabled global one, else None."""
        local = self.db.query(GoodsLocalSetting).filter(
            GoodsLocalSetting.goods_id == goods_id,
            GoodsLocalSetting.base_id == base_id,
        ).first()
        if local is not None and local.low_stock_enabled and local.low_stock_value is not None:
            return LowStockThreshold(
                value=local.low_stock_value,
                unit=local.low_stock_unit or "box",
                enabled=True,
            )
        return self._global_threshold()

    def is_low_stock(
        self,
        base_id: int,
        goods_id: str,
        box: int,
        pack: int,
        piece: int,
        pack_per_box: int,
        piece_per_pack: int,
    ) -> bool:
        """Whether stock is strictly below the resolved threshold.

        Without any enabled threshold, fewer than ``low_stock_fallback_boxes``
        boxes counts as low.
        """
        threshold = self.get_low_stock_threshold(base_id, goods_id)
        if threshold is None:
            return box < self.config.low_stock_fallback_boxes
        total_pieces = to_pieces(Quantity(box, pack, piece), pack_per_box, piece_per_pack)
        in_unit = convert_pieces_to_unit(total_pieces, threshold.unit, pack_per_box, piece_per_pack)
        return in_unit < threshold.value

    # ===== BASE SNAPSHOT =====

    def _fallback_unit_price(self, base_id: int, goods_id: str) -> Decimal:
        """Purchase price of the latest arrival, used before any average exists."""
        latest = self.db.query(ArrivalRecord).filter(
            ArrivalRecord.goods_id == goods_id,
            ArrivalRecord.base_id == base_id,
        ).order_by(ArrivalRecord.created_at.desc(), ArrivalRecord.arrival_date.desc()).first()
        if latest is None:
            return Decimal("0")
        item = self.db.query(PurchaseOrderItem).filter(
            PurchaseOrderItem.purchase_order_id == latest.purchase_order_id,
            PurchaseOrderItem.goods_id == goods_id,
        ).order_by(PurchaseOrderItem.id).first()
        return to_decimal(item.unit_price) if item else Decimal("0")

    def _compute_snapshot(self, base_id: int, location_id: Optional[int]) -> StockSnapshot:
        started = datetime.now(timezone.utc)
        logger.info("Computing stock snapshot for base %s (location %s)", base_id, location_id)

        if location_id is not None:
            locations = [self._get_location(base_id, location_id)]
        else:
            locations = self._active_locations(base_id, warehouses_only=True)
        goods_list = self._active_goods(base_id)
        costs = self.costs.get_batch_average_cost([g.id for g in goods_list], base_id)

        items = []
        for goods in goods_list:
            ratios = UnitSpec.for_goods(goods)
            box = pack = piece = total_pieces = 0
            holding = []
            for location in locations:
                stock = self._compute_stock(base_id, goods.id, location.id, ratios)
                if stock.total_pieces > 0:
                    holding.append(location.name)
                box += stock.current_box
                pack += stock.current_pack
                piece += stock.current_piece
                total_pieces += stock.total_pieces

            if location_id is not None and not holding:
                continue

            cost_per_box = costs.get(goods.id, Decimal("0"))
            if not cost_per_box:
                cost_per_box = self._fallback_unit_price(base_id, goods.id)
            cost_per_pack = cost_per_box / ratios.pack_per_box
            cost_per_piece = cost_per_pack / ratios.piece_per_pack
            total_value = to_box_equivalent(Quantity(box, pack, piece), *ratios) * cost_per_box

            is_low = self.is_low_stock(base_id, goods.id, box, pack, piece, *ratios)
            if total_pieces <= 0:
                status = StockStatus.OUT_OF_STOCK
            elif is_low:
                status = StockStatus.LOW_STOCK
            else:
                status = StockStatus.NORMAL

            name = parse_name(goods.name, goods.name_i18n, self.config.default_locale)
            category = goods.category
            category_name = (
                parse_name(category.name, category.name_i18n, self.config.default_locale)
                if category else None
            )
            items.append(RealTimeStockItem(
                goods_id=goods.id,
                goods_code=goods.code,
                goods_name=resolve_name(name, default_locale=self.config.default_locale),
                goods_name_i18n=name.translations if isinstance(name, LocalizedName) else None,
                category_code=category.code if category else "",
                category_name=(
                    resolve_name(category_name, default_locale=self.config.default_locale)
                    if category_name else ""
                ),
                category_name_i18n=(
                    category_name.translations if isinstance(category_name, LocalizedName) else None
                ),
                pack_per_box=ratios.pack_per_box,
                piece_per_pack=ratios.piece_per_pack,
                stock_box=box,
                stock_pack=pack,
                stock_piece=piece,
                total_pieces=total_pieces,
                warehouse_names=", ".join(holding),
                avg_price_per_box=self.costs.quantize(cost_per_box),
                avg_price_per_pack=self.costs.quantize(cost_per_pack),
                avg_price_per_piece=self.costs.quantize(cost_per_piece),
                total_value=self.costs.quantize(total_value),
                is_low_stock=is_low,
                stock_status=status,
            ))

        elapsed = (datetime.now(timezone.utc) - started).total_seconds()
        logger.info(
            "Stock snapshot for base %s (location %s): %d goods in %.3fs",
            base_id, location_id, len(items), elapsed,
        )
        return StockSnapshot(computed_at=started, items=items)

    def _get_snapshot(self, base_id: int, location_id: Optional[int]) -> StockSnapshot:
        key = stock_snapshot_key(base_id, location_id)
        cached = self.cache.get(key)
        if cached is not None:
            return StockSnapshot.model_validate(cached)
        snapshot = self._compute_snapshot(base_id, location_id)
        self.cache.set(key, snapshot.model_dump(mode="json"), self.config.stock_cache_ttl_seconds)
        return snapshot

    def _filter_rows(self, rows: List[RealTimeStockItem], filters: RealTimeStockFilters):
        if filters.goods_name:
            rows = [
                r for r in rows
                if name_matches(parse_name(r.goods_name_i18n or r.goods_name), filters.goods_name)
            ]
        if filters.goods_code:
            needle = filters.goods_code.strip().lower()
            rows = [r for r in rows if needle in r.goods_code.lower()]
        if filters.category_codes:
            codes = set(filters.category_codes)
            rows = [r for r in rows if r.category_code in codes]
        if filters.stock_statuses:
            statuses = set(filters.stock_statuses)
            rows = [r for r in rows if r.stock_status in statuses]
        if filters.stock_threshold is not None:
            rows = [
                r for r in rows
                if convert_pieces_to_unit(
                    r.total_pieces, filters.stock_unit, r.pack_per_box, r.piece_per_pack
                ) < filters.stock_threshold
            ]
        return rows

    @staticmethod
    def _sort_rows(rows: List[RealTimeStockItem], filters: RealTimeStockFilters):
        if filters.sort_field is None:
            return sorted(rows, key=lambda r: (STATUS_PRIORITY[r.stock_status], r.goods_code))
        rows = sorted(rows, key=lambda r: r.goods_code)
        if filters.sort_field == "stock_status":
            key = lambda r: STATUS_PRIORITY[r.stock_status]  # noqa: E731
        else:
            key = lambda r: getattr(r, filters.sort_field)  # noqa: E731
        return sorted(rows, key=key, reverse=filters.sort_order == "desc")

    def get_base_real_time_stock(
        self,
        base_id: int,
        filters: Optional[RealTimeStockFilters] = None,
        pagination: Optional[PaginationParams] = None,
    ) -> RealTimeStockPage:
        """Filtered, sorted page of the base snapshot.

        Rows default to status priority (out of stock, low, normal) then goods
        code. ``last_updated`` is when the underlying snapshot was computed.
        """
        filters = filters or RealTimeStockFilters()
        pagination = pagination or PaginationParams(limit=self.config.default_page_size)

        snapshot = self._get_snapshot(base_id, filters.location_id)
        rows = self._sort_rows(self._filter_rows(snapshot.items, filters), filters)
        page, total = paginate_list(rows, pagination.skip, pagination.limit)

        if filters.locale:
            page = [
                row.model_copy(update={
                    "goods_name": resolve_name(
                        parse_name(row.goods_name_i18n or row.goods_name),
                        filters.locale,
                        self.config.default_locale,
                    ),
                })
                for row in page
            ]

        return RealTimeStockPage.create(
            items=page,
            total=total,
            skip=pagination.skip,
            limit=pagination.limit,
            last_updated=snapshot.computed_at,
        )

    def get_base_stock_stats(self, base_id: int) -> BaseStockStats:
        """Totals over the base snapshot."""
        snapshot = self._get_snapshot(base_id, None)
        total_value = sum((row.total_value for row in snapshot.items), Decimal("0"))
        return BaseStockStats(
            total_goods=len(snapshot.items),
            total_value=self.costs.quantize(total_value),
            low_stock_count=sum(1 for r in snapshot.items if r.stock_status == StockStatus.LOW_STOCK),
            out_of_stock_count=sum(1 for r in snapshot.items if r.stock_status == StockStatus.OUT_OF_STOCK),
        )

    # ===== CACHE =====

    def clear_cache(self, base_id: int, location_id: Optional[int] = None) -> None:
        """Drop cached snapshots of a base, or of one location plus the base-wide one."""
        if location_id is None:
            self.cache.clear_prefix(stock_snapshot_prefix(base_id))
        else:
            self.cache.delete(stock_snapshot_key(base_id, location_id))
            self.cache.delete(stock_snapshot_key(base_id))
        logger.debug("Stock snapshot cache cleared for base %s (location %s)", base_id, location_id)

    def clear_all_cache(self) -> None:
        self.cache.clear_prefix(f"{CacheKeys.STOCK_SNAPSHOT}:")
        logger.info("Stock snapshot cache cleared for all bases")
