"""Stock-out ledger writes."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from livebase.core.cache import StockCache
from livebase.core.config import Settings, settings as default_settings
from livebase.core.exceptions import DomainValidationError, NotFoundError
from livebase.db.transaction import commit_or_raise
from livebase.models.goods import Goods
from livebase.models.location import Location
from livebase.models.stock_out import StockOut
from livebase.schemas.pagination import PaginatedResponse, paginate_query
from livebase.schemas.stock_out import StockOutCreate, StockOutListParams, StockOutResponse
from livebase.services.stock_service import StockService
from livebase.services.units import Quantity, UnitSpec, format_quantity, to_pieces

logger = logging.getLogger(__name__)


class StockOutService:
    """Service for stock-outs (sales-point orders, outbound transfers, manual)."""

    def __init__(
        self,
        db: Session,
        cache: Optional[StockCache] = None,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.config = config or default_settings
        self.stock = StockService(db, cache, self.config)

    def create_stock_out(
        self, base_id: int, data: StockOutCreate, user_id: Optional[str] = None
    ) -> StockOutResponse:
        goods = self.db.get(Goods, data.goods_id)
        if goods is None:
            raise NotFoundError("Goods", data.goods_id)
        location = self.db.get(Location, data.location_id)
        if location is None or location.base_id != base_id:
            raise NotFoundError("Location", data.location_id, base_id)

        requested = Quantity(data.box_quantity, data.pack_quantity, data.piece_quantity)
        if to_pieces(requested, *UnitSpec.for_goods(goods)) <= 0:
            raise DomainValidationError("Stock-out quantity must be greater than zero")

        record = StockOut(
            base_id=base_id,
            goods_id=goods.id,
            location_id=location.id,
            stock_out_date=data.stock_out_date,
            type=data.type,
            target_name=data.target_name,
            related_order_id=data.related_order_id,
            box_quantity=requested.box,
            pack_quantity=requested.pack,
            piece_quantity=requested.piece,
            remark=data.remark,
            created_by=user_id,
        )
        self.db.add(record)
        commit_or_raise(
            self.db, "create stock-out",
            base_id=base_id, goods_id=goods.id, location_id=location.id,
        )
        self.db.refresh(record)
        self.stock.clear_cache(base_id)
        logger.info(
            "Stock-out recorded: record=%s base=%s goods=%s location=%s type=%s qty=%s user=%s",
            record.id, base_id, goods.id, location.id, record.type.value,
            format_quantity(requested), user_id,
        )
        return StockOutResponse.model_validate(record)

    def delete_stock_out(self, base_id: int, record_id: str, user_id: Optional[str] = None) -> None:
        record = self.db.get(StockOut, record_id)
        if record is None or record.base_id != base_id:
            raise NotFoundError("Stock-out", record_id, base_id)
        self.db.delete(record)
        commit_or_raise(self.db, "delete stock-out", base_id=base_id, record_id=record_id)
        self.stock.clear_cache(base_id)
        logger.info("Stock-out deleted: record=%s base=%s user=%s", record_id, base_id, user_id)

    def get_stock_outs(
        self, base_id: int, params: Optional[StockOutListParams] = None
    ) -> PaginatedResponse[StockOutResponse]:
        """Stock-outs of a base, newest first."""
        params = params or StockOutListParams()
        query = self.db.query(StockOut).filter(StockOut.base_id == base_id)
        if params.goods_id:
            query = query.filter(StockOut.goods_id == params.goods_id)
        if params.location_id is not None:
            query = query.filter(StockOut.location_id == params.location_id)
        if params.type:
            query = query.filter(StockOut.type == params.type)
        if params.start_date:
            query = query.filter(StockOut.stock_out_date >= params.start_date)
        if params.end_date:
            query = query.filter(StockOut.stock_out_date <= params.end_date)

        query = query.order_by(StockOut.stock_out_date.desc(), StockOut.created_at.desc())
        records, total = paginate_query(query, params.skip, params.limit)
        return PaginatedResponse[StockOutResponse].create(
            items=[StockOutResponse.model_validate(r) for r in records],
            total=total,
            skip=params.skip,
            limit=params.limit,
        )
