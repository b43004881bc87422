"""Goods Cost Service - moving weighted-average cost per box.

The average is kept in one ``Inventory`` row per (goods, base):

- on arrival, the incoming batch is blended into the running average and its
  logistics fee is attributed entirely to that batch;
- on arrival deletion, the average is rebuilt from every remaining arrival so
  the incremental formula cannot drift.

All quantities are box equivalents (fractional boxes) and every persisted
value is rounded half-up to ``cost_decimal_places``.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from livebase.core.config import Settings, settings as default_settings
from livebase.core.i18n import display_name
from livebase.db.transaction import commit_or_raise
from livebase.models.arrival import ArrivalRecord
from livebase.models.goods import Goods
from livebase.models.inventory import Inventory
from livebase.models.purchase import PurchaseOrderItem
from livebase.schemas.cost import GoodsCostItem
from livebase.services.units import Quantity, UnitSpec, to_box_equivalent

logger = logging.getLogger(__name__)

Number = Union[Decimal, int, float, str]


def to_decimal(value: Optional[Number]) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class GoodsCostService:
    """Service for the per-base average cost of goods."""

    def __init__(self, db: Session, config: Optional[Settings] = None):
        self.db = db
        self.config = config or default_settings

    def quantize(self, value: Decimal) -> Decimal:
        exponent = Decimal(1).scaleb(-self.config.cost_decimal_places)
        return value.quantize(exponent, rounding=ROUND_HALF_UP)

    def _get_inventory(self, goods_id: str, base_id: int) -> Optional[Inventory]:
        return self.db.query(Inventory).filter(
            Inventory.goods_id == goods_id,
            Inventory.base_id == base_id,
        ).first()

    def _save_average_cost(self, goods_id: str, base_id: int, average_cost: Decimal) -> Decimal:
        inventory = self._get_inventory(goods_id, base_id)
        if inventory is None:
            inventory = Inventory(goods_id=goods_id, base_id=base_id, average_cost=average_cost)
            self.db.add(inventory)
        else:
            inventory.average_cost = average_cost
        commit_or_raise(
            self.db, "save average cost", goods_id=goods_id, base_id=base_id,
        )
        return average_cost

    def get_average_cost(self, goods_id: str, base_id: int) -> Decimal:
        """Current average cost per box, 0 when never computed."""
        inventory = self._get_inventory(goods_id, base_id)
        return to_decimal(inventory.average_cost) if inventory else Decimal("0")

    def update_average_cost(
        self,
        goods_id: str,
        base_id: int,
        arrival_unit_cost: Number,
        arrival_qty: Number,
        current_stock_qty: Number,
        logistics_fee: Number = 0,
    ) -> Decimal:
        """
        Blend an incoming batch into the running average.

        Args:
            goods_id: Goods receiving the batch
            base_id: Base owning the inventory row
            arrival_unit_cost: Purchase price per box of the batch
            arrival_qty: Batch size in boxes
            current_stock_qty: Base-wide stock in boxes before the batch
            logistics_fee: Landed cost added once for the whole batch

        Returns:
            The new average cost, rounded and persisted
        """
        unit_cost = to_decimal(arrival_unit_cost)
        qty = to_decimal(arrival_qty)
        stock = to_decimal(current_stock_qty)
        fee = to_decimal(logistics_fee)

        if stock < 0:
            logger.warning(
                "Negative stock %s used for cost update of goods %s in base %s, treating as 0",
                stock, goods_id, base_id,
            )
            stock = Decimal("0")

        if stock == 0 and qty == 0:
            new_cost = Decimal("0")
        elif stock == 0:
            new_cost = (unit_cost * qty + fee) / qty
        else:
            old_cost = self.get_average_cost(goods_id, base_id)
            new_cost = (old_cost * stock + unit_cost * qty + fee) / (stock + qty)

        new_cost = self.quantize(new_cost)
        self._save_average_cost(goods_id, base_id, new_cost)
        logger.info(
            "Average cost updated: goods=%s base=%s cost=%s (batch %s box @ %s, fee %s, stock %s box)",
            goods_id, base_id, new_cost, qty, unit_cost, fee, stock,
        )
        return new_cost

    def _unit_price_for(self, arrival: ArrivalRecord) -> Decimal:
        item = self.db.query(PurchaseOrderItem).filter(
            PurchaseOrderItem.purchase_order_id == arrival.purchase_order_id,
            PurchaseOrderItem.goods_id == arrival.goods_id,
        ).order_by(PurchaseOrderItem.id).first()
        return to_decimal(item.unit_price) if item else Decimal("0")

    def recalculate_average_cost(self, goods_id: str, base_id: int) -> Decimal:
        """Rebuild the average from every arrival of the goods in the base."""
        goods = self.db.get(Goods, goods_id)
        ratios = UnitSpec.for_goods(goods) if goods else UnitSpec()
        arrivals = self.db.query(ArrivalRecord).filter(
            ArrivalRecord.goods_id == goods_id,
            ArrivalRecord.base_id == base_id,
        ).all()

        total_qty = Decimal("0")
        total_cost = Decimal("0")
        for arrival in arrivals:
            qty = to_box_equivalent(
                Quantity(arrival.box_quantity, arrival.pack_quantity, arrival.piece_quantity),
                *ratios,
            )
            total_qty += qty
            total_cost += self._unit_price_for(arrival) * qty + to_decimal(arrival.logistics_fee)

        new_cost = self.quantize(total_cost / total_qty) if total_qty > 0 else self.quantize(Decimal("0"))
        self._save_average_cost(goods_id, base_id, new_cost)
        logger.info(
            "Average cost recalculated: goods=%s base=%s cost=%s from %d arrivals",
            goods_id, base_id, new_cost, len(arrivals),
        )
        return new_cost

    def get_batch_average_cost(self, goods_ids: Iterable[str], base_id: int) -> Dict[str, Decimal]:
        """Average cost for several goods; goods without a row map to 0."""
        ids = list(dict.fromkeys(goods_ids))
        if not ids:
            return {}
        rows = self.db.query(Inventory).filter(
            Inventory.base_id == base_id,
            Inventory.goods_id.in_(ids),
        ).all()
        found = {row.goods_id: to_decimal(row.average_cost) for row in rows}
        return {goods_id: found.get(goods_id, Decimal("0")) for goods_id in ids}

    def get_base_cost_list(self, base_id: int, locale: Optional[str] = None) -> List[GoodsCostItem]:
        """Every goods with a cost row in the base, most recently updated first."""
        rows = (
            self.db.query(Inventory, Goods)
            .join(Goods, Goods.id == Inventory.goods_id)
            .filter(Inventory.base_id == base_id)
            .order_by(Inventory.updated_at.desc(), Goods.code)
            .all()
        )
        return [
            GoodsCostItem(
                goods_id=goods.id,
                goods_code=goods.code,
                goods_name=display_name(
                    goods.name, goods.name_i18n, locale, self.config.default_locale
                ),
                average_cost=to_decimal(inventory.average_cost),
                updated_at=inventory.updated_at,
            )
            for inventory, goods in rows
        ]
