"""Read-only aggregation over the five stock ledgers.

No business rules live here: callers decide how the sums combine. Every sum
is column-wise (box, pack and piece summed separately) and defaults to zero
when no rows match.
"""

import logging
from typing import List, NamedTuple, Optional

from sqlalchemy import func, or_, union
from sqlalchemy.orm import Session

from livebase.models.arrival import ArrivalRecord
from livebase.models.consumption import StockConsumption
from livebase.models.location import Location, LocationType
from livebase.models.stock_out import StockOut
from livebase.models.transfer import TransferRecord
from livebase.services.units import Quantity

logger = logging.getLogger(__name__)


class LedgerTotals(NamedTuple):
    """Column-wise sums of every ledger for one (base, goods, location)."""

    arrivals: Quantity
    transfers_in: Quantity
    transfers_out: Quantity
    stock_outs: Quantity
    consumptions: Quantity

    def delta(self) -> Quantity:
        """arrivals + in - out - stock-outs - consumptions, per column, no borrowing."""
        box = (self.arrivals.box + self.transfers_in.box - self.transfers_out.box
               - self.stock_outs.box - self.consumptions.box)
        pack = (self.arrivals.pack + self.transfers_in.pack - self.transfers_out.pack
                - self.stock_outs.pack - self.consumptions.pack)
        piece = (self.arrivals.piece + self.transfers_in.piece - self.transfers_out.piece
                 - self.stock_outs.piece - self.consumptions.piece)
        return Quantity(box, pack, piece)


class LedgerReader:
    """Sums ledger rows for a base."""

    def __init__(self, db: Session):
        self.db = db

    def _sum(self, model, *criteria, join=None) -> Quantity:
        query = self.db.query(
            func.coalesce(func.sum(model.box_quantity), 0),
            func.coalesce(func.sum(model.pack_quantity), 0),
            func.coalesce(func.sum(model.piece_quantity), 0),
        )
        if join is not None:
            query = query.select_from(model).join(*join)
        box, pack, piece = query.filter(*criteria).one()
        return Quantity(int(box), int(pack), int(piece))

    def read(self, base_id: int, goods_id: str, location_id: int) -> LedgerTotals:
        return LedgerTotals(
            arrivals=self._sum(
                ArrivalRecord,
                ArrivalRecord.base_id == base_id,
                ArrivalRecord.goods_id == goods_id,
                ArrivalRecord.location_id == location_id,
            ),
            transfers_in=self._sum(
                TransferRecord,
                TransferRecord.base_id == base_id,
                TransferRecord.goods_id == goods_id,
                TransferRecord.destination_location_id == location_id,
            ),
            transfers_out=self._sum(
                TransferRecord,
                TransferRecord.base_id == base_id,
                TransferRecord.goods_id == goods_id,
                TransferRecord.source_location_id == location_id,
            ),
            stock_outs=self._sum(
                StockOut,
                StockOut.base_id == base_id,
                StockOut.goods_id == goods_id,
                StockOut.location_id == location_id,
            ),
            consumptions=self._sum(
                StockConsumption,
                StockConsumption.base_id == base_id,
                StockConsumption.goods_id == goods_id,
                StockConsumption.location_id == location_id,
            ),
        )

    def sum_arrivals_for_order(
        self, base_id: int, purchase_order_id: str, exclude_id: Optional[str] = None
    ) -> Quantity:
        criteria = [
            ArrivalRecord.base_id == base_id,
            ArrivalRecord.purchase_order_id == purchase_order_id,
        ]
        if exclude_id:
            criteria.append(ArrivalRecord.id != exclude_id)
        return self._sum(ArrivalRecord, *criteria)

    def sum_transfers_to_handler(self, base_id: int, goods_id: str, handler_id: str) -> Quantity:
        return self._sum(
            TransferRecord,
            TransferRecord.base_id == base_id,
            TransferRecord.goods_id == goods_id,
            TransferRecord.destination_handler_id == handler_id,
        )

    def sum_transfers_from_handler(
        self, base_id: int, goods_id: str, handler_id: str, live_room_only: bool = True
    ) -> Quantity:
        """Transfers handed over by ``handler_id``.

        With ``live_room_only`` only transfers leaving a LIVE_ROOM count;
        warehouse stock belongs to the location, not the person moving it.
        """
        criteria = [
            TransferRecord.base_id == base_id,
            TransferRecord.goods_id == goods_id,
            TransferRecord.source_handler_id == handler_id,
        ]
        if not live_room_only:
            return self._sum(TransferRecord, *criteria)
        criteria.append(Location.type == LocationType.LIVE_ROOM)
        return self._sum(
            TransferRecord,
            *criteria,
            join=(Location, Location.id == TransferRecord.source_location_id),
        )

    def sum_consumptions_for_handler(
        self, base_id: int, goods_id: str, handler_id: str, exclude_id: Optional[str] = None
    ) -> Quantity:
        criteria = [
            StockConsumption.base_id == base_id,
            StockConsumption.goods_id == goods_id,
            StockConsumption.handler_id == handler_id,
        ]
        if exclude_id:
            criteria.append(StockConsumption.id != exclude_id)
        return self._sum(StockConsumption, *criteria)

    def goods_with_activity(self, base_id: int, location_id: int) -> List[str]:
        """Ids of goods with at least one ledger row touching the location."""
        combined = union(
            self.db.query(ArrivalRecord.goods_id).filter(
                ArrivalRecord.base_id == base_id, ArrivalRecord.location_id == location_id
            ).statement,
            self.db.query(TransferRecord.goods_id).filter(
                TransferRecord.base_id == base_id,
                or_(
                    TransferRecord.source_location_id == location_id,
                    TransferRecord.destination_location_id == location_id,
                ),
            ).statement,
            self.db.query(StockOut.goods_id).filter(
                StockOut.base_id == base_id, StockOut.location_id == location_id
            ).statement,
            self.db.query(StockConsumption.goods_id).filter(
                StockConsumption.base_id == base_id, StockConsumption.location_id == location_id
            ).statement,
        )
        return sorted(row[0] for row in self.db.execute(combined))
