# Services module

from livebase.services.stock_service import StockService
from livebase.services.goods_cost_service import GoodsCostService
from livebase.services.consumption_service import ConsumptionService
from livebase.services.arrival_record_service import ArrivalRecordService
from livebase.services.transfer_record_service import TransferRecordService
from livebase.services.stock_out_service import StockOutService
from livebase.services.ledger_reader import LedgerReader, LedgerTotals

__all__ = [
    "StockService",
    "GoodsCostService",
    "ConsumptionService",
    "ArrivalRecordService",
    "TransferRecordService",
    "StockOutService",
    "LedgerReader",
    "LedgerTotals",
]
