"""SQLAlchemy models."""

from livebase.models.operating_base import OperatingBase
from livebase.models.location import Location, LocationType, WAREHOUSE_TYPES
from livebase.models.personnel import Personnel, PersonnelRole
from livebase.models.goods import Category, Goods, GoodsLocalSetting, QuantityUnit
from livebase.models.purchase import PurchaseOrder, PurchaseOrderItem
from livebase.models.global_setting import GlobalSetting
from livebase.models.arrival import ArrivalRecord
from livebase.models.transfer import TransferRecord, TransferStatus
from livebase.models.stock_out import StockOut, StockOutType
from livebase.models.consumption import StockConsumption
from livebase.models.inventory import Inventory
from livebase.models.anchor_profit import AnchorProfit

__all__ = [
    "OperatingBase",
    "Location",
    "LocationType",
    "WAREHOUSE_TYPES",
    "Personnel",
    "PersonnelRole",
    "Category",
    "Goods",
    "GoodsLocalSetting",
    "QuantityUnit",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "GlobalSetting",
    "ArrivalRecord",
    "TransferRecord",
    "TransferStatus",
    "StockOut",
    "StockOutType",
    "StockConsumption",
    "Inventory",
    "AnchorProfit",
]
