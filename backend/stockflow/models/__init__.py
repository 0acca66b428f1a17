from .catalog import Warehouse, Product, InventoryLevel
from .documents import StockTransfer, TransferItem, StockAdjustment, AdjustmentItem, ReferenceSequence
from .alerts import StockAlert
from .movements import StockMovement

__all__ = [
    'Warehouse', 'Product', 'InventoryLevel',
    'StockTransfer', 'TransferItem', 'StockAdjustment', 'AdjustmentItem', 'ReferenceSequence',
    'StockAlert',
    'StockMovement',
]
