from .catalog import Category, Product
from .inventory import InventoryRecord, InventoryHistoryEntry, HistoryImmutableError
from .sales import Sale

__all__ = [
    'Category', 'Product',
    'InventoryRecord', 'InventoryHistoryEntry', 'HistoryImmutableError',
    'Sale',
]
