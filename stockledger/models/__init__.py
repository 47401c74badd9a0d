# stockledger/models/__init__.py
from .inventory import InventoryRecord, LedgerEntry, LedgerEntryType
from .outbox import OutboxEvent
from .product import Product

# Export all models
__all__ = [
    "InventoryRecord",
    "LedgerEntry",
    "LedgerEntryType",
    "OutboxEvent",
    "Product",
]
