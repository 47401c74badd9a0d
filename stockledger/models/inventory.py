from enum import Enum
from tortoise import fields, models
import uuid


class LedgerEntryType(str, Enum):
    RESERVATION = "RESERVATION" # Hold placed or released for an open order
    SALE = "SALE"
    RESTOCK = "RESTOCK"


class InventoryRecord(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    # One-to-one link to ensure a single inventory record per product
    product = fields.OneToOneField("models.Product", related_name="inventory")
    quantity = fields.IntField(default=0) # Units on hand, reserved ones included
    reserved = fields.IntField(default=0)
    available = fields.IntField(default=0) # Always quantity - reserved
    reorder_level = fields.IntField(default=10) # For low stock alert
    reorder_quantity = fields.IntField(default=50)
    last_sold_at = fields.DatetimeField(null=True)
    last_restock_date = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "inventory"
        indexes = [
            ("quantity",),  # Low stock listing orders by quantity
        ]


class LedgerEntry(models.Model):
    """
    Append-only audit trail. One row per counter mutation, written in the
    same transaction as the mutation itself. Rows are never updated.
    """
    id = fields.IntField(primary_key=True)
    inventory = fields.ForeignKeyField("models.InventoryRecord", related_name="entries")
    type = fields.CharEnumField(LedgerEntryType, max_length=16)
    quantity_change = fields.IntField()
    reason = fields.TextField() # Free-text classification, e.g. ORDER_CANCELLED
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "inventory_ledger_entries"
        indexes = [
            ("inventory_id", "created_at"),  # Newest-first history per record
        ]
