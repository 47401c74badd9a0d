import uuid
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class ProductRequest(BaseModel):
    """Schema for adding a product together with its opening stock."""
    slug: str = Field(..., description="URL slug of the product (e.g. unga-wa-ngano-2kg).")
    name_en: str = Field(..., description="English product name.")
    name_sw: Optional[str] = Field(None, description="Swahili product name.")
    price_cents: int = Field(..., gt=0, description="Selling price in cents (KES).")
    initial_qty: int = Field(0, ge=0, description="Opening stock quantity.")
    reorder_level: int = Field(10, ge=0, description="Stock level at or below which the product counts as low.")
    reorder_quantity: int = Field(50, ge=0, description="Suggested units to order when restocking.")

class InitializeRequest(BaseModel):
    quantity: int = Field(0, ge=0)
    reorder_level: int = Field(10, ge=0)
    reorder_quantity: int = Field(50, ge=0)

class StockChangeRequest(BaseModel):
    """Body for reserve / release / restock."""
    quantity: int = Field(..., gt=0, description="Units to move.")
    reason: Optional[str] = Field(None, min_length=1, description="Ledger reason; the operation default when omitted.")

class SaleRequest(BaseModel):
    quantity: int = Field(..., gt=0, description="Units sold.")
    allow_unreserved: Optional[bool] = Field(None, description="Permit selling beyond the reservation; ledger policy when omitted.")

class LedgerEntryResponse(BaseModel):
    id: int
    type: str
    quantity_change: int
    reason: str
    created_at: datetime

class InventoryResponse(BaseModel):
    """Schema for an inventory record's stock counters."""
    product_id: uuid.UUID
    quantity: int
    reserved: int
    available: int
    reorder_level: int
    reorder_quantity: int
    last_sold_at: Optional[datetime] = None
    last_restock_date: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class InventoryDetailResponse(InventoryResponse):
    recent_entries: List[LedgerEntryResponse] = []

class LowStockItemResponse(InventoryResponse):
    name_en: str
    price_cents: int

class StockSummaryResponse(BaseModel):
    total_products: int
    total_quantity: int
    total_available: int
    total_reserved: int
    avg_quantity: Optional[float] = None
    min_quantity: Optional[int] = None
    max_quantity: Optional[int] = None
