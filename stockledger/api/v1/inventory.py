import logging
from fastapi import APIRouter, HTTPException, Query, status
from tortoise.exceptions import IntegrityError
from tortoise.transactions import in_transaction
from stockledger.core.exceptions import InventoryNotFound
from stockledger.models.inventory import InventoryRecord, LedgerEntry, LedgerEntryType
from stockledger.models.product import Product
from stockledger.schemas.inventory import (
    InitializeRequest,
    InventoryDetailResponse,
    InventoryResponse,
    LedgerEntryResponse,
    LowStockItemResponse,
    ProductRequest,
    SaleRequest,
    StockChangeRequest,
    StockSummaryResponse,
)
from stockledger.schemas.response import SuccessResponse
from stockledger.services.inventory_ledger import ledger
from uuid import UUID
from dataclasses import asdict
from typing import Dict, Any, Optional

log = logging.getLogger("uvicorn")

router = APIRouter()


def _inventory_data(record: InventoryRecord) -> Dict[str, Any]:
    return InventoryResponse(
        product_id=record.product_id,
        quantity=record.quantity,
        reserved=record.reserved,
        available=record.available,
        reorder_level=record.reorder_level,
        reorder_quantity=record.reorder_quantity,
        last_sold_at=record.last_sold_at,
        last_restock_date=record.last_restock_date,
        updated_at=record.updated_at,
    ).model_dump(mode="json")


def _entry_data(entry: LedgerEntry) -> LedgerEntryResponse:
    return LedgerEntryResponse(
        id=entry.id,
        type=LedgerEntryType(entry.type).value,
        quantity_change=entry.quantity_change,
        reason=entry.reason,
        created_at=entry.created_at,
    )


@router.post("/products", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def add_product(product_data: ProductRequest):
    """
    Adds a new product and its opening inventory record.
    """
    # Product and its inventory record commit together or not at all
    async with in_transaction():
        try:
            product = await Product.create(
                slug=product_data.slug,
                name_en=product_data.name_en,
                name_sw=product_data.name_sw,
                price_cents=product_data.price_cents,
            )
        except IntegrityError:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Product with slug '{product_data.slug}' already exists."
            )

        record = await ledger.initialize(
            product.id,
            quantity=product_data.initial_qty,
            reorder_level=product_data.reorder_level,
            reorder_quantity=product_data.reorder_quantity,
        )
    log.info(f"Product '{product.name_en}' added with {record.quantity} units.")
    return SuccessResponse(data={"product_id": str(product.id), "inventory": _inventory_data(record)})


@router.get("/low-stock", response_model=SuccessResponse)
async def get_low_stock():
    """Lists products at or below their reorder level, emptiest first."""
    records = await ledger.list_low_stock()
    data = [
        LowStockItemResponse(
            **_inventory_data(record),
            name_en=record.product.name_en,
            price_cents=record.product.price_cents,
        ).model_dump(mode="json")
        for record in records
    ]
    return SuccessResponse(data=data)


@router.get("/summary", response_model=SuccessResponse)
async def get_stock_summary():
    """Aggregate stock figures for the admin dashboard."""
    summary = await ledger.summarize()
    return SuccessResponse(data=StockSummaryResponse(**asdict(summary)).model_dump())


@router.get("/{product_id}", response_model=SuccessResponse)
async def get_inventory_stock(product_id: UUID):
    """Fetches the stock counters and recent ledger entries for a product."""
    view = await ledger.get(product_id)
    if not view:
        raise InventoryNotFound(product_id)

    data = InventoryDetailResponse(
        **_inventory_data(view.record),
        recent_entries=[_entry_data(entry) for entry in view.entries],
    ).model_dump(mode="json")
    return SuccessResponse(data=data)


@router.get("/{product_id}/history", response_model=SuccessResponse)
async def get_inventory_history(product_id: UUID, limit: Optional[int] = Query(None, gt=0, le=500)):
    entries = await ledger.history(product_id, limit=limit)
    return SuccessResponse(data=[_entry_data(entry).model_dump(mode="json") for entry in entries])


@router.post("/{product_id}/initialize", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def initialize_inventory(product_id: UUID, payload: InitializeRequest):
    record = await ledger.initialize(
        product_id,
        quantity=payload.quantity,
        reorder_level=payload.reorder_level,
        reorder_quantity=payload.reorder_quantity,
    )
    return SuccessResponse(data=_inventory_data(record))


@router.post("/{product_id}/reserve", response_model=SuccessResponse)
async def reserve_stock(product_id: UUID, payload: StockChangeRequest):
    """Holds stock for an open order. 409 with code insufficient_stock when it just sold out."""
    if payload.reason:
        record = await ledger.reserve(product_id, payload.quantity, reason=payload.reason)
    else:
        record = await ledger.reserve(product_id, payload.quantity)
    return SuccessResponse(data=_inventory_data(record))


@router.post("/{product_id}/release", response_model=SuccessResponse)
async def release_stock(product_id: UUID, payload: StockChangeRequest):
    """Returns reserved stock, e.g. after a cancelled order or failed payment."""
    if payload.reason:
        record = await ledger.release(product_id, payload.quantity, reason=payload.reason)
    else:
        record = await ledger.release(product_id, payload.quantity)
    return SuccessResponse(data=_inventory_data(record))


@router.post("/{product_id}/sell", response_model=SuccessResponse)
async def record_sale(product_id: UUID, payload: SaleRequest):
    record = await ledger.sell(product_id, payload.quantity, allow_unreserved=payload.allow_unreserved)
    return SuccessResponse(data=_inventory_data(record))


@router.post("/{product_id}/restock", response_model=SuccessResponse)
async def restock_inventory(product_id: UUID, payload: StockChangeRequest):
    if payload.reason:
        record = await ledger.restock(product_id, payload.quantity, reason=payload.reason)
    else:
        record = await ledger.restock(product_id, payload.quantity)
    return SuccessResponse(data=_inventory_data(record))
