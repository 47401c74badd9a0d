import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional
from uuid import UUID

from tortoise import connections, timezone
from tortoise.expressions import F
from tortoise.transactions import in_transaction

from stockledger.core.config import (
    ALLOW_UNRESERVED_SALE,
    LEDGER_MAX_ATTEMPTS,
    LEDGER_TX_TIMEOUT,
    RECENT_ENTRY_LIMIT,
)
from stockledger.core.exceptions import (
    ConcurrencyConflict,
    InvalidQuantity,
    InventoryNotFound,
    LedgerTimeout,
    ProductNotFound,
)
from stockledger.events.outbox_utility import LOW_STOCK_ALERT, create_outbox_event
from stockledger.models.inventory import InventoryRecord, LedgerEntry, LedgerEntryType
from stockledger.models.product import Product
from stockledger.services.stock_levels import StockLevels, require_positive

log = logging.getLogger("inventory_ledger")

Transition = Callable[[StockLevels], StockLevels]
AfterApply = Callable[[InventoryRecord, Any], Awaitable[None]]

SUMMARY_SQL = """
    SELECT
      COUNT(*) AS total_products,
      COALESCE(SUM(quantity), 0) AS total_quantity,
      COALESCE(SUM(available), 0) AS total_available,
      COALESCE(SUM(reserved), 0) AS total_reserved,
      AVG(quantity) AS avg_quantity,
      MIN(quantity) AS min_quantity,
      MAX(quantity) AS max_quantity
    FROM inventory
"""


@dataclass
class InventoryView:
    """An inventory record together with its most recent ledger entries (newest first)."""
    record: InventoryRecord
    entries: List[LedgerEntry] = field(default_factory=list)


@dataclass
class StockSummary:
    total_products: int
    total_quantity: int
    total_available: int
    total_reserved: int
    avg_quantity: Optional[float]
    min_quantity: Optional[int]
    max_quantity: Optional[int]


class InventoryLedger:
    """
    Per-product stock counters and their audit trail.

    Each mutation is a single transaction: lock the row, compute the new
    levels, write them with a conditional UPDATE that only matches the levels
    that were read, then append the ledger entry. If the conditional UPDATE
    matches nothing the attempt raises ConcurrencyConflict and is retried up
    to ``max_attempts`` times. Each attempt is bounded by ``timeout`` seconds.
    """

    def __init__(
        self,
        max_attempts: int = LEDGER_MAX_ATTEMPTS,
        timeout: float = LEDGER_TX_TIMEOUT,
        allow_unreserved_sale: bool = ALLOW_UNRESERVED_SALE,
        recent_entry_limit: int = RECENT_ENTRY_LIMIT,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.allow_unreserved_sale = allow_unreserved_sale
        self.recent_entry_limit = recent_entry_limit

    # ----------- Creation and lookups -----------

    async def initialize(
        self,
        product_id: UUID,
        quantity: int = 0,
        reorder_level: int = 10,
        reorder_quantity: int = 50,
    ) -> InventoryRecord:
        """Creates the record for a product. Repeat calls return the existing record untouched."""
        levels = StockLevels.initial(quantity)
        for name, value in (("reorder_level", reorder_level), ("reorder_quantity", reorder_quantity)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidQuantity(f"{name} must be a non-negative integer, got {value!r}")

        if not await Product.exists(id=product_id):
            raise ProductNotFound(product_id)

        record, created = await InventoryRecord.get_or_create(
            product_id=product_id,
            defaults={
                **levels.as_fields(),
                "reorder_level": reorder_level,
                "reorder_quantity": reorder_quantity,
            },
        )
        if created:
            log.info(f"Inventory initialized for product {product_id} with {quantity} units.")
        else:
            log.info(f"Inventory for product {product_id} already exists, keeping {record.quantity} units.")
        return record

    async def get(self, product_id: UUID) -> Optional[InventoryView]:
        record = await InventoryRecord.get_or_none(product_id=product_id)
        if not record:
            return None
        entries = await (
            LedgerEntry.filter(inventory_id=record.id)
            .order_by("-created_at", "-id")
            .limit(self.recent_entry_limit)
        )
        return InventoryView(record=record, entries=list(entries))

    async def history(self, product_id: UUID, limit: Optional[int] = None) -> List[LedgerEntry]:
        """Full audit trail for a product, newest first."""
        record = await InventoryRecord.get_or_none(product_id=product_id)
        if not record:
            raise InventoryNotFound(product_id)
        query = LedgerEntry.filter(inventory_id=record.id).order_by("-created_at", "-id")
        if limit is not None:
            query = query.limit(limit)
        return list(await query)

    async def list_low_stock(self) -> List[InventoryRecord]:
        """Records at or below their reorder level, emptiest first, with the product loaded."""
        return list(
            await InventoryRecord.filter(quantity__lte=F("reorder_level"))
            .order_by("quantity")
            .prefetch_related("product")
        )

    async def summarize(self) -> StockSummary:
        rows = await connections.get("default").execute_query_dict(SUMMARY_SQL)
        row = rows[0]
        avg = row["avg_quantity"]
        return StockSummary(
            total_products=int(row["total_products"]),
            total_quantity=int(row["total_quantity"]),
            total_available=int(row["total_available"]),
            total_reserved=int(row["total_reserved"]),
            avg_quantity=float(avg) if avg is not None else None,
            min_quantity=row["min_quantity"],
            max_quantity=row["max_quantity"],
        )

    # ----------- Mutating operations -----------

    async def reserve(
        self, product_id: UUID, quantity: int, reason: str = "ORDER_RESERVATION"
    ) -> InventoryRecord:
        quantity = require_positive(quantity)
        return await self._mutate(
            product_id,
            lambda levels: levels.reserve(quantity),
            entry_type=LedgerEntryType.RESERVATION,
            quantity_change=-quantity,
            reason=reason,
        )

    async def release(
        self, product_id: UUID, quantity: int, reason: str = "ORDER_CANCELLED"
    ) -> InventoryRecord:
        quantity = require_positive(quantity)
        return await self._mutate(
            product_id,
            lambda levels: levels.release(quantity),
            entry_type=LedgerEntryType.RESERVATION,
            quantity_change=quantity,
            reason=reason,
        )

    async def sell(
        self, product_id: UUID, quantity: int, allow_unreserved: Optional[bool] = None
    ) -> InventoryRecord:
        """
        Records units leaving the building. Reserved units are consumed first.
        Whether units beyond the reservation may be sold is governed by
        ``allow_unreserved``, defaulting to the ledger's policy.
        A low-stock alert is queued when available stock ends up at or below
        the reorder level; it never blocks the sale.
        """
        quantity = require_positive(quantity)
        if allow_unreserved is None:
            allow_unreserved = self.allow_unreserved_sale
        return await self._mutate(
            product_id,
            lambda levels: levels.sell(quantity, allow_unreserved=allow_unreserved)[0],
            entry_type=LedgerEntryType.SALE,
            quantity_change=-quantity,
            reason="ORDER_COMPLETED",
            stamp_field="last_sold_at",
            after_apply=self._check_low_stock,
        )

    async def restock(
        self, product_id: UUID, quantity: int, reason: str = "MANUAL_RESTOCK"
    ) -> InventoryRecord:
        quantity = require_positive(quantity)
        return await self._mutate(
            product_id,
            lambda levels: levels.restock(quantity),
            entry_type=LedgerEntryType.RESTOCK,
            quantity_change=quantity,
            reason=reason,
            stamp_field="last_restock_date",
        )

    # ----------- Internals -----------

    async def _mutate(
        self,
        product_id: UUID,
        transition: Transition,
        entry_type: LedgerEntryType,
        quantity_change: int,
        reason: str,
        stamp_field: Optional[str] = None,
        after_apply: Optional[AfterApply] = None,
    ) -> InventoryRecord:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await asyncio.wait_for(
                    self._apply_once(
                        product_id, transition, entry_type, quantity_change,
                        reason, stamp_field, after_apply,
                    ),
                    timeout=self.timeout,
                )
            except ConcurrencyConflict:
                if attempt == self.max_attempts:
                    log.error(f"Giving up {entry_type.value} on product {product_id} after {attempt} conflicting attempts.")
                    raise
                log.warning(f"Concurrent update on product {product_id}, retrying ({attempt}/{self.max_attempts}).")
            except asyncio.TimeoutError:
                log.error(f"{entry_type.value} on product {product_id} timed out after {self.timeout}s, rolled back.")
                raise LedgerTimeout(product_id, self.timeout)
        raise ConcurrencyConflict(product_id)

    async def _apply_once(
        self,
        product_id: UUID,
        transition: Transition,
        entry_type: LedgerEntryType,
        quantity_change: int,
        reason: str,
        stamp_field: Optional[str],
        after_apply: Optional[AfterApply],
    ) -> InventoryRecord:
        async with in_transaction() as conn:
            # Row lock where the backend supports it; the conditional update below covers the rest
            record = await (
                InventoryRecord.filter(product_id=product_id)
                .select_for_update()
                .using_db(conn)
                .first()
            )
            if not record:
                raise InventoryNotFound(product_id)

            current = StockLevels.from_record(record)
            target = transition(current)

            now = timezone.now()
            values = {**target.as_fields(), "updated_at": now}
            if stamp_field:
                values[stamp_field] = now

            if not await self._compare_and_swap(conn, record, current, values):
                raise ConcurrencyConflict(product_id)
            for name, value in values.items():
                setattr(record, name, value)

            await LedgerEntry.create(
                inventory_id=record.id,
                type=entry_type,
                quantity_change=quantity_change,
                reason=reason,
                using_db=conn,
            )
            if after_apply:
                await after_apply(record, conn)

        log.info(
            f"{entry_type.value} {quantity_change:+d} ({reason}) on product {product_id}: "
            f"quantity={record.quantity} reserved={record.reserved} available={record.available}"
        )
        return record

    async def _compare_and_swap(
        self, conn: Any, record: InventoryRecord, expected: StockLevels, values: dict
    ) -> int:
        """Writes ``values`` only if the row still holds ``expected``. Returns rows affected."""
        return await (
            InventoryRecord.filter(id=record.id, **expected.as_fields())
            .using_db(conn)
            .update(**values)
        )

    async def _check_low_stock(self, record: InventoryRecord, conn: Any) -> None:
        if record.available > record.reorder_level:
            return
        log.warning(
            f"Low stock alert for product {record.product_id}: {record.available} units remaining"
        )
        await create_outbox_event(
            aggregate_type="inventory",
            aggregate_id=record.id,
            event_type=LOW_STOCK_ALERT,
            payload={
                "product_id": str(record.product_id),
                "available": record.available,
                "reorder_level": record.reorder_level,
                "reorder_quantity": record.reorder_quantity,
            },
            conn=conn,
        )


ledger = InventoryLedger()
