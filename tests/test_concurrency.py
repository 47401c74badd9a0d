import asyncio
import random

import pytest

from stockledger.core.exceptions import (
    ConcurrencyConflict,
    InsufficientStock,
    InvalidRelease,
    LedgerTimeout,
)
from stockledger.models.inventory import InventoryRecord, LedgerEntry
from stockledger.services.inventory_ledger import InventoryLedger


@pytest.mark.asyncio
async def test_concurrent_reservations_never_oversell(make_product):
    ledger = InventoryLedger(max_attempts=5, timeout=10.0)
    product = await make_product()
    await ledger.initialize(product.id, 10)

    results = await asyncio.gather(
        *(ledger.reserve(product.id, 1) for _ in range(50)),
        return_exceptions=True,
    )

    succeeded = [r for r in results if isinstance(r, InventoryRecord)]
    failed = [r for r in results if isinstance(r, (InsufficientStock, ConcurrencyConflict))]
    assert len(succeeded) == 10
    assert len(failed) == 40

    record = await InventoryRecord.get(product_id=product.id)
    assert (record.quantity, record.reserved, record.available) == (10, 10, 0)
    assert await LedgerEntry.filter(inventory_id=record.id).count() == 10


@pytest.mark.asyncio
async def test_random_concurrent_operations_keep_invariants(make_product):
    ledger = InventoryLedger(max_attempts=5, timeout=10.0)
    product = await make_product()
    await ledger.initialize(product.id, 30)
    rng = random.Random(7)

    calls = []
    for _ in range(60):
        name = rng.choice(["reserve", "release", "sell", "restock"])
        calls.append(getattr(ledger, name)(product.id, rng.randint(1, 8)))
    results = await asyncio.gather(*calls, return_exceptions=True)

    for result in results:
        assert isinstance(result, (InventoryRecord, InsufficientStock, InvalidRelease, ConcurrencyConflict))

    record = await InventoryRecord.get(product_id=product.id)
    assert record.available >= 0
    assert record.reserved >= 0
    assert record.available + record.reserved == record.quantity
    successes = sum(isinstance(r, InventoryRecord) for r in results)
    assert await LedgerEntry.filter(inventory_id=record.id).count() == successes


@pytest.mark.asyncio
async def test_conflicting_update_is_retried(make_product, monkeypatch):
    ledger = InventoryLedger(max_attempts=3)
    product = await make_product()
    await ledger.initialize(product.id, 10)

    real_swap = ledger._compare_and_swap
    attempts = []

    async def lose_first_race(*args, **kwargs):
        attempts.append(1)
        if len(attempts) == 1:
            return 0
        return await real_swap(*args, **kwargs)

    monkeypatch.setattr(ledger, "_compare_and_swap", lose_first_race)

    record = await ledger.reserve(product.id, 4)

    assert len(attempts) == 2
    assert (record.reserved, record.available) == (4, 6)
    assert await LedgerEntry.filter(inventory_id=record.id).count() == 1


@pytest.mark.asyncio
async def test_conflict_surfaces_after_bounded_attempts(make_product, monkeypatch):
    ledger = InventoryLedger(max_attempts=3)
    product = await make_product()
    await ledger.initialize(product.id, 10)

    attempts = []

    async def always_lose(*args, **kwargs):
        attempts.append(1)
        return 0

    monkeypatch.setattr(ledger, "_compare_and_swap", always_lose)

    with pytest.raises(ConcurrencyConflict) as excinfo:
        await ledger.reserve(product.id, 4)

    assert excinfo.value.retryable is True
    assert len(attempts) == 3
    record = await InventoryRecord.get(product_id=product.id)
    assert (record.reserved, record.available) == (0, 10)
    assert await LedgerEntry.filter(inventory_id=record.id).count() == 0


@pytest.mark.asyncio
async def test_stuck_transaction_times_out_and_rolls_back(make_product, monkeypatch):
    ledger = InventoryLedger(max_attempts=3, timeout=0.2)
    product = await make_product()
    await ledger.initialize(product.id, 10)

    async def stall(*args, **kwargs):
        await asyncio.sleep(5)
        return 1

    monkeypatch.setattr(ledger, "_compare_and_swap", stall)

    with pytest.raises(LedgerTimeout):
        await ledger.restock(product.id, 5)

    record = await InventoryRecord.get(product_id=product.id)
    assert (record.quantity, record.available) == (10, 10)
    assert await LedgerEntry.filter(inventory_id=record.id).count() == 0
