# scripts/seed_data.py
import asyncio
import logging
from stockledger.core.db import init_db, close_db
from stockledger.models.product import Product
from stockledger.services.inventory_ledger import ledger

log = logging.getLogger("seed_data")

# slug, English name, Swahili name, price (cents), opening stock, reorder level
DEMO_PRODUCTS = [
    ("chips-masala", "Chips Masala", "Chips Masala", 35000, 40, 10),
    ("pilau", "Pilau", "Pilau", 40000, 25, 10),
    ("chapati", "Chapati", "Chapati", 5000, 120, 30),
    ("deluxe-bucket-20l", "Deluxe Bucket 20L", "Ndoo Deluxe 20L", 120000, 8, 10),
    ("plastic-chair", "Plastic Chair", "Kiti cha Plastiki", 180000, 3, 5),
]

async def seed():
    for slug, name_en, name_sw, price_cents, qty, reorder_level in DEMO_PRODUCTS:
        product, _ = await Product.get_or_create(
            slug=slug,
            defaults={"name_en": name_en, "name_sw": name_sw, "price_cents": price_cents},
        )
        # initialize is idempotent, so re-running the script keeps existing stock
        record = await ledger.initialize(product.id, quantity=qty, reorder_level=reorder_level)
        log.info(f"{name_en}: {record.quantity} units (product {product.id})")

    low = await ledger.list_low_stock()
    log.info(f"Inventory seeded. {len(low)} product(s) at or below reorder level.")

async def main():
    await init_db()
    try:
        await seed()
    finally:
        await close_db()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    asyncio.run(main())
