import itertools
import pytest
import pytest_asyncio
from tortoise import Tortoise

from stockledger.core.db import MODELS_MODULES
from stockledger.models.product import Product

_slugs = itertools.count(1)


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory SQLite database per test."""
    await Tortoise.init(db_url="sqlite://:memory:", modules={"models": MODELS_MODULES})
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest.fixture
def make_product(db):
    async def _make(name_en="Unga wa Ngano 2kg", price_cents=21000):
        return await Product.create(
            slug=f"product-{next(_slugs)}",
            name_en=name_en,
            name_sw=name_en,
            price_cents=price_cents,
        )
    return _make
