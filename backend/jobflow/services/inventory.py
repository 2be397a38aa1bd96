"""Inventory collaborator: product lookup and stock movements.

Stock is a counter shared by every job card, so it is never
read-modify-written in Python.  ``decrement_stock`` issues a single
conditional UPDATE and lets the database serialize competing
disbursements, independent of any requisition row lock.
"""

import logging

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.config import settings
from jobflow.models.product import Product
from jobflow.schemas.product import ProductOut
from jobflow.services.errors import InsufficientStockError, NotFoundError
from jobflow.utils.cache import cached

logger = logging.getLogger(__name__)


async def get_product(db: AsyncSession, product_id: str) -> Product:
    product = await db.get(Product, product_id)
    if not product:
        raise NotFoundError("Product", product_id)
    return product


async def get_stock(db: AsyncSession, product_id: str) -> int:
    """Current on-hand quantity, read straight from the table."""
    result = await db.execute(
        select(Product.stock_quantity).where(Product.id == product_id)
    )
    stock = result.scalar_one_or_none()
    if stock is None:
        raise NotFoundError("Product", product_id)
    return stock


async def decrement_stock(db: AsyncSession, product_id: str, quantity: int) -> None:
    """Take ``quantity`` off the shelf or fail without changing anything.

    Raises:
        NotFoundError: unknown product
        InsufficientStockError: fewer than ``quantity`` on hand
    """
    result = await db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity >= quantity)
        .values(stock_quantity=Product.stock_quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        logger.debug("Stock decremented: product=%s qty=%d", product_id, quantity)
        return

    on_hand = await get_stock(db, product_id)
    raise InsufficientStockError(
        f"Only {on_hand} in stock for product {product_id}, {quantity} requested"
    )


@cached(ttl=settings.product_search_cache_ttl, prefix="products")
async def search_products(
    *,
    db: AsyncSession,
    q: str = "",
    limit: int = 20,
) -> list[dict]:
    """Search active products by code or name (cached, may be slightly stale)."""
    stmt = select(Product).where(Product.is_active == True)  # noqa: E712
    if q:
        pattern = f"%{q}%"
        stmt = stmt.where(or_(Product.code.ilike(pattern), Product.name.ilike(pattern)))
    stmt = stmt.order_by(Product.code).limit(limit)

    result = await db.execute(stmt)
    return [
        ProductOut.model_validate(p).model_dump(mode="json")
        for p in result.scalars().all()
    ]
