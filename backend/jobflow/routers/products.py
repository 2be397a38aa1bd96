"""Stores-side product lookup.

Endpoints:
    GET /api/products/search?q=           Search products (cached)
    GET /api/products/{id}/stock          Live stock on hand
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.auth.deps import get_current_actor
from jobflow.auth.permissions import Actor
from jobflow.database import get_db
from jobflow.schemas.product import ProductOut, StockOut
from jobflow.services import inventory

router = APIRouter()


@router.get("/search", response_model=list[ProductOut])
async def search_products(
    q: str = Query("", max_length=100),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(get_current_actor),
):
    return await inventory.search_products(db=db, q=q, limit=limit)


@router.get("/{product_id}/stock", response_model=StockOut)
async def get_stock(
    product_id: str,
    db: AsyncSession = Depends(get_db),
    _actor: Actor = Depends(get_current_actor),
):
    return StockOut(product_id=product_id, stock_quantity=await inventory.get_stock(db, product_id))
