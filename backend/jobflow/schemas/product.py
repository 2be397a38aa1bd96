"""Pydantic schemas for the stores-side product view."""

from pydantic import BaseModel


class ProductOut(BaseModel):
    id: str
    code: str
    name: str
    unit_of_measure: str
    unit_cost: float
    selling_price: float
    stock_quantity: int

    model_config = {"from_attributes": True}


class StockOut(BaseModel):
    product_id: str
    stock_quantity: int
