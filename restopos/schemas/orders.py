from pydantic import BaseModel, Field
from typing import Optional, Literal, Union

OrderStatusLiteral = Literal["created", "processing", "ready", "completed", "cancelled", "paid"]
PayModeLiteral = Literal["cash", "card", "online"]

class AddonRef(BaseModel):
    id: str
    quantity: float = Field(default=1, gt=0)

class OrderLineIn(BaseModel):
    id: str                      # menu item id
    name: str
    quantity: float = Field(gt=0)
    price: float = Field(ge=0)   # unit price, VAT exclusive
    addons: list[Union[str, AddonRef]] = []

class OrderIn(BaseModel):
    branch_id: Optional[str] = None
    items: list[OrderLineIn] = Field(min_length=1)
    order_type: str = "dine-in"
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    payment_method: Optional[PayModeLiteral] = None

class OrderStatusIn(BaseModel):
    status: OrderStatusLiteral

class TransactionIn(BaseModel):
    order_id: Optional[str] = None
    branch_id: Optional[str] = None
    items: list[dict] = []
    subtotal: float = 0
    tax: float = 0
    total: float = Field(ge=0)
    payment_method: PayModeLiteral = "cash"

class InvoiceIn(BaseModel):
    order_id: str
    customer_name: Optional[str] = None
