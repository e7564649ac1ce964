from pydantic import BaseModel, Field, EmailStr
from typing import Optional, Literal

from restopos.schemas.common import not_null

ProcurementStatusLiteral = Literal["pending", "received", "cancelled"]

class CustomerIn(BaseModel):
    name: str = Field(min_length=1)
    phone: Optional[str] = Field(default=None, min_length=3)
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    notes: Optional[str] = None

class CustomerPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = Field(default=None, min_length=3)
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    check_not_null = not_null("name")

class ProcurementIn(BaseModel):
    inventory_item_id: str
    branch_id: Optional[str] = None
    type: str = Field(default="purchase", min_length=1)
    supplier: Optional[str] = None
    quantity: float = Field(gt=0)
    unit: Optional[str] = None          # defaults to the inventory item's unit
    unit_price: float = Field(default=0, ge=0)
    status: ProcurementStatusLiteral = "pending"
    reference: Optional[str] = None
    notes: Optional[str] = None

class ProcurementPatch(BaseModel):
    type: Optional[str] = Field(default=None, min_length=1)
    supplier: Optional[str] = None
    quantity: Optional[float] = Field(default=None, gt=0)
    unit: Optional[str] = None
    unit_price: Optional[float] = Field(default=None, ge=0)
    status: Optional[ProcurementStatusLiteral] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    check_not_null = not_null("type", "quantity", "unit", "unit_price", "status")
