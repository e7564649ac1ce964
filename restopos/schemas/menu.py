from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Literal

from restopos.schemas.common import not_null

# restaurant_id is never accepted from the body; routers take it from the session

PortionLiteral = Literal["quarter", "half", "three_quarters", "full"]

class BranchIn(BaseModel):
    name: str = Field(min_length=1)
    location: Optional[str] = None
    phone: Optional[str] = None

class BranchPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    location: Optional[str] = None
    phone: Optional[str] = None
    check_not_null = not_null("name")

class InventoryItemIn(BaseModel):
    name: str = Field(min_length=1)
    category: Optional[str] = None
    quantity: float = Field(default=0, ge=0)
    unit: str
    price: float = Field(default=0, ge=0)
    supplier: Optional[str] = None
    branch_id: Optional[str] = None

class InventoryItemPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = None
    quantity: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    supplier: Optional[str] = None
    branch_id: Optional[str] = None
    check_not_null = not_null("name", "quantity", "unit", "price")

class IngredientIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    inventory_item_id: str = Field(alias="inventoryItemId")
    quantity: float = Field(gt=0)
    unit: Optional[str] = None

class RecipeIn(BaseModel):
    name: str = Field(min_length=1)
    ingredients: list[IngredientIn] = []
    instructions: Optional[str] = None

class RecipePatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    ingredients: Optional[list[IngredientIn]] = None
    instructions: Optional[str] = None
    check_not_null = not_null("name", "ingredients")

class MenuItemIn(BaseModel):
    name: str = Field(min_length=1)
    category: Optional[str] = None
    description: Optional[str] = None
    price: float = Field(ge=0)          # VAT inclusive
    recipe_id: Optional[str] = None
    portion_size: PortionLiteral = "full"
    available: bool = True

class MenuItemPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    recipe_id: Optional[str] = None
    portion_size: Optional[PortionLiteral] = None
    available: Optional[bool] = None
    check_not_null = not_null("name", "price", "portion_size", "available")

class AddonIn(BaseModel):
    name: str = Field(min_length=1)
    price: float = Field(default=0, ge=0)
    menu_item_id: Optional[str] = None
    inventory_item_id: Optional[str] = None
    quantity: Optional[float] = Field(default=None, gt=0)

class AddonPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    price: Optional[float] = Field(default=None, ge=0)
    menu_item_id: Optional[str] = None
    inventory_item_id: Optional[str] = None
    quantity: Optional[float] = Field(default=None, gt=0)
    check_not_null = not_null("name", "price")
