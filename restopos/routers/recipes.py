# restopos/routers/recipes.py
from decimal import Decimal, ROUND_HALF_UP

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from restopos.db import get_db
from restopos.deps import AccountContext, require_perm, require_restaurant
from restopos.errors import DataError, ValidationFailed
from restopos.models.core import InventoryItem, MenuItem, Recipe
from restopos.schemas.common import SortIn
from restopos.schemas.menu import IngredientIn, RecipeIn, RecipePatch
from restopos.services.stock import convert_qty
from restopos.services.tenancy import apply_sort, get_owned
from restopos.util.serialize import row_dict

router = APIRouter(prefix="/recipes", tags=["recipes"], dependencies=[Depends(require_restaurant)])

def _ingredients(db: Session, restaurant_id: str, lines: list[IngredientIn]) -> list[dict]:
    """Stored shape is ``{inventoryItemId, quantity, unit}``; every id must be this tenant's."""
    ids = {l.inventory_item_id for l in lines}
    units = dict(db.query(InventoryItem.id, InventoryItem.unit)
                   .filter(InventoryItem.restaurant_id == restaurant_id, InventoryItem.id.in_(ids)).all()) if ids else {}
    unknown = ids - units.keys()
    if unknown:
        raise ValidationFailed("Unknown inventory item", fields={"ingredients": ", ".join(sorted(unknown))})
    return [
        {"inventoryItemId": l.inventory_item_id, "quantity": l.quantity, "unit": l.unit or units[l.inventory_item_id]}
        for l in lines
    ]

def _recipe_out(db: Session, r: Recipe) -> dict:
    """Recipe row plus ``cost``: ingredient quantities priced at current per-unit inventory prices."""
    d = row_dict(r)
    ids = {ing.get("inventoryItemId") for ing in r.ingredients or []}
    items = {i.id: i for i in db.query(InventoryItem).filter(
        InventoryItem.restaurant_id == r.restaurant_id, InventoryItem.id.in_(ids)).all()} if ids else {}
    cost = Decimal("0")
    try:
        for ing in r.ingredients or []:
            inv = items.get(ing.get("inventoryItemId"))
            if inv is None:
                continue
            qty = convert_qty(Decimal(str(ing.get("quantity", 0))), ing.get("unit"), inv.unit)
            cost += qty * Decimal(str(inv.price or 0))
    except DataError:
        d["cost"] = None
        return d
    d["cost"] = float(cost.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
    return d

@router.get("")
def list_recipes(db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("recipes"))):
    rows = (db.query(Recipe).filter(Recipe.restaurant_id == ctx.restaurant_id)
              .order_by(Recipe.sort_order, Recipe.name).all())
    return [_recipe_out(db, r) for r in rows]

@router.post("", status_code=201)
def create_recipe(body: RecipeIn, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("recipes"))):
    r = Recipe(
        restaurant_id=ctx.restaurant_id,
        name=body.name,
        ingredients=_ingredients(db, ctx.restaurant_id, body.ingredients),
        instructions=body.instructions,
    )
    db.add(r); db.commit()
    return _recipe_out(db, r)

@router.patch("/sort")
def sort_recipes(body: SortIn, db: Session = Depends(get_db),
                 ctx: AccountContext = Depends(require_perm("recipes", "edit"))):
    return {"success": True, "updated": apply_sort(db, Recipe, body.updates, ctx.restaurant_id)}

@router.get("/{recipe_id}")
def get_recipe(recipe_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("recipes"))):
    return _recipe_out(db, get_owned(db, Recipe, recipe_id, ctx.restaurant_id, "Recipe"))

@router.patch("/{recipe_id}")
def update_recipe(recipe_id: str, body: RecipePatch, db: Session = Depends(get_db),
                  ctx: AccountContext = Depends(require_perm("recipes"))):
    r = get_owned(db, Recipe, recipe_id, ctx.restaurant_id, "Recipe")
    data = body.model_dump(exclude_unset=True, exclude={"ingredients"})
    for k, v in data.items():
        setattr(r, k, v)
    if body.ingredients is not None:
        r.ingredients = _ingredients(db, ctx.restaurant_id, body.ingredients)
    db.commit()
    return _recipe_out(db, r)

@router.delete("/{recipe_id}", status_code=204)
def delete_recipe(recipe_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("recipes"))):
    r = get_owned(db, Recipe, recipe_id, ctx.restaurant_id, "Recipe")
    # menu items keep working without a recipe; they just stop tracking stock
    db.query(MenuItem).filter(MenuItem.restaurant_id == ctx.restaurant_id, MenuItem.recipe_id == r.id).update(
        {MenuItem.recipe_id: None}, synchronize_session=False)
    db.delete(r); db.commit()
    return Response(status_code=204)
