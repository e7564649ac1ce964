# restopos/routers/menu.py
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from restopos.db import get_db
from restopos.deps import AccountContext, require_perm, require_restaurant
from restopos.models.core import Addon, Branch, MenuItem, PortionSize, Recipe
from restopos.schemas.menu import MenuItemIn, MenuItemPatch
from restopos.services.billing import split_vat, vat_rate_for
from restopos.services.stock import menu_stock
from restopos.services.tenancy import get_owned
from restopos.util.serialize import row_dict

router = APIRouter(prefix="/menu", tags=["menu"], dependencies=[Depends(require_restaurant)])

def _apply_price(db: Session, m: MenuItem, price: float):
    # menu prices are entered VAT inclusive
    base, vat = split_vat(Decimal(str(price)), vat_rate_for(db, m.restaurant_id))
    m.price = base + vat
    m.base_price = base
    m.vat_amount = vat

@router.get("")
def list_menu(category: Optional[str] = None, db: Session = Depends(get_db),
              ctx: AccountContext = Depends(require_perm("menu"))):
    q = db.query(MenuItem).filter(MenuItem.restaurant_id == ctx.restaurant_id)
    if category:
        q = q.filter(MenuItem.category == category)
    return [row_dict(m) for m in q.order_by(MenuItem.name).all()]

# must stay above /{item_id}
@router.get("/stock")
def stock(branch_id: Optional[str] = None, db: Session = Depends(get_db),
          ctx: AccountContext = Depends(require_perm("menu"))):
    if branch_id:
        get_owned(db, Branch, branch_id, ctx.restaurant_id, "Branch")
    return menu_stock(db, ctx.restaurant_id, branch_id)

@router.get("/{item_id}")
def get_menu_item(item_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("menu"))):
    return row_dict(get_owned(db, MenuItem, item_id, ctx.restaurant_id, "Menu item"))

@router.post("", status_code=201)
def create_menu_item(body: MenuItemIn, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("menu"))):
    if body.recipe_id:
        get_owned(db, Recipe, body.recipe_id, ctx.restaurant_id, "Recipe")
    m = MenuItem(
        restaurant_id=ctx.restaurant_id,
        name=body.name,
        category=body.category,
        description=body.description,
        recipe_id=body.recipe_id,
        portion_size=PortionSize(body.portion_size),
        available=body.available,
    )
    _apply_price(db, m, body.price)
    db.add(m); db.commit()
    return row_dict(m)

@router.patch("/{item_id}")
def update_menu_item(item_id: str, body: MenuItemPatch, db: Session = Depends(get_db),
                     ctx: AccountContext = Depends(require_perm("menu"))):
    m = get_owned(db, MenuItem, item_id, ctx.restaurant_id, "Menu item")
    data = body.model_dump(exclude_unset=True)
    if data.get("recipe_id"):
        get_owned(db, Recipe, data["recipe_id"], ctx.restaurant_id, "Recipe")
    if "price" in data:
        _apply_price(db, m, data.pop("price"))
    if data.get("portion_size"):
        data["portion_size"] = PortionSize(data["portion_size"])
    for k, v in data.items():
        setattr(m, k, v)
    db.commit()
    return row_dict(m)

@router.delete("/{item_id}", status_code=204)
def delete_menu_item(item_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("menu"))):
    m = get_owned(db, MenuItem, item_id, ctx.restaurant_id, "Menu item")
    db.query(Addon).filter(Addon.restaurant_id == ctx.restaurant_id, Addon.menu_item_id == m.id).update(
        {Addon.menu_item_id: None}, synchronize_session=False)
    db.delete(m); db.commit()
    return Response(status_code=204)
