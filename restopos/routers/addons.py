# restopos/routers/addons.py
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from restopos.db import get_db
from restopos.deps import AccountContext, require_perm, require_restaurant
from restopos.errors import ValidationFailed
from restopos.models.core import Addon, InventoryItem, MenuItem
from restopos.schemas.common import SortIn
from restopos.schemas.menu import AddonIn, AddonPatch
from restopos.services.tenancy import apply_sort, get_owned
from restopos.util.serialize import row_dict

router = APIRouter(prefix="/addons", tags=["addons"], dependencies=[Depends(require_restaurant)])

def _check_links(db: Session, restaurant_id: str, a: Addon):
    if a.menu_item_id:
        get_owned(db, MenuItem, a.menu_item_id, restaurant_id, "Menu item")
    if a.inventory_item_id:
        get_owned(db, InventoryItem, a.inventory_item_id, restaurant_id, "Inventory item")
        if not a.quantity or a.quantity <= 0:
            raise ValidationFailed("Add-ons linked to inventory need a positive quantity",
                                   fields={"quantity": "required"})

@router.get("")
def list_addons(menu_item_id: Optional[str] = None, db: Session = Depends(get_db),
                ctx: AccountContext = Depends(require_perm("menu"))):
    q = db.query(Addon).filter(Addon.restaurant_id == ctx.restaurant_id)
    if menu_item_id:
        q = q.filter(Addon.menu_item_id == menu_item_id)
    return [row_dict(a) for a in q.order_by(Addon.sort_order, Addon.name).all()]

@router.post("", status_code=201)
def create_addon(body: AddonIn, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("menu"))):
    a = Addon(restaurant_id=ctx.restaurant_id, **body.model_dump())
    _check_links(db, ctx.restaurant_id, a)
    db.add(a); db.commit()
    return row_dict(a)

@router.patch("/sort-order")
def sort_addons(body: SortIn, db: Session = Depends(get_db),
                ctx: AccountContext = Depends(require_perm("menu", "edit"))):
    return {"success": True, "updated": apply_sort(db, Addon, body.updates, ctx.restaurant_id)}

@router.get("/{addon_id}")
def get_addon(addon_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("menu"))):
    return row_dict(get_owned(db, Addon, addon_id, ctx.restaurant_id, "Add-on"))

@router.patch("/{addon_id}")
def update_addon(addon_id: str, body: AddonPatch, db: Session = Depends(get_db),
                 ctx: AccountContext = Depends(require_perm("menu"))):
    a = get_owned(db, Addon, addon_id, ctx.restaurant_id, "Add-on")
    for k, v in body.model_dump(exclude_unset=True).items():
        setattr(a, k, v)
    _check_links(db, ctx.restaurant_id, a)
    db.commit()
    return row_dict(a)

@router.delete("/{addon_id}", status_code=204)
def delete_addon(addon_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("menu"))):
    a = get_owned(db, Addon, addon_id, ctx.restaurant_id, "Add-on")
    db.delete(a); db.commit()
    return Response(status_code=204)
