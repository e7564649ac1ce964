# restopos/routers/inventory.py
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy import or_
from sqlalchemy.orm import Session

from restopos.config import settings
from restopos.db import get_db
from restopos.deps import AccountContext, require_perm, require_restaurant
from restopos.errors import ConflictError
from restopos.models.core import Addon, Branch, InventoryItem, InventoryMovement, Procurement, Recipe
from restopos.schemas.common import SortIn
from restopos.schemas.menu import InventoryItemIn, InventoryItemPatch
from restopos.services.tenancy import apply_sort, get_owned
from restopos.util.serialize import row_dict

router = APIRouter(prefix="/inventory", tags=["inventory"], dependencies=[Depends(require_restaurant)])

def _stock_status(qty: float) -> str:
    if qty <= 0:
        return "Out of Stock"
    if qty <= settings.LOW_STOCK_THRESHOLD:
        return "Low Stock"
    return "In Stock"

def _item_out(i: InventoryItem) -> dict:
    d = row_dict(i)
    d["status"] = _stock_status(d["quantity"] or 0)
    return d

def _check_branch(db: Session, branch_id: Optional[str], restaurant_id: str):
    if branch_id:
        get_owned(db, Branch, branch_id, restaurant_id, "Branch")

@router.get("")
def list_inventory(branch_id: Optional[str] = None, db: Session = Depends(get_db),
                   ctx: AccountContext = Depends(require_perm("inventory"))):
    q = db.query(InventoryItem).filter(InventoryItem.restaurant_id == ctx.restaurant_id)
    # tenant-wide rows serve every branch
    if branch_id:
        q = q.filter(or_(InventoryItem.branch_id == branch_id, InventoryItem.branch_id.is_(None)))
    rows = q.order_by(InventoryItem.sort_order, InventoryItem.name).all()
    return [_item_out(i) for i in rows]

@router.post("", status_code=201)
def create_inventory_item(body: InventoryItemIn, db: Session = Depends(get_db),
                          ctx: AccountContext = Depends(require_perm("inventory"))):
    _check_branch(db, body.branch_id, ctx.restaurant_id)
    i = InventoryItem(restaurant_id=ctx.restaurant_id, **body.model_dump())
    db.add(i); db.commit()
    return _item_out(i)

# declared before /{item_id} so "sort" is not taken for an id
@router.patch("/sort")
def sort_inventory(body: SortIn, db: Session = Depends(get_db),
                   ctx: AccountContext = Depends(require_perm("inventory", "edit"))):
    return {"success": True, "updated": apply_sort(db, InventoryItem, body.updates, ctx.restaurant_id)}

@router.get("/{item_id}")
def get_inventory_item(item_id: str, db: Session = Depends(get_db),
                       ctx: AccountContext = Depends(require_perm("inventory"))):
    return _item_out(get_owned(db, InventoryItem, item_id, ctx.restaurant_id, "Item"))

@router.patch("/{item_id}")
def update_inventory_item(item_id: str, body: InventoryItemPatch, db: Session = Depends(get_db),
                          ctx: AccountContext = Depends(require_perm("inventory"))):
    i = get_owned(db, InventoryItem, item_id, ctx.restaurant_id, "Item")
    data = body.model_dump(exclude_unset=True)
    _check_branch(db, data.get("branch_id"), ctx.restaurant_id)
    for k, v in data.items():
        setattr(i, k, v)
    db.commit()
    return _item_out(i)

def _references(db: Session, i: InventoryItem) -> list[str]:
    """What still points at ``i``; recipe ingredients live in JSON, so those are scanned."""
    refs = []
    recipes = [r.name for r in db.query(Recipe).filter(Recipe.restaurant_id == i.restaurant_id).all()
               if any(ing.get("inventoryItemId") == i.id for ing in r.ingredients or [])]
    if recipes:
        refs.append("recipes: " + ", ".join(sorted(recipes)))
    addons = [name for (name,) in db.query(Addon.name).filter(
        Addon.restaurant_id == i.restaurant_id, Addon.inventory_item_id == i.id)]
    if addons:
        refs.append("add-ons: " + ", ".join(sorted(addons)))
    for model, label in ((Procurement, "procurement records"), (InventoryMovement, "stock movements")):
        if db.query(model.id).filter(model.restaurant_id == i.restaurant_id, model.inventory_item_id == i.id).first():
            refs.append(label)
    return refs

@router.delete("/{item_id}", status_code=204)
def delete_inventory_item(item_id: str, db: Session = Depends(get_db),
                          ctx: AccountContext = Depends(require_perm("inventory"))):
    i = get_owned(db, InventoryItem, item_id, ctx.restaurant_id, "Item")
    refs = _references(db, i)
    if refs:
        raise ConflictError(f"{i.name} is still in use ({'; '.join(refs)})")
    db.delete(i); db.commit()
    return Response(status_code=204)
