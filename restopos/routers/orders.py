# restopos/routers/orders.py
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from restopos.db import get_db
from restopos.deps import AccountContext, get_hub, require_perm, require_restaurant
from restopos.schemas.orders import OrderIn, OrderStatusIn
from restopos.services.notify import NotificationHub
from restopos.services.orders import get_order, list_orders, place_order, update_order_status
from restopos.util.serialize import row_dict

router = APIRouter(prefix="/orders", tags=["orders"], dependencies=[Depends(require_restaurant)])

@router.get("")
def orders(branch_id: Optional[str] = None, status: Optional[str] = None, db: Session = Depends(get_db),
           ctx: AccountContext = Depends(require_perm("orders"))):
    return [row_dict(o) for o in list_orders(db, ctx.restaurant_id, branch_id, status)]

@router.get("/{order_id}")
def order_detail(order_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("orders"))):
    return row_dict(get_order(db, order_id, ctx.restaurant_id))

@router.post("", status_code=201)
def create_order(body: OrderIn, db: Session = Depends(get_db), hub: NotificationHub = Depends(get_hub),
                 ctx: AccountContext = Depends(require_perm("orders"))):
    order = place_order(db, ctx, body.model_dump(), hub)
    return row_dict(order)

@router.patch("/{order_id}")
def set_status(order_id: str, body: OrderStatusIn, db: Session = Depends(get_db),
               hub: NotificationHub = Depends(get_hub), ctx: AccountContext = Depends(require_perm("orders"))):
    order = update_order_status(db, order_id, body.status, ctx.restaurant_id, hub, actor_id=ctx.user_id)
    return row_dict(order)
