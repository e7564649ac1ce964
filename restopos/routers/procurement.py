# restopos/routers/procurement.py
"""Purchase records for inventory; receiving one books the quantity into stock."""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy import update
from sqlalchemy.orm import Session

from restopos.db import get_db
from restopos.deps import AccountContext, require_perm, require_restaurant
from restopos.errors import ConflictError, ValidationFailed
from restopos.models.core import Branch, InventoryItem, InventoryMovement, Procurement, ProcurementStatus
from restopos.schemas.purchasing import ProcurementIn, ProcurementPatch
from restopos.services.billing import money
from restopos.services.stock import convert_qty, q3
from restopos.services.tenancy import get_owned
from restopos.util.audit import audit
from restopos.util.serialize import row_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/procurement", tags=["procurement"], dependencies=[Depends(require_restaurant)])

# notes and reference stay editable after receipt
_ALWAYS_EDITABLE = {"notes", "reference"}

def _receive(db: Session, p: Procurement, item: InventoryItem):
    """Add the purchased quantity to the item, in the item's unit, and log the movement; no commit."""
    qty = q3(convert_qty(Decimal(str(p.quantity)), p.unit, item.unit))
    db.execute(
        update(InventoryItem)
        .where(InventoryItem.id == item.id, InventoryItem.restaurant_id == p.restaurant_id)
        .values(quantity=InventoryItem.quantity + qty)
        .execution_options(synchronize_session=False)
    )
    db.add(InventoryMovement(
        restaurant_id=p.restaurant_id, inventory_item_id=item.id, procurement_id=p.id,
        qty_change=qty, reason=f"Procurement {p.reference or p.id}",
    ))
    p.status = ProcurementStatus.RECEIVED
    p.received_at = datetime.now(timezone.utc)
    logger.info(f"Procurement {p.id} received: +{qty} {item.unit} {item.name}")

@router.get("")
def list_procurements(type: Optional[str] = None, status: Optional[str] = None, branch_id: Optional[str] = None,
                      db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("procurement"))):
    q = db.query(Procurement).filter(Procurement.restaurant_id == ctx.restaurant_id)
    if type:
        q = q.filter(Procurement.type == type)
    if status:
        try:
            q = q.filter(Procurement.status == ProcurementStatus(status))
        except ValueError:
            raise ValidationFailed("Invalid procurement status", fields={"status": status})
    if branch_id:
        q = q.filter(Procurement.branch_id == branch_id)
    return [row_dict(p) for p in q.order_by(Procurement.created_at.desc()).all()]

@router.get("/{procurement_id}")
def get_procurement(procurement_id: str, db: Session = Depends(get_db),
                    ctx: AccountContext = Depends(require_perm("procurement"))):
    return row_dict(get_owned(db, Procurement, procurement_id, ctx.restaurant_id, "Procurement"))

@router.post("", status_code=201)
def create_procurement(body: ProcurementIn, db: Session = Depends(get_db),
                       ctx: AccountContext = Depends(require_perm("procurement"))):
    item = get_owned(db, InventoryItem, body.inventory_item_id, ctx.restaurant_id, "Inventory item")
    if body.branch_id:
        get_owned(db, Branch, body.branch_id, ctx.restaurant_id, "Branch")
    unit = body.unit or item.unit
    # incompatible units fail here, not at receipt time
    convert_qty(Decimal(str(body.quantity)), unit, item.unit)

    p = Procurement(
        restaurant_id=ctx.restaurant_id,
        branch_id=body.branch_id or item.branch_id,
        type=body.type,
        inventory_item_id=item.id,
        supplier=body.supplier or item.supplier,
        quantity=q3(body.quantity),
        unit=unit,
        unit_price=money(body.unit_price),
        total_cost=money(Decimal(str(body.quantity)) * Decimal(str(body.unit_price))),
        status=ProcurementStatus.PENDING,
        reference=body.reference,
        notes=body.notes,
        created_by=ctx.user_id,
    )
    db.add(p)
    db.flush()
    if body.status == "received":
        _receive(db, p, item)
    elif body.status == "cancelled":
        p.status = ProcurementStatus.CANCELLED
    audit(db, ctx.user_id, "Procurement", p.id, "CREATE", restaurant_id=ctx.restaurant_id,
          after={"item": item.name, "quantity": body.quantity, "unit": unit, "status": p.status.value})
    db.commit()
    return row_dict(p)

@router.patch("/{procurement_id}")
def update_procurement(procurement_id: str, body: ProcurementPatch, db: Session = Depends(get_db),
                       ctx: AccountContext = Depends(require_perm("procurement"))):
    p = get_owned(db, Procurement, procurement_id, ctx.restaurant_id, "Procurement")
    data = body.model_dump(exclude_unset=True)
    new_status = data.pop("status", None)

    if p.status is not ProcurementStatus.PENDING:
        locked = (set(data) - _ALWAYS_EDITABLE) or (new_status and new_status != p.status.value)
        if locked:
            raise ConflictError(f"Procurement is already {p.status.value}")

    item = get_owned(db, InventoryItem, p.inventory_item_id, ctx.restaurant_id, "Inventory item")
    for k, v in data.items():
        setattr(p, k, v)
    if "quantity" in data or "unit" in data:
        convert_qty(Decimal(str(p.quantity)), p.unit, item.unit)
        p.quantity = q3(p.quantity)
    if "quantity" in data or "unit_price" in data:
        p.unit_price = money(p.unit_price)
        p.total_cost = money(Decimal(str(p.quantity)) * Decimal(str(p.unit_price)))

    if new_status == "received" and p.status is ProcurementStatus.PENDING:
        _receive(db, p, item)
    elif new_status == "cancelled" and p.status is ProcurementStatus.PENDING:
        p.status = ProcurementStatus.CANCELLED
    audit(db, ctx.user_id, "Procurement", p.id, "UPDATE", restaurant_id=ctx.restaurant_id,
          after={**data, **({"status": new_status} if new_status else {})})
    db.commit()
    return row_dict(p)

@router.delete("/{procurement_id}", status_code=204)
def delete_procurement(procurement_id: str, db: Session = Depends(get_db),
                       ctx: AccountContext = Depends(require_perm("procurement"))):
    p = get_owned(db, Procurement, procurement_id, ctx.restaurant_id, "Procurement")
    if p.status is ProcurementStatus.RECEIVED:
        raise ConflictError("Received procurement cannot be deleted")
    db.delete(p); db.commit()
    return Response(status_code=204)
