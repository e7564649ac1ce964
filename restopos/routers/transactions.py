# restopos/routers/transactions.py
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from restopos.db import get_db
from restopos.deps import AccountContext, require_restaurant
from restopos.models.core import Branch, Order, PayMode, Transaction
from restopos.schemas.orders import TransactionIn
from restopos.services.tenancy import get_owned
from restopos.util.serialize import row_dict

router = APIRouter(prefix="/transactions", tags=["transactions"])

@router.get("")
def list_transactions(branch_id: Optional[str] = None, start: Optional[datetime] = None, end: Optional[datetime] = None,
                      db: Session = Depends(get_db), ctx: AccountContext = Depends(require_restaurant)):
    q = db.query(Transaction).filter(Transaction.restaurant_id == ctx.restaurant_id)
    if branch_id:
        q = q.filter(Transaction.branch_id == branch_id)
    if start:
        q = q.filter(Transaction.created_at >= start)
    if end:
        q = q.filter(Transaction.created_at <= end)
    return [row_dict(t) for t in q.order_by(Transaction.created_at.desc()).all()]

@router.get("/{txn_id}")
def get_transaction(txn_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_restaurant)):
    return row_dict(get_owned(db, Transaction, txn_id, ctx.restaurant_id, "Transaction"))

@router.post("", status_code=201)
def create_transaction(body: TransactionIn, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_restaurant)):
    if body.order_id:
        get_owned(db, Order, body.order_id, ctx.restaurant_id, "Order")
    if body.branch_id:
        get_owned(db, Branch, body.branch_id, ctx.restaurant_id, "Branch")
    data = body.model_dump()
    data["payment_method"] = PayMode(data["payment_method"])
    t = Transaction(restaurant_id=ctx.restaurant_id, **data)
    db.add(t); db.commit()
    return row_dict(t)
