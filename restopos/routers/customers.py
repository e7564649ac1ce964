# restopos/routers/customers.py
from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from restopos.db import get_db
from restopos.deps import AccountContext, require_perm, require_restaurant
from restopos.errors import ConflictError, ValidationFailed
from restopos.models.core import Customer
from restopos.schemas.purchasing import CustomerIn, CustomerPatch
from restopos.services.tenancy import get_owned
from restopos.util.serialize import row_dict

router = APIRouter(prefix="/customers", tags=["customers"], dependencies=[Depends(require_restaurant)])

def _by_phone(db: Session, restaurant_id: str, phone: str) -> Customer | None:
    return db.query(Customer).filter(Customer.restaurant_id == restaurant_id, Customer.phone == phone).first()

@router.get("")
def list_customers(db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("customers"))):
    rows = db.query(Customer).filter(Customer.restaurant_id == ctx.restaurant_id).order_by(Customer.name).all()
    return [row_dict(c) for c in rows]

@router.get("/{customer_id}")
def get_customer(customer_id: str, db: Session = Depends(get_db),
                 ctx: AccountContext = Depends(require_perm("customers"))):
    return row_dict(get_owned(db, Customer, customer_id, ctx.restaurant_id, "Customer"))

@router.post("", status_code=201)
def create_customer(body: CustomerIn, upsert: bool = False, db: Session = Depends(get_db),
                    ctx: AccountContext = Depends(require_perm("customers"))):
    """``?upsert=true`` is the POS auto-save: match on phone, refresh the name, answer 200."""
    if upsert:
        if not body.phone:
            raise ValidationFailed("Name and phone are required for upsert", fields={"phone": "required"})
        existing = _by_phone(db, ctx.restaurant_id, body.phone)
        if existing:
            existing.name = body.name
            db.commit()
            return JSONResponse(row_dict(existing), status_code=200)

    c = Customer(restaurant_id=ctx.restaurant_id, **body.model_dump())
    db.add(c)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("A customer with this phone number already exists")
    if upsert:
        return JSONResponse(row_dict(c), status_code=200)
    return row_dict(c)

@router.patch("/{customer_id}")
def update_customer(customer_id: str, body: CustomerPatch, db: Session = Depends(get_db),
                    ctx: AccountContext = Depends(require_perm("customers"))):
    c = get_owned(db, Customer, customer_id, ctx.restaurant_id, "Customer")
    for k, v in body.model_dump(exclude_unset=True).items():
        setattr(c, k, v)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("A customer with this phone number already exists")
    return row_dict(c)

@router.delete("/{customer_id}", status_code=204)
def delete_customer(customer_id: str, db: Session = Depends(get_db),
                    ctx: AccountContext = Depends(require_perm("customers"))):
    c = get_owned(db, Customer, customer_id, ctx.restaurant_id, "Customer")
    db.delete(c); db.commit()
    return Response(status_code=204)
