# restopos/routers/branches.py
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from restopos.db import get_db
from restopos.deps import AccountContext, require_perm, require_restaurant
from restopos.models.core import Branch
from restopos.schemas.menu import BranchIn, BranchPatch
from restopos.services.tenancy import get_owned
from restopos.util.serialize import row_dict

router = APIRouter(prefix="/branches", tags=["branches"], dependencies=[Depends(require_restaurant)])

@router.get("")
def list_branches(db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("branches"))):
    rows = db.query(Branch).filter(Branch.restaurant_id == ctx.restaurant_id).order_by(Branch.name).all()
    return [row_dict(b) for b in rows]

@router.get("/{branch_id}")
def get_branch(branch_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("branches"))):
    return row_dict(get_owned(db, Branch, branch_id, ctx.restaurant_id, "Branch"))

@router.post("", status_code=201)
def create_branch(body: BranchIn, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("branches"))):
    b = Branch(restaurant_id=ctx.restaurant_id, **body.model_dump())
    db.add(b); db.commit()
    return row_dict(b)

@router.patch("/{branch_id}")
def update_branch(branch_id: str, body: BranchPatch, db: Session = Depends(get_db),
                  ctx: AccountContext = Depends(require_perm("branches"))):
    b = get_owned(db, Branch, branch_id, ctx.restaurant_id, "Branch")
    for k, v in body.model_dump(exclude_unset=True).items():
        setattr(b, k, v)
    db.commit()
    return row_dict(b)

@router.delete("/{branch_id}", status_code=204)
def delete_branch(branch_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("branches"))):
    b = get_owned(db, Branch, branch_id, ctx.restaurant_id, "Branch")
    db.delete(b); db.commit()
    return Response(status_code=204)
