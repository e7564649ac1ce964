# restopos/routers/users.py
import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from restopos.db import get_db
from restopos.deps import AccountContext, get_hub, require_perm, require_restaurant
from restopos.errors import AuthorizationError, ValidationFailed
from restopos.models.core import Branch, Conversation, ConversationMember, ConversationType, User, UserRole
from restopos.schemas.accounts import UserIn, UserPatch
from restopos.services.notify import NotificationHub
from restopos.services.permissions import ADMIN_PERMISSIONS, serialize_permission_set
from restopos.services.tenancy import get_owned
from restopos.util.audit import audit
from restopos.util.security import hash_pw
from restopos.util.serialize import user_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"], dependencies=[Depends(require_restaurant)])


def _admin_only(ctx: AccountContext):
    if ctx.role != UserRole.ADMIN.value:
        raise AuthorizationError("Admin access required")


# ── Users ───────────────────────────────────────────────────────────────────

@router.get("")
def list_users(db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("users"))):
    _admin_only(ctx)
    rows = db.query(User).filter(User.restaurant_id == ctx.restaurant_id).order_by(User.full_name).all()
    return [user_dict(u) for u in rows]

@router.get("/{user_id}")
def get_user(user_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("users"))):
    _admin_only(ctx)
    return user_dict(get_owned(db, User, user_id, ctx.restaurant_id, "User"))

@router.post("", status_code=201)
def create_user(body: UserIn, db: Session = Depends(get_db), hub: NotificationHub = Depends(get_hub),
                ctx: AccountContext = Depends(require_perm("users"))):
    _admin_only(ctx)
    if db.query(User.id).filter(User.username == body.username).first():
        raise ValidationFailed("Username already exists", fields={"username": body.username})
    if body.branch_id:
        get_owned(db, Branch, body.branch_id, ctx.restaurant_id, "Branch")

    role = UserRole(body.role)
    u = User(
        restaurant_id=ctx.restaurant_id,
        branch_id=body.branch_id,
        username=body.username,
        full_name=body.full_name,
        email=body.email,
        phone=body.phone,
        pass_hash=hash_pw(body.password),
        role=role,
        # stored already normalized; readers never see the legacy shape
        permissions=ADMIN_PERMISSIONS if role == UserRole.ADMIN else serialize_permission_set(body.permissions),
        active=True,
    )
    db.add(u); db.flush()

    # everyone joins the restaurant-wide channels
    channels = db.query(Conversation).filter(Conversation.restaurant_id == ctx.restaurant_id,
                                             Conversation.type == ConversationType.CHANNEL,
                                             Conversation.scope == "restaurant").all()
    for c in channels:
        db.add(ConversationMember(restaurant_id=ctx.restaurant_id, conversation_id=c.id, user_id=u.id))
    audit(db, ctx.user_id, "User", u.id, "CREATE", restaurant_id=ctx.restaurant_id,
          after={"username": u.username, "role": role.value})
    db.commit()
    for c in channels:
        hub.join_conversation(ctx.restaurant_id, u.id, c.id)
    logger.info(f"User {u.username} created in restaurant {ctx.restaurant_id}")
    return user_dict(u)

@router.patch("/{user_id}")
def update_user(user_id: str, body: UserPatch, db: Session = Depends(get_db),
                ctx: AccountContext = Depends(require_perm("users"))):
    _admin_only(ctx)
    u = get_owned(db, User, user_id, ctx.restaurant_id, "User")
    data = body.model_dump(exclude_unset=True)
    if data.get("branch_id"):
        get_owned(db, Branch, data["branch_id"], ctx.restaurant_id, "Branch")
    if "password" in data:
        u.pass_hash = hash_pw(data.pop("password"))
    if "permissions" in data:
        raw = data.pop("permissions")
        if u.role != UserRole.ADMIN:
            u.permissions = serialize_permission_set(raw)
    if data.get("active") is False and u.id == ctx.user_id:
        raise ValidationFailed("Cannot deactivate your own account")
    for k, v in data.items():
        setattr(u, k, v)
    audit(db, ctx.user_id, "User", u.id, "UPDATE", restaurant_id=ctx.restaurant_id,
          after={k: v for k, v in body.model_dump(exclude_unset=True).items() if k != "password"})
    db.commit()
    return user_dict(u)

@router.delete("/{user_id}", status_code=204)
def delete_user(user_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("users"))):
    _admin_only(ctx)
    if user_id == ctx.user_id:
        raise ValidationFailed("Cannot delete your own account")
    u = get_owned(db, User, user_id, ctx.restaurant_id, "User")
    # history rows point at the user, so accounts are deactivated rather than removed
    u.active = False
    audit(db, ctx.user_id, "User", u.id, "DELETE", restaurant_id=ctx.restaurant_id)
    db.commit()
    return Response(status_code=204)
