# restopos/routers/auth.py
import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from restopos.config import settings
from restopos.db import get_db
from restopos.deps import AccountContext, require_auth
from restopos.errors import AuthenticationError, AuthorizationError, ValidationFailed
from restopos.models.core import (
    AuthSession, BusinessType, Conversation, ConversationMember, ConversationType,
    Restaurant, SetupState, User, UserRole,
)
from restopos.schemas.accounts import ForgotPasswordIn, ITSignupIn, LoginIn, ResetPasswordIn, SignupIn
from restopos.schemas.common import Msg, Token
from restopos.services.billing import next_number
from restopos.services.permissions import ADMIN_PERMISSIONS, IT_PERMISSIONS
from restopos.util.security import create_token, hash_pw, reset_token, session_expiry, verify_pw
from restopos.util.serialize import row_dict, user_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

RESET_MESSAGE = "If an account with that email exists, we've sent a password reset link"
RESET_TTL = timedelta(hours=1)


def _username_taken(db: Session, username: str) -> bool:
    return db.query(User.id).filter(User.username == username).first() is not None


def _as_utc(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


@router.post("/signup", status_code=201)
def signup(body: SignupIn, db: Session = Depends(get_db)):
    if body.business_type == "factory" and body.subscription_plan == "weekly":
        raise ValidationFailed("Factory businesses can only have monthly or yearly subscription plans")
    if _username_taken(db, body.username):
        raise ValidationFailed("Username already exists", fields={"username": body.username})

    # phase 1: tenant stays pending_setup until everything below exists
    r = Restaurant(
        name=body.restaurant_name,
        business_type=BusinessType(body.business_type),
        type=body.restaurant_type,
        vat_number=body.vat_number,
        commercial_registration=body.commercial_registration,
        subscription_plan=body.subscription_plan,
        branches_count=body.branches_count,
        setup_state=SetupState.PENDING_SETUP,
    )
    db.add(r); db.flush()
    u = User(
        restaurant_id=r.id,
        username=body.username,
        full_name=body.full_name,
        email=body.email,
        pass_hash=hash_pw(body.password),
        role=UserRole.ADMIN,
        permissions=ADMIN_PERMISSIONS,
        active=True,
    )
    db.add(u); db.flush()
    general = Conversation(restaurant_id=r.id, type=ConversationType.CHANNEL, name="General",
                           scope="restaurant", created_by=u.id)
    db.add(general); db.flush()
    db.add(ConversationMember(restaurant_id=r.id, conversation_id=general.id, user_id=u.id))
    db.commit()

    # subscription invoice number is best-effort; signup never fails on it
    try:
        r.subscription_invoice_no = next_number(db, Restaurant.subscription_invoice_no, None, "SUB")
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning(f"Subscription invoice number not assigned for restaurant {r.id}", exc_info=True)

    # phase 2: activation is the last write
    r.setup_state = SetupState.ACTIVE
    db.commit()
    logger.info(f"Restaurant {r.id} signed up with admin {u.username}")
    return {
        "id": u.id,
        "username": u.username,
        "full_name": u.full_name,
        "role": u.role.value,
        "restaurant_id": r.id,
        "subscription_invoice_no": r.subscription_invoice_no,
    }


@router.post("/it-signup", status_code=201)
def it_signup(body: ITSignupIn, db: Session = Depends(get_db)):
    if not settings.IT_SIGNUP_SECRET or body.secret_key != settings.IT_SIGNUP_SECRET:
        logger.warning(f"IT signup rejected for {body.username}: bad secret key")
        raise AuthorizationError("Invalid secret key")
    if _username_taken(db, body.username):
        raise ValidationFailed("Username already exists", fields={"username": body.username})
    u = User(
        restaurant_id=None,
        username=body.username,
        full_name=body.full_name,
        email=body.email,
        pass_hash=hash_pw(body.password),
        role=UserRole.ADMIN,
        permissions=IT_PERMISSIONS,
        active=True,
    )
    db.add(u); db.commit()
    logger.info(f"IT account created: {u.username}")
    return {"message": "IT account created successfully", "user": user_dict(u)}


@router.post("/login", response_model=Token)
def login(body: LoginIn, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.username == body.username).first()
    if not user or not user.active or not verify_pw(user.pass_hash, body.password):
        raise AuthenticationError("Invalid credentials")

    restaurant = None
    if user.restaurant_id is not None:
        restaurant = db.get(Restaurant, user.restaurant_id)
        if restaurant is None or restaurant.setup_state != SetupState.ACTIVE:
            raise AuthorizationError("Restaurant setup is not complete")

    exp = session_expiry()
    sess = AuthSession(user_id=user.id, expires_at=exp)
    db.add(sess)
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()

    account_type = "it" if user.restaurant_id is None else "client"
    return Token(
        access_token=create_token(user.id, sess.id, exp),
        account_type=account_type,
        user=user_dict(user),
        restaurant=row_dict(restaurant) if restaurant else None,
    )


@router.post("/logout", response_model=Msg)
def logout(ctx: AccountContext = Depends(require_auth), db: Session = Depends(get_db)):
    sess = db.get(AuthSession, ctx.session_id)
    if sess and sess.revoked_at is None:
        sess.revoked_at = datetime.now(timezone.utc)
        db.commit()
    return Msg(message="Logged out successfully")


@router.get("/me")
def me(ctx: AccountContext = Depends(require_auth), db: Session = Depends(get_db)):
    user = db.get(User, ctx.user_id)
    restaurant = db.get(Restaurant, ctx.restaurant_id) if ctx.restaurant_id else None
    return {
        "user": user_dict(user),
        "restaurant": row_dict(restaurant) if restaurant else None,
        "account_type": ctx.account_type,
    }


@router.post("/forgot-password", response_model=Msg)
def forgot_password(body: ForgotPasswordIn, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == body.email, User.active.is_(True)).first()
    if user:
        user.reset_token = reset_token()
        user.reset_expires_at = datetime.now(timezone.utc) + RESET_TTL
        db.commit()
        if settings.APP_ENV == "dev":
            logger.info(f"Password reset token for {body.email}: {user.reset_token}")
    # same answer whether or not the account exists
    return Msg(message=RESET_MESSAGE)


@router.post("/reset-password", response_model=Msg)
def reset_password(body: ResetPasswordIn, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.reset_token == body.token).first()
    if (not user or user.reset_expires_at is None
            or _as_utc(user.reset_expires_at) <= datetime.now(timezone.utc)):
        raise ValidationFailed("Invalid or expired reset token")
    user.pass_hash = hash_pw(body.password)
    user.reset_token = None
    user.reset_expires_at = None
    # existing sessions die with the old password
    db.query(AuthSession).filter(AuthSession.user_id == user.id, AuthSession.revoked_at.is_(None)).update(
        {AuthSession.revoked_at: datetime.now(timezone.utc)}, synchronize_session=False)
    db.commit()
    return Msg(message="Password reset successful")
