import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from restopos.db import get_db
from restopos.errors import AuthenticationError, AuthorizationError
from restopos.models.core import AuthSession, User
from restopos.services.notify import NotificationHub
from restopos.services.permissions import AccountSnapshot, Action, action_for_method, check_access
from restopos.util.security import decode_token

logger = logging.getLogger(__name__)

auth_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AccountContext:
    user_id: str
    session_id: str
    restaurant_id: str | None
    account_type: Literal["client", "it"]
    role: str
    permissions: dict
    full_name: str

    @property
    def snapshot(self) -> AccountSnapshot:
        return AccountSnapshot(restaurant_id=self.restaurant_id, role=self.role, permissions=self.permissions)


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def resolve_context(db: Session, token: str | None) -> AccountContext:
    if not token:
        raise AuthenticationError()
    try:
        data = decode_token(token)
    except jwt.PyJWTError:
        raise AuthenticationError("Invalid session")

    sess = db.get(AuthSession, data["sid"])
    now = datetime.now(timezone.utc)
    if (not sess or sess.user_id != data["sub"] or sess.revoked_at is not None
            or _as_utc(sess.expires_at) <= now):
        raise AuthenticationError("Invalid session")

    user = db.get(User, data["sub"])
    if not user or not user.active:
        raise AuthenticationError()

    # account type is derived, never read from the client
    account_type = "it" if user.restaurant_id is None else "client"
    return AccountContext(
        user_id=user.id,
        session_id=sess.id,
        restaurant_id=user.restaurant_id,
        account_type=account_type,
        role=user.role.value,
        permissions=dict(user.permissions or {}),
        full_name=user.full_name,
    )


def _touch_activity(db: Session, user_id: str):
    try:
        db.query(User).filter(User.id == user_id).update(
            {User.last_activity_at: datetime.now(timezone.utc)}, synchronize_session=False)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning(f"Failed to update activity for user {user_id}", exc_info=True)


def require_auth(creds: HTTPAuthorizationCredentials | None = Depends(auth_scheme),
                 db: Session = Depends(get_db)) -> AccountContext:
    ctx = resolve_context(db, creds.credentials if creds else None)
    _touch_activity(db, ctx.user_id)
    return ctx


def require_restaurant(ctx: AccountContext = Depends(require_auth)) -> AccountContext:
    if ctx.restaurant_id is None:
        raise AuthorizationError("This endpoint requires a restaurant account")
    return ctx


def require_it_account(ctx: AccountContext = Depends(require_auth)) -> AccountContext:
    if ctx.account_type != "it":
        raise AuthorizationError("Access denied. IT account required.")
    return ctx


def require_perm(feature: str, action: Action | None = None):
    """Gate a route on ``feature``; the action defaults to the one implied by the HTTP method."""
    def _dep(request: Request, ctx: AccountContext = Depends(require_auth)) -> AccountContext:
        wanted = action or action_for_method(request.method)
        decision = check_access(ctx.snapshot, feature, wanted)
        if not decision:
            raise AuthorizationError(decision.reason or "Permission denied")
        return ctx
    return _dep


def get_hub(request: Request) -> NotificationHub:
    return request.app.state.hub
