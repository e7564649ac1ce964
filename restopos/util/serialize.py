from datetime import datetime
from decimal import Decimal
from enum import Enum

def _plain(v):
    if isinstance(v, Enum):
        return v.value
    if isinstance(v, Decimal):
        return float(v)
    if isinstance(v, datetime):
        return v.isoformat()
    return v

def row_dict(obj, exclude: tuple[str, ...] = ()) -> dict:
    """Column values of an ORM row as JSON-ready primitives."""
    return {
        c.key: _plain(getattr(obj, c.key))
        for c in obj.__table__.columns
        if c.key not in exclude
    }

_USER_PRIVATE = ("pass_hash", "reset_token", "reset_expires_at")

def user_dict(u) -> dict:
    return row_dict(u, exclude=_USER_PRIVATE)
