import jwt
import secrets
from datetime import datetime, timedelta, timezone
from argon2 import PasswordHasher
from argon2.exceptions import VerificationError, InvalidHashError
from restopos.config import settings

ph = PasswordHasher()

def hash_pw(p: str) -> str:
    return ph.hash(p)

def verify_pw(hashv: str, p: str) -> bool:
    try:
        ph.verify(hashv, p)
        return True
    except (VerificationError, InvalidHashError):
        return False

def session_expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=settings.SESSION_TTL_MIN)

def create_token(sub: str, sid: str, exp: datetime) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": sub, "sid": sid, "iss": settings.JWT_ISS, "iat": int(now.timestamp()), "exp": int(exp.timestamp())}
    return jwt.encode(payload, settings.APP_SECRET, algorithm="HS256")

def decode_token(token: str) -> dict:
    """Raises jwt.PyJWTError on a bad signature, issuer or expiry."""
    return jwt.decode(token, settings.APP_SECRET, algorithms=["HS256"], issuer=settings.JWT_ISS,
                      options={"require": ["sub", "sid", "exp"]})

def reset_token() -> str:
    return secrets.token_hex(32)
