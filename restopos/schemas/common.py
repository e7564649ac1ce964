from pydantic import BaseModel, Field, field_validator
from typing import Optional, Any

class Msg(BaseModel):
    message: str

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    account_type: str
    user: dict[str, Any]
    restaurant: Optional[dict[str, Any]] = None

class SortUpdate(BaseModel):
    id: str
    sort_order: int = Field(ge=0)

class SortIn(BaseModel):
    updates: list[SortUpdate] = Field(min_length=1)

def not_null(*fields: str):
    """PATCH fields that may be left out but not sent as null."""
    def _check(cls, v):
        if v is None:
            raise ValueError("may not be null")
        return v
    return field_validator(*fields)(_check)
