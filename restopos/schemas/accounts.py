from pydantic import BaseModel, Field, EmailStr
from typing import Optional, Literal, Any

from restopos.schemas.common import not_null

class SignupIn(BaseModel):
    restaurant_name: str = Field(min_length=1)
    business_type: Literal["restaurant", "factory"] = "restaurant"
    restaurant_type: Optional[str] = None
    vat_number: Optional[str] = None
    commercial_registration: Optional[str] = None
    subscription_plan: str = "monthly"
    branches_count: int = Field(default=1, ge=1)
    username: str = Field(min_length=3)
    password: str = Field(min_length=6)
    full_name: str = Field(min_length=1)
    email: Optional[EmailStr] = None

class ITSignupIn(BaseModel):
    username: str = Field(min_length=3)
    password: str = Field(min_length=6)
    full_name: str = Field(min_length=1)
    email: EmailStr
    secret_key: str

class LoginIn(BaseModel):
    username: str
    password: str

class ForgotPasswordIn(BaseModel):
    email: EmailStr

class ResetPasswordIn(BaseModel):
    token: str
    password: str = Field(min_length=6)

class UserIn(BaseModel):
    username: str = Field(min_length=3)
    password: str = Field(min_length=6)
    full_name: str = Field(min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    role: Literal["admin", "employee"] = "employee"
    branch_id: Optional[str] = None
    permissions: dict[str, Any] = {}

class UserPatch(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=6)
    branch_id: Optional[str] = None
    active: Optional[bool] = None
    permissions: Optional[dict[str, Any]] = None
    check_not_null = not_null("full_name", "password", "active", "permissions")

class AccountStatusIn(BaseModel):
    active: bool
