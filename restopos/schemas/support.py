from pydantic import BaseModel, Field
from typing import Optional, Literal

from restopos.schemas.common import not_null

TicketStatusLiteral = Literal["open", "in-progress", "resolved", "closed"]
PriorityLiteral = Literal["low", "medium", "high", "urgent"]

class TicketIn(BaseModel):
    subject: str = Field(min_length=1)
    category: str = Field(min_length=1)
    priority: PriorityLiteral = "medium"
    description: Optional[str] = None

class TicketPatch(BaseModel):
    subject: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = None
    priority: Optional[PriorityLiteral] = None
    description: Optional[str] = None
    status: Optional[TicketStatusLiteral] = None
    check_not_null = not_null("subject", "category", "priority", "status")

class TicketMessageIn(BaseModel):
    message: str = Field(min_length=1)

class TicketAssignIn(BaseModel):
    assigned_to: str

class ChannelIn(BaseModel):
    name: str = Field(min_length=1)
    scope: Literal["restaurant", "branch"] = "restaurant"
    branch_id: Optional[str] = None

class DirectIn(BaseModel):
    other_user_id: str

class ChatMessageIn(BaseModel):
    content: str

class SettingsPatch(BaseModel):
    language: Optional[str] = None
    vat_number: Optional[str] = None
    vat_rate: Optional[float] = Field(default=None, ge=0, le=1)
    address: Optional[str] = None
    phone: Optional[str] = None
    receipt_footer: Optional[str] = None
    check_not_null = not_null("language")
