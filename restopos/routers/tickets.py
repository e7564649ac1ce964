# restopos/routers/tickets.py
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from restopos.db import get_db
from restopos.deps import AccountContext, get_hub, require_auth, require_restaurant
from restopos.errors import AuthorizationError, ConflictError, NotFoundError, ValidationFailed
from restopos.models.core import (
    IT_ONLY_TICKET_STATUSES, SupportTicket, TicketMessage, TicketPriority, TicketStatus,
)
from restopos.schemas.support import TicketIn, TicketMessageIn, TicketPatch
from restopos.services.billing import next_number
from restopos.services.notify import Event, EventType, NotificationHub
from restopos.util.serialize import row_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tickets", tags=["tickets"])


def load_ticket(db: Session, ticket_id: str, ctx: AccountContext) -> SupportTicket:
    """IT sees every tenant's tickets; a client only its own."""
    q = db.query(SupportTicket).filter(SupportTicket.id == ticket_id)
    if ctx.account_type != "it":
        q = q.filter(SupportTicket.restaurant_id == ctx.restaurant_id)
    t = q.first()
    if not t:
        raise NotFoundError("Ticket not found")
    return t


def ticket_event(kind: EventType, t: SupportTicket, **extra) -> Event:
    return Event(kind, t.restaurant_id, {
        "ticketId": t.id,
        "ticketNumber": t.ticket_number,
        "subject": t.subject,
        "category": t.category,
        "priority": t.priority.value,
        "ticketStatus": t.status.value,
        **extra,
    })


@router.get("")
def list_tickets(status: Optional[str] = None, user_id: Optional[str] = None, db: Session = Depends(get_db),
                 ctx: AccountContext = Depends(require_restaurant)):
    q = db.query(SupportTicket).filter(SupportTicket.restaurant_id == ctx.restaurant_id)
    if status:
        try:
            q = q.filter(SupportTicket.status == TicketStatus(status))
        except ValueError:
            raise ValidationFailed("Invalid ticket status", fields={"status": status})
    if user_id:
        q = q.filter(SupportTicket.user_id == user_id)
    return [row_dict(t) for t in q.order_by(SupportTicket.created_at.desc()).all()]


@router.post("", status_code=201)
def create_ticket(body: TicketIn, db: Session = Depends(get_db), hub: NotificationHub = Depends(get_hub),
                  ctx: AccountContext = Depends(require_restaurant)):
    for attempt in range(3):
        t = SupportTicket(
            restaurant_id=ctx.restaurant_id,
            ticket_number=next_number(db, SupportTicket.ticket_number, None, "TKT", offset=attempt),
            user_id=ctx.user_id,
            subject=body.subject,
            category=body.category,
            priority=TicketPriority(body.priority),
            description=body.description,
            status=TicketStatus.OPEN,
        )
        db.add(t)
        try:
            db.commit()
            break
        except IntegrityError:
            db.rollback()
    else:
        raise ConflictError("Could not allocate a ticket number")
    logger.info(f"Ticket {t.ticket_number} opened by {ctx.user_id}")
    hub.publish(ticket_event(EventType.TICKET_CREATED, t))
    return row_dict(t)


@router.get("/{ticket_id}")
def get_ticket(ticket_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_auth)):
    return row_dict(load_ticket(db, ticket_id, ctx))


@router.patch("/{ticket_id}")
def update_ticket(ticket_id: str, body: TicketPatch, db: Session = Depends(get_db),
                  hub: NotificationHub = Depends(get_hub), ctx: AccountContext = Depends(require_auth)):
    data = body.model_dump(exclude_unset=True)
    if data.get("status"):
        new = TicketStatus(data["status"])
        if new in IT_ONLY_TICKET_STATUSES and ctx.account_type != "it":
            raise AuthorizationError("Only IT support can set ticket status to In Progress, Resolved, or Closed")
        data["status"] = new
        if new in (TicketStatus.RESOLVED, TicketStatus.CLOSED):
            data["resolved_at"] = datetime.now(timezone.utc)
    if data.get("priority"):
        data["priority"] = TicketPriority(data["priority"])

    t = load_ticket(db, ticket_id, ctx)
    for k, v in data.items():
        setattr(t, k, v)
    db.commit()
    hub.publish(ticket_event(EventType.TICKET_UPDATED, t))
    return row_dict(t)


# ── Messages ────────────────────────────────────────────────────────────────

@router.get("/{ticket_id}/messages")
def list_messages(ticket_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_auth)):
    t = load_ticket(db, ticket_id, ctx)
    rows = (db.query(TicketMessage)
              .filter(TicketMessage.ticket_id == t.id, TicketMessage.restaurant_id == t.restaurant_id)
              .order_by(TicketMessage.created_at).all())
    return [row_dict(m) for m in rows]


@router.post("/{ticket_id}/messages", status_code=201)
def post_message(ticket_id: str, body: TicketMessageIn, db: Session = Depends(get_db),
                 hub: NotificationHub = Depends(get_hub), ctx: AccountContext = Depends(require_auth)):
    t = load_ticket(db, ticket_id, ctx)
    m = TicketMessage(
        restaurant_id=t.restaurant_id,
        ticket_id=t.id,
        sender_id=ctx.user_id,
        sender_name=ctx.full_name,
        sender_role="it" if ctx.account_type == "it" else ctx.role,
        message=body.message,
        is_read=False,
    )
    db.add(m); db.commit()
    out = row_dict(m)
    hub.publish(ticket_event(EventType.TICKET_MESSAGE, t, ticketMessage=out))
    return out
