# restopos/routers/it.py
"""Cross-tenant support routes; only IT accounts (no restaurant) reach them."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from restopos.db import get_db
from restopos.deps import AccountContext, get_hub, require_it_account, require_perm
from restopos.errors import NotFoundError, ValidationFailed
from restopos.models.core import Order, Restaurant, SetupState, SupportTicket, TicketStatus, User
from restopos.routers.tickets import ticket_event
from restopos.schemas.accounts import AccountStatusIn
from restopos.schemas.orders import OrderStatusIn
from restopos.schemas.support import TicketAssignIn
from restopos.services.notify import EventType, NotificationHub
from restopos.services.orders import list_orders, update_order_status
from restopos.util.audit import audit
from restopos.util.serialize import row_dict, user_dict

logger = logging.getLogger(__name__)


def _utc(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


router = APIRouter(prefix="/it", tags=["it"], dependencies=[Depends(require_it_account)])


@router.get("/orders")
def all_orders(restaurant_id: Optional[str] = None, branch_id: Optional[str] = None, status: Optional[str] = None,
               db: Session = Depends(get_db), ctx: AccountContext = Depends(require_it_account)):
    # no restaurant_id means every tenant
    return [row_dict(o) for o in list_orders(db, restaurant_id, branch_id, status, cross_tenant=True)]


@router.patch("/orders/{order_id}")
def set_order_status(order_id: str, body: OrderStatusIn, db: Session = Depends(get_db),
                     hub: NotificationHub = Depends(get_hub), ctx: AccountContext = Depends(require_it_account)):
    order = update_order_status(db, order_id, body.status, None, hub, actor_id=ctx.user_id, cross_tenant=True)
    logger.info(f"IT user {ctx.user_id} set order {order.order_number} to {order.status.value}")
    return row_dict(order)


@router.get("/client-accounts")
def client_accounts(db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("itAccountManagement"))):
    rows = (db.query(User, Restaurant.name)
              .join(Restaurant, Restaurant.id == User.restaurant_id)
              .order_by(Restaurant.name, User.username).all())
    out = []
    for u, restaurant_name in rows:
        d = user_dict(u)
        d["restaurant_name"] = restaurant_name
        out.append(d)
    return out


@router.patch("/accounts/{user_id}/status")
def set_account_status(user_id: str, body: AccountStatusIn, db: Session = Depends(get_db),
                       ctx: AccountContext = Depends(require_perm("itAccountManagement"))):
    if user_id == ctx.user_id:
        raise ValidationFailed("Cannot change the status of your own account")
    u = db.get(User, user_id)
    if not u:
        raise NotFoundError("Account not found")
    u.active = body.active
    audit(db, ctx.user_id, "User", u.id, "ENABLE" if body.active else "DISABLE", restaurant_id=u.restaurant_id)
    db.commit()
    logger.info(f"Account {u.username} {'enabled' if body.active else 'disabled'} by IT user {ctx.user_id}")
    return {"success": True, "user": {"id": u.id, "username": u.username, "active": u.active}}


@router.get("/tickets")
def all_tickets(status: Optional[str] = None, restaurant_id: Optional[str] = None, db: Session = Depends(get_db),
                ctx: AccountContext = Depends(require_it_account)):
    q = db.query(SupportTicket)
    if restaurant_id:
        q = q.filter(SupportTicket.restaurant_id == restaurant_id)
    if status:
        try:
            q = q.filter(SupportTicket.status == TicketStatus(status))
        except ValueError:
            raise ValidationFailed("Invalid ticket status", fields={"status": status})
    return [row_dict(t) for t in q.order_by(SupportTicket.created_at.desc()).all()]


@router.patch("/tickets/{ticket_id}/assign")
def assign_ticket(ticket_id: str, body: TicketAssignIn, db: Session = Depends(get_db),
                  hub: NotificationHub = Depends(get_hub), ctx: AccountContext = Depends(require_it_account)):
    t = db.get(SupportTicket, ticket_id)
    if not t:
        raise NotFoundError("Ticket not found")
    staff = db.get(User, body.assigned_to)
    if not staff or staff.restaurant_id is not None or not staff.active:
        raise ValidationFailed("Tickets can only be assigned to active IT staff", fields={"assigned_to": body.assigned_to})
    t.assigned_to = staff.id
    if t.status == TicketStatus.OPEN:
        t.status = TicketStatus.IN_PROGRESS
    db.commit()
    hub.publish(ticket_event(EventType.TICKET_UPDATED, t, assignedTo=staff.id))
    return row_dict(t)


# ── Dashboards ──────────────────────────────────────────────────────────────

@router.get("/analytics")
def it_analytics(db: Session = Depends(get_db), ctx: AccountContext = Depends(require_perm("itDashboard"))):
    """Platform-wide counts for the IT dashboard."""
    restaurants = db.query(Restaurant).all()
    clients = db.query(User).filter(User.restaurant_id.isnot(None)).all()
    orders_count, revenue = db.query(func.count(Order.id), func.coalesce(func.sum(Order.total), 0)).one()
    by_status = dict(db.query(SupportTicket.status, func.count(SupportTicket.id)).group_by(SupportTicket.status).all())

    resolved = db.query(SupportTicket).filter(SupportTicket.resolved_at.isnot(None)).all()
    hours = [(_utc(t.resolved_at) - _utc(t.created_at)).total_seconds() / 3600 for t in resolved]
    return {
        "totalRestaurants": len(restaurants),
        "activeRestaurants": sum(1 for r in restaurants if r.setup_state == SetupState.ACTIVE),
        "totalClientUsers": len(clients),
        "activeClientUsers": sum(1 for u in clients if u.active),
        "totalOrders": orders_count,
        "totalRevenue": round(float(revenue), 2),
        "tickets": {
            "total": sum(by_status.values()),
            **{s.value: by_status.get(s, 0) for s in TicketStatus},
        },
        "avgResolutionHours": round(sum(hours) / len(hours), 2) if hours else None,
    }


@router.get("/performance")
def it_performance(date_range: int = Query(30, alias="dateRange", ge=1), db: Session = Depends(get_db),
                   ctx: AccountContext = Depends(require_perm("performance"))):
    """Sales per active client user over the last ``dateRange`` days, best first."""
    since = datetime.now(timezone.utc) - timedelta(days=date_range)
    rows = (db.query(User, Restaurant,
                     func.coalesce(func.sum(Order.total), 0), func.count(Order.id), func.max(Order.created_at))
              .join(Order, Order.created_by == User.id)
              .join(Restaurant, Restaurant.id == User.restaurant_id)
              .filter(User.active.is_(True), Order.created_at >= since)
              .group_by(User.id, Restaurant.id)
              .all())
    out = []
    for u, r, total, count, last in rows:
        total = round(float(total), 2)
        out.append({
            "userId": u.id,
            "username": u.username,
            "fullName": u.full_name,
            "role": u.role.value,
            "restaurantId": r.id,
            "restaurantName": r.name,
            "businessType": r.business_type.value,
            "totalSales": total,
            "totalOrders": count,
            "avgOrderValue": round(total / count, 2) if count else 0.0,
            "lastActivityAt": _utc(last).isoformat() if last else None,
        })
    out.sort(key=lambda x: x["totalSales"], reverse=True)
    return out
