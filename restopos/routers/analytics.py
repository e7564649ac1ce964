from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from datetime import datetime, timezone, timedelta
from typing import Optional

from restopos.config import settings
from restopos.db import get_db
from restopos.deps import AccountContext, require_perm, require_restaurant
from restopos.models.core import InventoryItem, Order, Transaction, TERMINAL_ORDER_STATUSES
from restopos.util.serialize import row_dict

router = APIRouter(prefix="/analytics", tags=["analytics"], dependencies=[Depends(require_restaurant)])


def _utc(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)

def _change(current: float, previous: float) -> float:
    # no history yet reads as flat, not +inf
    if previous == 0:
        return 0.0
    return round((current - previous) / previous * 100, 2)

def _period(rows, start, end=None) -> float:
    return round(sum(amt for ts, amt in rows if ts >= start and (end is None or ts < end)), 2)


@router.get("/dashboard")
def dashboard(branch_id: Optional[str] = None, db: Session = Depends(get_db),
              ctx: AccountContext = Depends(require_perm("dashboard"))):
    oq = db.query(Order).filter(Order.restaurant_id == ctx.restaurant_id)
    tq = db.query(Transaction).filter(Transaction.restaurant_id == ctx.restaurant_id)
    iq = db.query(InventoryItem).filter(InventoryItem.restaurant_id == ctx.restaurant_id)
    if branch_id:
        oq = oq.filter(Order.branch_id == branch_id)
        tq = tq.filter(Transaction.branch_id == branch_id)
        iq = iq.filter(InventoryItem.branch_id == branch_id)

    sales = [(_utc(t.created_at), float(t.total or 0)) for t in tq.all()]

    now = datetime.now(timezone.utc)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    yesterday = today - timedelta(days=1)
    week_ago, two_weeks_ago = today - timedelta(days=7), today - timedelta(days=14)
    month_start = today.replace(day=1)
    last_month_start = (month_start - timedelta(days=1)).replace(day=1)
    year_start = today.replace(month=1, day=1)
    last_year_start = year_start.replace(year=year_start.year - 1)

    periods = {
        "dod": (_period(sales, today), _period(sales, yesterday, today)),
        "wow": (_period(sales, week_ago), _period(sales, two_weeks_ago, week_ago)),
        "mom": (_period(sales, month_start), _period(sales, last_month_start, month_start)),
        "yoy": (_period(sales, year_start), _period(sales, last_year_start, year_start)),
    }

    by_hour = {h: 0.0 for h in range(24)}
    for ts, amt in sales:
        by_hour[ts.hour] += amt
    hourly = [{"hour": h, "sales": round(v, 2)} for h, v in sorted(by_hour.items())]
    peak = max(hourly, key=lambda x: x["sales"])

    orders = oq.order_by(Order.created_at.desc()).all()
    return {
        "todaysSales": periods["dod"][0],
        "activeOrders": sum(1 for o in orders if o.status not in TERMINAL_ORDER_STATUSES),
        "lowStockItems": sum(1 for i in iq.all() if 0 < float(i.quantity or 0) <= settings.LOW_STOCK_THRESHOLD),
        "recentOrders": [row_dict(o) for o in orders[:4]],
        "performance": {
            k: {"current": cur, "previous": prev, "change": _change(cur, prev)}
            for k, (cur, prev) in periods.items()
        },
        "peakHours": {"hourlyData": hourly, "peakHour": peak["hour"], "peakSales": peak["sales"]},
    }
