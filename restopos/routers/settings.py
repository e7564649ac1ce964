# restopos/routers/settings.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from restopos.config import settings as app_settings
from restopos.db import get_db
from restopos.deps import AccountContext, get_hub, require_perm, require_restaurant
from restopos.models.core import RestaurantSettings
from restopos.schemas.support import SettingsPatch
from restopos.services.notify import Event, EventType, NotificationHub
from restopos.util.audit import audit
from restopos.util.serialize import row_dict

router = APIRouter(prefix="/settings", tags=["settings"], dependencies=[Depends(require_restaurant)])

def _get_or_create(db: Session, restaurant_id: str) -> RestaurantSettings:
    rs = db.query(RestaurantSettings).filter(RestaurantSettings.restaurant_id == restaurant_id).first()
    if not rs:
        rs = RestaurantSettings(restaurant_id=restaurant_id, vat_rate=app_settings.VAT_RATE)
        db.add(rs); db.commit()
    return rs

@router.get("")
def get_settings(db: Session = Depends(get_db), ctx: AccountContext = Depends(require_restaurant)):
    return row_dict(_get_or_create(db, ctx.restaurant_id))

@router.patch("")
def update_settings(body: SettingsPatch, db: Session = Depends(get_db), hub: NotificationHub = Depends(get_hub),
                    ctx: AccountContext = Depends(require_perm("settings"))):
    rs = _get_or_create(db, ctx.restaurant_id)
    before = row_dict(rs)
    changes = body.model_dump(exclude_unset=True)
    for k, v in changes.items():
        setattr(rs, k, v)
    audit(db, ctx.user_id, "RestaurantSettings", rs.id, "UPDATE", restaurant_id=ctx.restaurant_id,
          before={k: before.get(k) for k in changes}, after=changes)
    db.commit()
    out = row_dict(rs)
    hub.publish(Event(EventType.SETTINGS_UPDATED, ctx.restaurant_id, {"settings": out}))
    return out
