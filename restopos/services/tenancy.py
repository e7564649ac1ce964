"""Tenant-scoped lookups shared by the CRUD routers."""
import logging

from sqlalchemy.orm import Session

from restopos.errors import AuthorizationError, NotFoundError

logger = logging.getLogger(__name__)


def get_owned(db: Session, model, row_id: str, restaurant_id: str, what: str | None = None):
    """Fetch ``row_id`` only if it belongs to ``restaurant_id``; other tenants' rows are a 404."""
    row = db.query(model).filter(model.id == row_id, model.restaurant_id == restaurant_id).first()
    if row is None:
        raise NotFoundError(f"{what or model.__name__} not found")
    return row


def apply_sort(db: Session, model, updates: list, restaurant_id: str) -> int:
    """Write ``sort_order`` for a batch; the whole batch is refused if any id is foreign."""
    ids = {u.id for u in updates}
    owned = {rid for (rid,) in db.query(model.id).filter(model.id.in_(ids), model.restaurant_id == restaurant_id)}
    if owned != ids:
        logger.warning(f"Rejected {model.__name__} sort batch for restaurant {restaurant_id}: "
                       f"{len(ids - owned)} foreign or unknown ids")
        raise AuthorizationError("Access denied to one or more items")
    for u in updates:
        db.query(model).filter(model.id == u.id, model.restaurant_id == restaurant_id).update(
            {model.sort_order: u.sort_order}, synchronize_session=False)
    db.commit()
    return len(updates)
