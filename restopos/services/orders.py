"""
Order placement and status changes.

``place_order`` runs stock validation, persists the order, then applies the
inventory deduction. The deduction is a conditional decrement per inventory
row, so two orders racing for the same stock cannot both succeed. If the
deduction fails after the order row is committed, the order is deleted again
and the original error is re-raised.
"""
import logging
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from restopos.errors import (
    AuthorizationError, ConflictError, InsufficientStock, NotFoundError, ValidationFailed,
)
from restopos.models.core import (
    Addon, Branch, InventoryItem, InventoryMovement, Order, OrderStatus, PayMode, TERMINAL_ORDER_STATUSES,
)
from restopos.services.billing import compute_totals, next_number, vat_rate_for
from restopos.services.notify import Event, EventType, NotificationHub
from restopos.services.stock import prepare_order_stock
from restopos.util.audit import audit

logger = logging.getLogger(__name__)

# forward moves only; terminal states have no entry
ALLOWED_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.CREATED: {OrderStatus.PROCESSING, OrderStatus.READY, OrderStatus.COMPLETED,
                          OrderStatus.CANCELLED, OrderStatus.PAID},
    OrderStatus.PROCESSING: {OrderStatus.READY, OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.PAID},
    OrderStatus.READY: {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.PAID},
    OrderStatus.PAID: {OrderStatus.PROCESSING, OrderStatus.READY, OrderStatus.COMPLETED},
}


def items_summary(items: list[dict]) -> str:
    if not items:
        return "No items"
    names = ", ".join(str(i.get("name", "")) for i in items[:3])
    return names + ("..." if len(items) > 3 else "")


def _branch_name(db: Session, restaurant_id: str, branch_id: str | None) -> str | None:
    if not branch_id:
        return None
    b = db.query(Branch).filter(Branch.id == branch_id, Branch.restaurant_id == restaurant_id).first()
    return b.name if b else None


def order_event(db: Session, kind: EventType, order: Order) -> Event:
    return Event(
        type=kind,
        restaurant_id=order.restaurant_id,
        payload={
            "orderId": order.id,
            "orderNumber": order.order_number,
            "status": order.status.value,
            "branchId": order.branch_id,
            "branchName": _branch_name(db, order.restaurant_id, order.branch_id),
            "itemsSummary": items_summary(order.items or []),
        },
    )


def deduct_stock(db: Session, restaurant_id: str, order_id: str, requirements: dict[str, Decimal]):
    """Decrement each inventory row only if it still holds enough; no commit."""
    for inv_id, need in requirements.items():
        res = db.execute(
            update(InventoryItem)
            .where(InventoryItem.id == inv_id,
                   InventoryItem.restaurant_id == restaurant_id,
                   InventoryItem.quantity >= need)
            .values(quantity=InventoryItem.quantity - need)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            item = db.get(InventoryItem, inv_id, populate_existing=True)
            name = item.name if item else inv_id
            available = float(item.quantity or 0) if item else 0.0
            raise InsufficientStock(
                f"Stock for {name} changed while the order was being placed",
                [{"name": name, "required": float(need), "available": available,
                  "unit": item.unit if item else None}],
            )
        db.add(InventoryMovement(
            restaurant_id=restaurant_id, inventory_item_id=inv_id, order_id=order_id,
            qty_change=-need, reason=f"Order {order_id}",
        ))


def _insert_order(db: Session, order: Order) -> Order:
    # order numbers are per restaurant per day; retry a few times on a concurrent clash
    for attempt in range(3):
        order.order_number = next_number(
            db, Order.order_number, Order.restaurant_id == order.restaurant_id, "ORD", offset=attempt)
        db.add(order)
        try:
            db.commit()
            return order
        except IntegrityError:
            db.rollback()
    raise ConflictError("Could not allocate a unique order number")


def _compensate(db: Session, order: Order):
    try:
        db.query(Order).filter(Order.id == order.id, Order.restaurant_id == order.restaurant_id).delete(
            synchronize_session=False)
        db.commit()
        logger.error(f"Inventory deduction failed; deleted order {order.id}")
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to delete order {order.id} after inventory deduction failure")


def place_order(db: Session, ctx, draft: dict, hub: NotificationHub | None = None) -> Order:
    """``ctx`` is the caller's AccountContext; ``draft`` is a validated OrderIn dump."""
    restaurant_id, user_id = ctx.restaurant_id, ctx.user_id
    if restaurant_id is None:
        raise AuthorizationError("This endpoint requires a restaurant account")
    items = draft["items"]
    branch_id = draft.get("branch_id")
    if branch_id and not db.query(Branch).filter(Branch.id == branch_id, Branch.restaurant_id == restaurant_id).first():
        raise NotFoundError("Branch not found")

    check = prepare_order_stock(db, restaurant_id, items, branch_id)
    if not check.is_valid:
        logger.warning(f"Order rejected for restaurant {restaurant_id}: {check.message}")
        raise InsufficientStock(check.message or "Insufficient inventory", check.insufficient_items)

    addon_ids = {a if isinstance(a, str) else a["id"] for l in items for a in l.get("addons") or []}
    addon_prices = {a.id: Decimal(str(a.price)) for a in db.query(Addon).filter(
        Addon.restaurant_id == restaurant_id, Addon.id.in_(addon_ids)).all()} if addon_ids else {}
    totals = compute_totals(items, vat_rate_for(db, restaurant_id), addon_prices)

    order = _insert_order(db, Order(
        restaurant_id=restaurant_id,
        branch_id=branch_id,
        items=items,
        order_type=draft.get("order_type") or "dine-in",
        customer_name=draft.get("customer_name"),
        customer_phone=draft.get("customer_phone"),
        payment_method=PayMode(draft["payment_method"]) if draft.get("payment_method") else None,
        created_by=user_id,
        status=OrderStatus.CREATED,
        **totals,
    ))

    try:
        deduct_stock(db, restaurant_id, order.id, check.stock_requirements)
        db.commit()
    except Exception:
        db.rollback()
        _compensate(db, order)
        raise
    db.expire_all()

    logger.info(f"Order {order.order_number} placed for restaurant {restaurant_id}")
    if hub is not None:
        hub.publish(order_event(db, EventType.ORDER_CREATED, order))
    return order


def get_order(db: Session, order_id: str, restaurant_id: str | None, *, cross_tenant: bool = False) -> Order:
    """Tenant-filtered lookup; ``cross_tenant`` drops the filter and is reserved for IT routes."""
    q = db.query(Order).filter(Order.id == order_id)
    if not cross_tenant:
        if restaurant_id is None:
            raise AuthorizationError("This endpoint requires a restaurant account")
        q = q.filter(Order.restaurant_id == restaurant_id)
    order = q.first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def update_order_status(db: Session, order_id: str, status: str, restaurant_id: str | None,
                        hub: NotificationHub | None = None, *, actor_id: str | None = None,
                        cross_tenant: bool = False) -> Order:
    try:
        new = OrderStatus(status)
    except ValueError:
        raise ValidationFailed("Invalid order status", fields={"status": status})

    order = get_order(db, order_id, restaurant_id, cross_tenant=cross_tenant)
    old = order.status
    if new == old:
        return order
    if old in TERMINAL_ORDER_STATUSES or new not in ALLOWED_TRANSITIONS.get(old, set()):
        raise ConflictError(f"Cannot change order status from {old.value} to {new.value}")

    order.status = new
    audit(db, actor_id, "Order", order.id, "STATUS", restaurant_id=order.restaurant_id,
          before={"status": old.value}, after={"status": new.value})
    db.commit()

    if hub is not None:
        hub.publish(order_event(db, EventType.ORDER_STATUS_UPDATED, order))
    return order


def list_orders(db: Session, restaurant_id: str | None, branch_id: str | None = None,
                status: str | None = None, *, cross_tenant: bool = False) -> list[Order]:
    """``restaurant_id=None`` means every tenant, and only when ``cross_tenant`` is set."""
    q = db.query(Order)
    if restaurant_id is not None:
        q = q.filter(Order.restaurant_id == restaurant_id)
    elif not cross_tenant:
        raise AuthorizationError("This endpoint requires a restaurant account")
    if branch_id:
        q = q.filter(Order.branch_id == branch_id)
    if status:
        try:
            q = q.filter(Order.status == OrderStatus(status))
        except ValueError:
            raise ValidationFailed("Invalid order status", fields={"status": status})
    return q.order_by(Order.created_at.desc()).all()
