from sqlalchemy import (
    String, ForeignKey, Boolean, Numeric, Enum, Text, DateTime, Integer, JSON, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column
from enum import Enum as PyEnum
from datetime import datetime
from decimal import Decimal
from restopos.db import Base
from restopos.models.common import IdMixin, TSMMixin, TenantMixin

# ── Enums ───────────────────────────────────────────────────────────────────
class BusinessType(PyEnum):
    RESTAURANT = "restaurant"
    FACTORY = "factory"

class SubscriptionStatus(PyEnum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    CANCELLED = "cancelled"

class SetupState(PyEnum):
    PENDING_SETUP = "pending_setup"
    ACTIVE = "active"

class UserRole(PyEnum):
    ADMIN = "admin"
    EMPLOYEE = "employee"

class PortionSize(PyEnum):
    QUARTER = "quarter"
    HALF = "half"
    THREE_QUARTERS = "three_quarters"
    FULL = "full"

PORTION_MULTIPLIERS = {
    PortionSize.QUARTER: Decimal("0.25"),
    PortionSize.HALF: Decimal("0.5"),
    PortionSize.THREE_QUARTERS: Decimal("0.75"),
    PortionSize.FULL: Decimal("1"),
}

class OrderStatus(PyEnum):
    CREATED = "created"
    PROCESSING = "processing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PAID = "paid"

TERMINAL_ORDER_STATUSES = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}

class PayMode(PyEnum):
    CASH = "cash"
    CARD = "card"
    ONLINE = "online"

class ProcurementStatus(PyEnum):
    PENDING = "pending"
    RECEIVED = "received"
    CANCELLED = "cancelled"

class TicketStatus(PyEnum):
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    CLOSED = "closed"

# statuses only IT support may set
IT_ONLY_TICKET_STATUSES = {TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CLOSED}

class TicketPriority(PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

class ConversationType(PyEnum):
    CHANNEL = "channel"
    DIRECT = "direct"

def _values(enum_cls):
    # persist enum values ("in-progress"), not member names
    return Enum(enum_cls, values_callable=lambda e: [m.value for m in e], native_enum=False)

# ── Tenants & identity ──────────────────────────────────────────────────────
class Restaurant(Base, IdMixin, TSMMixin):
    __tablename__ = "restaurant"
    name: Mapped[str] = mapped_column(String(160))
    business_type: Mapped[BusinessType] = mapped_column(_values(BusinessType), default=BusinessType.RESTAURANT)
    type: Mapped[str | None] = mapped_column(String(80))           # "Cloud Kitchen", "Manufacturing", ...
    vat_number: Mapped[str | None] = mapped_column(String(32))
    commercial_registration: Mapped[str | None] = mapped_column(String(40))
    subscription_plan: Mapped[str | None] = mapped_column(String(40))
    subscription_status: Mapped[SubscriptionStatus] = mapped_column(
        _values(SubscriptionStatus), default=SubscriptionStatus.INACTIVE)
    subscription_invoice_no: Mapped[str | None] = mapped_column(String(40))
    branches_count: Mapped[int] = mapped_column(Integer, default=1)
    setup_state: Mapped[SetupState] = mapped_column(_values(SetupState), default=SetupState.PENDING_SETUP)

class User(Base, IdMixin, TSMMixin):
    __tablename__ = "user"
    # NULL marks a cross-tenant IT account
    restaurant_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("restaurant.id"), index=True)
    branch_id: Mapped[str | None] = mapped_column(String(36))
    username: Mapped[str] = mapped_column(String(80), unique=True)
    full_name: Mapped[str] = mapped_column(String(160))
    email: Mapped[str | None] = mapped_column(String(160))
    phone: Mapped[str | None] = mapped_column(String(20))
    pass_hash: Mapped[str] = mapped_column(String(200))
    role: Mapped[UserRole] = mapped_column(_values(UserRole), default=UserRole.EMPLOYEE)
    permissions: Mapped[dict] = mapped_column(JSON, default=dict)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_activity_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reset_token: Mapped[str | None] = mapped_column(String(80), index=True)
    reset_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

class AuthSession(Base, IdMixin, TSMMixin):
    __tablename__ = "auth_session"
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("user.id"), index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

class Branch(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "branch"
    name: Mapped[str] = mapped_column(String(160))
    location: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(String(20))

class RestaurantSettings(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "restaurant_settings"
    language: Mapped[str] = mapped_column(String(8), default="en")
    vat_number: Mapped[str | None] = mapped_column(String(32))
    vat_rate: Mapped[Decimal | None] = mapped_column(Numeric(5, 4))
    address: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(String(20))
    receipt_footer: Mapped[str | None] = mapped_column(String(200), default="Thank you!")
    __table_args__ = (UniqueConstraint("restaurant_id", name="uq_settings_restaurant"),)

# ── Inventory / recipes / menu ──────────────────────────────────────────────
class InventoryItem(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "inventory_item"
    branch_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("branch.id"))
    name: Mapped[str] = mapped_column(String(160))
    category: Mapped[str | None] = mapped_column(String(80))
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=0)
    unit: Mapped[str] = mapped_column(String(20))  # g, kg, ml, l, pcs
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)  # per unit
    supplier: Mapped[str | None] = mapped_column(String(160))
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

class Recipe(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "recipe"
    name: Mapped[str] = mapped_column(String(160))
    # [{"inventoryItemId": ..., "quantity": "0.2", "unit": "kg"}, ...] in display order
    ingredients: Mapped[list] = mapped_column(JSON, default=list)
    instructions: Mapped[str | None] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

class MenuItem(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "menu_item"
    name: Mapped[str] = mapped_column(String(160))
    category: Mapped[str | None] = mapped_column(String(80))
    description: Mapped[str | None] = mapped_column(Text)
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    vat_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)  # base + VAT
    recipe_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("recipe.id"))
    portion_size: Mapped[PortionSize] = mapped_column(_values(PortionSize), default=PortionSize.FULL)
    available: Mapped[bool] = mapped_column(Boolean, default=True)

class Addon(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "addon"
    name: Mapped[str] = mapped_column(String(120))
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    menu_item_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("menu_item.id"))
    # optional ingredient delta per ordered unit
    inventory_item_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("inventory_item.id"))
    quantity: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

# ── Customers / procurement ─────────────────────────────────────────────────
class Customer(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "customer"
    name: Mapped[str] = mapped_column(String(160))
    phone: Mapped[str | None] = mapped_column(String(20))
    email: Mapped[str | None] = mapped_column(String(160))
    address: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    __table_args__ = (UniqueConstraint("restaurant_id", "phone", name="uq_customer_phone"),)

class Procurement(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "procurement"
    branch_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("branch.id"))
    type: Mapped[str] = mapped_column(String(40), default="purchase")
    inventory_item_id: Mapped[str] = mapped_column(String(36), ForeignKey("inventory_item.id"))
    supplier: Mapped[str | None] = mapped_column(String(160))
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3))
    unit: Mapped[str] = mapped_column(String(20))   # converted to the item's unit on receipt
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    status: Mapped[ProcurementStatus] = mapped_column(_values(ProcurementStatus), default=ProcurementStatus.PENDING)
    reference: Mapped[str | None] = mapped_column(String(80))
    notes: Mapped[str | None] = mapped_column(Text)
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[str | None] = mapped_column(String(36), ForeignKey("user.id"))

# ── Orders / money ──────────────────────────────────────────────────────────
class Order(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "order"
    branch_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("branch.id"))
    order_number: Mapped[str] = mapped_column(String(40))
    order_type: Mapped[str] = mapped_column(String(20), default="dine-in")
    status: Mapped[OrderStatus] = mapped_column(_values(OrderStatus), default=OrderStatus.CREATED)
    # [{"id", "name", "quantity", "price", "addons": [...]}]; fixed after creation
    items: Mapped[list] = mapped_column(JSON, default=list)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    tax: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    payment_method: Mapped[PayMode | None] = mapped_column(_values(PayMode))
    customer_name: Mapped[str | None] = mapped_column(String(160))
    customer_phone: Mapped[str | None] = mapped_column(String(20))
    created_by: Mapped[str | None] = mapped_column(String(36), ForeignKey("user.id"))
    __table_args__ = (UniqueConstraint("restaurant_id", "order_number", name="uq_order_number"),)

class InventoryMovement(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "inventory_movement"
    inventory_item_id: Mapped[str] = mapped_column(String(36), ForeignKey("inventory_item.id"))
    order_id: Mapped[str | None] = mapped_column(String(36))
    procurement_id: Mapped[str | None] = mapped_column(String(36))
    qty_change: Mapped[Decimal] = mapped_column(Numeric(12, 3))
    reason: Mapped[str | None] = mapped_column(Text)

class Transaction(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "transaction"
    branch_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("branch.id"))
    order_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("order.id"))
    items: Mapped[list] = mapped_column(JSON, default=list)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    tax: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    payment_method: Mapped[PayMode] = mapped_column(_values(PayMode), default=PayMode.CASH)

class Invoice(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "invoice"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id"), unique=True)
    invoice_number: Mapped[str] = mapped_column(String(60), unique=True)
    invoice_dt: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    customer_name: Mapped[str | None] = mapped_column(String(160))
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    vat_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    qr_code: Mapped[str | None] = mapped_column(Text)     # base64 ZATCA TLV payload
    pdf_path: Mapped[str | None] = mapped_column(String(400))

# ── Support tickets ─────────────────────────────────────────────────────────
class SupportTicket(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "support_ticket"
    ticket_number: Mapped[str] = mapped_column(String(40), unique=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("user.id"))
    subject: Mapped[str] = mapped_column(String(200))
    category: Mapped[str] = mapped_column(String(60))
    priority: Mapped[TicketPriority] = mapped_column(_values(TicketPriority), default=TicketPriority.MEDIUM)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[TicketStatus] = mapped_column(_values(TicketStatus), default=TicketStatus.OPEN)
    assigned_to: Mapped[str | None] = mapped_column(String(36), ForeignKey("user.id"))
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

class TicketMessage(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "ticket_message"
    ticket_id: Mapped[str] = mapped_column(String(36), ForeignKey("support_ticket.id"), index=True)
    sender_id: Mapped[str] = mapped_column(String(36), ForeignKey("user.id"))
    sender_name: Mapped[str] = mapped_column(String(160))
    sender_role: Mapped[str] = mapped_column(String(20))
    message: Mapped[str] = mapped_column(Text)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)

# ── Team chat ───────────────────────────────────────────────────────────────
class Conversation(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "conversation"
    type: Mapped[ConversationType] = mapped_column(_values(ConversationType))
    name: Mapped[str | None] = mapped_column(String(120))
    scope: Mapped[str | None] = mapped_column(String(20))    # restaurant | branch
    branch_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("branch.id"))
    created_by: Mapped[str | None] = mapped_column(String(36), ForeignKey("user.id"))

class ConversationMember(Base, TSMMixin, TenantMixin):
    __tablename__ = "conversation_member"
    conversation_id: Mapped[str] = mapped_column(String(36), ForeignKey("conversation.id"), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("user.id"), primary_key=True)
    last_read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

class ChatMessage(Base, IdMixin, TSMMixin, TenantMixin):
    __tablename__ = "chat_message"
    conversation_id: Mapped[str] = mapped_column(String(36), ForeignKey("conversation.id"), index=True)
    sender_id: Mapped[str] = mapped_column(String(36), ForeignKey("user.id"))
    sender_name: Mapped[str] = mapped_column(String(160))
    content: Mapped[str] = mapped_column(Text)

# ── Audit ───────────────────────────────────────────────────────────────────
class AuditLog(Base, IdMixin, TSMMixin):
    __tablename__ = "audit_log"
    restaurant_id: Mapped[str | None] = mapped_column(String(36))
    actor_user_id: Mapped[str | None] = mapped_column(String(36))
    entity: Mapped[str] = mapped_column(String(60))
    entity_id: Mapped[str] = mapped_column(String(36))
    action: Mapped[str] = mapped_column(String(60))
    before: Mapped[str | None] = mapped_column(Text)
    after: Mapped[str | None] = mapped_column(Text)
