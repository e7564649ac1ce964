# Importing the module registers tables with Base for create_all()
from .core import (  # noqa: F401
    # Enums
    BusinessType, SubscriptionStatus, SetupState, UserRole, PortionSize, OrderStatus,
    PayMode, ProcurementStatus, TicketStatus, TicketPriority, ConversationType,
    PORTION_MULTIPLIERS, TERMINAL_ORDER_STATUSES, IT_ONLY_TICKET_STATUSES,

    # Tenants & identity
    Restaurant, User, AuthSession, Branch, RestaurantSettings,

    # Inventory / recipes / menu
    InventoryItem, Recipe, MenuItem, Addon,

    # Customers / procurement
    Customer, Procurement,

    # Orders / money
    Order, InventoryMovement, Transaction, Invoice,

    # Support & chat
    SupportTicket, TicketMessage, Conversation, ConversationMember, ChatMessage,

    # Audit
    AuditLog,
)

__all__ = [
    "BusinessType", "SubscriptionStatus", "SetupState", "UserRole", "PortionSize", "OrderStatus",
    "PayMode", "ProcurementStatus", "TicketStatus", "TicketPriority", "ConversationType",
    "PORTION_MULTIPLIERS", "TERMINAL_ORDER_STATUSES", "IT_ONLY_TICKET_STATUSES",
    "Restaurant", "User", "AuthSession", "Branch", "RestaurantSettings",
    "InventoryItem", "Recipe", "MenuItem", "Addon",
    "Customer", "Procurement",
    "Order", "InventoryMovement", "Transaction", "Invoice",
    "SupportTicket", "TicketMessage", "Conversation", "ConversationMember", "ChatMessage",
    "AuditLog",
]
