from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from restopos.db import get_db
from restopos.config import settings
from restopos.errors import AuthorizationError
from restopos.util.security import hash_pw
from restopos.models.core import (
    Restaurant, Branch, User, UserRole, SetupState, SubscriptionStatus,
    RestaurantSettings, Conversation, ConversationMember, ConversationType,
    InventoryItem, Recipe, MenuItem, PortionSize,
)
from restopos.services.billing import split_vat
from restopos.services.permissions import ADMIN_PERMISSIONS
from decimal import Decimal

router = APIRouter(prefix="/admin", tags=["admin"])

@router.post("/dev-bootstrap")
def dev_bootstrap(db: Session = Depends(get_db)):
    if settings.APP_ENV != "dev":
        raise AuthorizationError("Not allowed")

    # Restaurant
    r = db.query(Restaurant).filter(Restaurant.name == "Demo Restaurant").first()
    if not r:
        r = Restaurant(
            name="Demo Restaurant",
            type="Casual Dining",
            vat_number="300000000000003",
            subscription_plan="monthly",
            subscription_status=SubscriptionStatus.ACTIVE,
            setup_state=SetupState.ACTIVE,
        )
        db.add(r); db.flush()

    # Branch
    b = db.query(Branch).filter(Branch.restaurant_id == r.id).first()
    if not b:
        b = Branch(restaurant_id=r.id, name="Main Branch", location="King Fahd Rd, Riyadh", phone="0110000000")
        db.add(b); db.flush()

    # Admin user
    u = db.query(User).filter(User.username == "admin").first()
    if not u:
        u = User(
            restaurant_id=r.id,
            branch_id=b.id,
            username="admin",
            full_name="Admin",
            email="admin@example.com",
            pass_hash=hash_pw("admin123"),
            role=UserRole.ADMIN,
            permissions=ADMIN_PERMISSIONS,
            active=True,
        )
        db.add(u); db.flush()

    # Restaurant settings
    if not db.query(RestaurantSettings).filter(RestaurantSettings.restaurant_id == r.id).first():
        db.add(RestaurantSettings(
            restaurant_id=r.id,
            vat_number=r.vat_number,
            vat_rate=settings.VAT_RATE,
            address=b.location,
            phone=b.phone,
            receipt_footer="Thank you! Visit again.",
        ))

    # Default chat channel
    general = (
        db.query(Conversation)
        .filter(Conversation.restaurant_id == r.id, Conversation.type == ConversationType.CHANNEL,
                Conversation.name == "General")
        .first()
    )
    if not general:
        general = Conversation(restaurant_id=r.id, type=ConversationType.CHANNEL, name="General",
                               scope="restaurant", created_by=u.id)
        db.add(general); db.flush()
        db.add(ConversationMember(restaurant_id=r.id, conversation_id=general.id, user_id=u.id))

    # Sample stock, recipe and menu item so POS has something to sell
    beef = db.query(InventoryItem).filter(InventoryItem.restaurant_id == r.id, InventoryItem.name == "Beef").first()
    if not beef:
        beef = InventoryItem(restaurant_id=r.id, name="Beef", category="Meat", quantity=10, unit="kg", price=45)
        db.add(beef); db.flush()
    recipe = db.query(Recipe).filter(Recipe.restaurant_id == r.id, Recipe.name == "Classic Burger").first()
    if not recipe:
        recipe = Recipe(restaurant_id=r.id, name="Classic Burger",
                        ingredients=[{"inventoryItemId": beef.id, "quantity": 0.2, "unit": "kg"}])
        db.add(recipe); db.flush()
    burger = db.query(MenuItem).filter(MenuItem.restaurant_id == r.id, MenuItem.name == "Classic Burger").first()
    if not burger:
        base, vat = split_vat(Decimal("28.75"), Decimal(str(settings.VAT_RATE)))
        burger = MenuItem(restaurant_id=r.id, name="Classic Burger", category="Burgers", recipe_id=recipe.id,
                          portion_size=PortionSize.FULL, base_price=base, vat_amount=vat, price=base + vat)
        db.add(burger); db.flush()

    db.commit()
    return {
        "restaurant_id": r.id,
        "branch_id": b.id,
        "admin_username": u.username,
        "admin_password": "admin123",
        "menu_item_id": burger.id,
        "inventory_item_id": beef.id,
    }
