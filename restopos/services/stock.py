"""
Inventory stock validation for order drafts.

Each order line expands through its menu item's recipe (scaled by the ordered
quantity and the menu item's portion multiplier) and its add-ons. The
requirements are summed per inventory item and checked against on-hand stock.
Nothing here writes to the database.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR
from typing import Any, Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from restopos.errors import DataError, ValidationFailed
from restopos.models.core import Addon, InventoryItem, MenuItem, Recipe, PORTION_MULTIPLIERS

logger = logging.getLogger(__name__)

Q3 = Decimal("0.001")

# factor to the base unit of each family
_UNIT_FAMILIES = {
    "g": ("mass", Decimal("1")), "gram": ("mass", Decimal("1")), "grams": ("mass", Decimal("1")),
    "kg": ("mass", Decimal("1000")),
    "ml": ("volume", Decimal("1")),
    "l": ("volume", Decimal("1000")), "liter": ("volume", Decimal("1000")), "litre": ("volume", Decimal("1000")),
}


def q3(x) -> Decimal:
    # via str to avoid float binary artifacts
    return Decimal(str(x)).quantize(Q3, rounding=ROUND_HALF_UP)


def convert_qty(qty: Decimal, from_unit: str | None, to_unit: str | None) -> Decimal:
    """Convert ``qty`` between compatible units; same or missing units pass through."""
    f, t = (from_unit or "").strip().lower(), (to_unit or "").strip().lower()
    if not f or not t or f == t:
        return qty
    src, dst = _UNIT_FAMILIES.get(f), _UNIT_FAMILIES.get(t)
    if not src or not dst or src[0] != dst[0]:
        raise DataError(f"Cannot convert {from_unit} to {to_unit}")
    return qty * src[1] / dst[1]


@dataclass
class StockCheck:
    is_valid: bool
    stock_requirements: dict[str, Decimal] = field(default_factory=dict)
    message: str | None = None
    insufficient_items: list[dict] = field(default_factory=list)


def _addon_refs(raw: Any) -> list[tuple[str, Decimal]]:
    """Order add-ons arrive as ids or ``{"id", "quantity"?}`` objects."""
    refs = []
    for a in raw or []:
        if isinstance(a, str):
            refs.append((a, Decimal("1")))
        elif isinstance(a, dict) and a.get("id"):
            refs.append((a["id"], Decimal(str(a.get("quantity", 1)))))
        else:
            raise ValidationFailed("Invalid add-on reference")
    return refs


class _Requirements:
    def __init__(self):
        self.by_item: dict[str, Decimal] = {}

    def add(self, inventory_item_id: str, qty: Decimal, source: str):
        if qty <= 0:
            raise DataError(f"Non-positive stock requirement for {source}")
        self.by_item[inventory_item_id] = self.by_item.get(inventory_item_id, Decimal("0")) + qty


def _inventory_for(db: Session, restaurant_id: str, ids: Iterable[str]) -> dict[str, InventoryItem]:
    ids = list(set(ids))
    if not ids:
        return {}
    rows = (db.query(InventoryItem)
              .filter(InventoryItem.restaurant_id == restaurant_id, InventoryItem.id.in_(ids))
              .all())
    return {r.id: r for r in rows}


def _stock_item(db: Session, item: InventoryItem, branch_id: str | None) -> InventoryItem | None:
    """The row whose quantity backs ``item`` for ``branch_id``.

    Tenant-wide rows (no branch) serve every branch. A row scoped to another
    branch resolves to the same-named row of the ordering branch, if any.
    """
    if not branch_id or item.branch_id in (None, branch_id):
        return item
    return (db.query(InventoryItem)
              .filter(InventoryItem.restaurant_id == item.restaurant_id,
                      InventoryItem.branch_id == branch_id,
                      func.lower(InventoryItem.name) == item.name.lower())
              .first())


def compute_requirements(db: Session, restaurant_id: str, items: list[dict]) -> tuple[dict[str, Decimal], dict[str, InventoryItem]]:
    """Aggregate required quantity per referenced inventory item, in that item's unit."""
    menu_ids = {line["id"] for line in items}
    menu = {m.id: m for m in db.query(MenuItem).filter(
        MenuItem.restaurant_id == restaurant_id, MenuItem.id.in_(menu_ids)).all()} if menu_ids else {}
    missing = menu_ids - menu.keys()
    if missing:
        raise ValidationFailed("Unknown menu item", fields={"items": ", ".join(sorted(missing))})

    recipe_ids = {m.recipe_id for m in menu.values() if m.recipe_id}
    recipes = {r.id: r for r in db.query(Recipe).filter(
        Recipe.restaurant_id == restaurant_id, Recipe.id.in_(recipe_ids)).all()} if recipe_ids else {}

    addon_ids = {ref for line in items for ref, _ in _addon_refs(line.get("addons"))}
    addons = {a.id: a for a in db.query(Addon).filter(
        Addon.restaurant_id == restaurant_id, Addon.id.in_(addon_ids)).all()} if addon_ids else {}
    if addon_ids - addons.keys():
        raise ValidationFailed("Unknown add-on")

    inv_ids = [ing.get("inventoryItemId") for r in recipes.values() for ing in (r.ingredients or [])]
    inv_ids += [a.inventory_item_id for a in addons.values() if a.inventory_item_id]
    inventory = _inventory_for(db, restaurant_id, [i for i in inv_ids if i])

    req = _Requirements()
    for line in items:
        qty = Decimal(str(line["quantity"]))
        mi = menu[line["id"]]
        if mi.recipe_id:
            recipe = recipes.get(mi.recipe_id)
            if recipe is None:
                raise DataError(f"Menu item {mi.name} references a missing recipe")
            multiplier = PORTION_MULTIPLIERS[mi.portion_size]
            for ing in recipe.ingredients or []:
                inv = inventory.get(ing.get("inventoryItemId"))
                if inv is None:
                    raise DataError(f"Recipe {recipe.name} references a missing inventory item")
                per_unit = convert_qty(Decimal(str(ing.get("quantity", 0))), ing.get("unit"), inv.unit)
                req.add(inv.id, per_unit * qty * multiplier, f"{mi.name} / {inv.name}")

        for addon_id, addon_qty in _addon_refs(line.get("addons")):
            addon = addons[addon_id]
            if not addon.inventory_item_id:
                continue
            inv = inventory.get(addon.inventory_item_id)
            if inv is None:
                raise DataError(f"Add-on {addon.name} references a missing inventory item")
            req.add(inv.id, Decimal(str(addon.quantity or 0)) * addon_qty * qty, f"add-on {addon.name}")

    out = {k: q3(v) for k, v in req.by_item.items()}
    if any(v <= 0 for v in out.values()):
        raise DataError("Stock requirement rounds to zero")
    return out, inventory


def prepare_order_stock(db: Session, restaurant_id: str, items: list[dict], branch_id: str | None = None) -> StockCheck:
    required, inventory = compute_requirements(db, restaurant_id, items)

    # several refs can land on one branch row; availability is checked on the sum
    resolved: dict[str, Decimal] = {}
    rows: dict[str, InventoryItem] = {}
    shortfalls: list[dict] = []
    for inv_id, need in required.items():
        ref = inventory[inv_id]
        row = _stock_item(db, ref, branch_id)
        if row is None:
            shortfalls.append({"name": ref.name, "required": float(need), "available": 0.0, "unit": ref.unit})
            continue
        need = q3(convert_qty(need, ref.unit, row.unit))
        resolved[row.id] = resolved.get(row.id, Decimal("0")) + need
        rows[row.id] = row

    for row_id, need in resolved.items():
        row = rows[row_id]
        available = q3(row.quantity or 0)
        if available < need:
            shortfalls.append({
                "name": row.name, "required": float(need), "available": float(available), "unit": row.unit,
            })

    if shortfalls:
        detail = ", ".join(f"{s['name']} (required {s['required']} {s['unit']}, available {s['available']} {s['unit']})"
                           for s in shortfalls)
        return StockCheck(is_valid=False, stock_requirements=resolved,
                          message=f"Insufficient stock for: {detail}", insufficient_items=shortfalls)
    return StockCheck(is_valid=True, stock_requirements=resolved)


def menu_stock(db: Session, restaurant_id: str, branch_id: str | None = None) -> list[dict]:
    """How many portions of each menu item current stock can make (None when not recipe-linked)."""
    out = []
    for mi in db.query(MenuItem).filter(MenuItem.restaurant_id == restaurant_id).order_by(MenuItem.name).all():
        if not mi.recipe_id:
            out.append({"menuItemId": mi.id, "name": mi.name, "availablePortions": None, "inStock": True})
            continue
        try:
            required, inventory = compute_requirements(db, restaurant_id, [{"id": mi.id, "quantity": 1}])
        except DataError:
            logger.warning(f"Menu item {mi.id} has unusable recipe data")
            out.append({"menuItemId": mi.id, "name": mi.name, "availablePortions": 0, "inStock": False})
            continue
        if not required:
            out.append({"menuItemId": mi.id, "name": mi.name, "availablePortions": None, "inStock": True})
            continue
        portions = None
        for inv_id, need in required.items():
            row = _stock_item(db, inventory[inv_id], branch_id)
            have = q3(row.quantity or 0) if row else Decimal("0")
            n = int((have / need).to_integral_value(rounding=ROUND_FLOOR))
            portions = n if portions is None else min(portions, n)
        out.append({"menuItemId": mi.id, "name": mi.name, "availablePortions": portions, "inStock": portions > 0})
    return out
