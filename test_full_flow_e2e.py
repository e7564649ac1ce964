# test_full_flow_e2e.py
import base64

import pytest


def jprint(step, r):
    """Return the JSON body, failing with the step name on a non-2xx."""
    assert 200 <= r.status_code < 300, f"{step} -> {r.status_code}: {r.text}"
    return r.json() if r.headers.get("content-type", "").startswith("application/json") else r.text


def test_full_pos_flow(client, hub, listen):
    # ===== 1. Bootstrap demo tenant and log in =====
    boot = jprint("POST /admin/dev-bootstrap", client.post("/admin/dev-bootstrap"))
    again = jprint("POST /admin/dev-bootstrap (again)", client.post("/admin/dev-bootstrap"))
    assert again == boot, "bootstrap must be idempotent"

    tok = jprint("POST /auth/login", client.post("/auth/login", json={
        "username": boot["admin_username"], "password": boot["admin_password"],
    }))
    H = {"Authorization": f"Bearer {tok['access_token']}"}
    rid = boot["restaurant_id"]
    inbox = listen(rid)

    # ===== 2. Branch, settings =====
    branch = jprint("POST /branches", client.post("/branches", headers=H, json={
        "name": "Olaya", "location": "Olaya St, Riyadh", "phone": "0110000001",
    }))
    assert len(jprint("GET /branches", client.get("/branches", headers=H))) == 2

    s = jprint("PATCH /settings", client.patch("/settings", headers=H, json={"vat_number": "311111111100003"}))
    assert s["vat_rate"] == 0.15

    # ===== 3. Inventory, recipe, menu, add-on =====
    buns = jprint("POST /inventory", client.post("/inventory", headers=H, json={
        "name": "Buns", "category": "Bakery", "quantity": 40, "unit": "pcs", "price": 0.5,
    }))
    assert buns["status"] == "In Stock"

    recipe = jprint("POST /recipes", client.post("/recipes", headers=H, json={
        "name": "Double Burger",
        "ingredients": [
            {"inventoryItemId": boot["inventory_item_id"], "quantity": 300, "unit": "g"},
            {"inventoryItemId": buns["id"], "quantity": 1},
        ],
    }))
    assert recipe["ingredients"][1]["unit"] == "pcs"
    assert recipe["cost"] == 14.0

    double = jprint("POST /menu", client.post("/menu", headers=H, json={
        "name": "Double Burger", "category": "Burgers", "price": 34.5, "recipe_id": recipe["id"],
    }))
    assert double["base_price"] == 30.0
    assert double["vat_amount"] == 4.5

    cheese = jprint("POST /addons", client.post("/addons", headers=H, json={
        "name": "Cheese", "price": 3, "menu_item_id": double["id"],
    }))

    stock = {m["name"]: m for m in jprint("GET /menu/stock", client.get("/menu/stock", headers=H))}
    assert stock["Double Burger"]["availablePortions"] == 33
    assert stock["Classic Burger"]["availablePortions"] == 50

    # ===== 4. Order =====
    order = jprint("POST /orders", client.post("/orders", headers=H, json={
        "branch_id": branch["id"],
        "order_type": "takeaway",
        "customer_name": "Fahad",
        "payment_method": "card",
        "items": [
            {"id": double["id"], "name": "Double Burger", "quantity": 2, "price": 30, "addons": [cheese["id"]]},
            {"id": boot["menu_item_id"], "name": "Classic Burger", "quantity": 1, "price": 25},
        ],
    }))
    assert order["subtotal"] == 91.0
    assert order["tax"] == 13.65
    assert order["total"] == 104.65

    beef = jprint("GET /inventory/{beef}", client.get(f"/inventory/{boot['inventory_item_id']}", headers=H))
    assert beef["quantity"] == pytest.approx(9.2)
    buns = jprint("GET /inventory/{buns}", client.get(f"/inventory/{buns['id']}", headers=H))
    assert buns["quantity"] == pytest.approx(38)

    created = [m for m in inbox.messages if m["type"] == "order:created"]
    assert created[0]["branchName"] == "Olaya"
    assert created[0]["itemsSummary"] == "Double Burger, Classic Burger"

    for status in ("processing", "ready", "paid"):
        o = jprint(f"PATCH /orders -> {status}", client.patch(f"/orders/{order['id']}", headers=H, json={"status": status}))
        assert o["status"] == status

    # ===== 5. Payment and invoice =====
    txn = jprint("POST /transactions", client.post("/transactions", headers=H, json={
        "order_id": order["id"], "branch_id": branch["id"], "items": order["items"],
        "subtotal": order["subtotal"], "tax": order["tax"], "total": order["total"], "payment_method": "card",
    }))
    assert txn["payment_method"] == "card"
    assert [t["id"] for t in jprint("GET /transactions", client.get("/transactions", headers=H))] == [txn["id"]]

    inv = jprint("POST /invoices", client.post("/invoices", headers=H, json={"order_id": order["id"]}))
    assert inv["invoice_number"].startswith("INV-")
    assert inv["customer_name"] == "Fahad"
    assert inv["pdf_path"] is None
    qr = base64.b64decode(inv["qr_code"])
    assert qr[0] == 1 and qr[2:2 + qr[1]].decode() == "Demo Restaurant"
    assert b"104.65" in qr and b"13.65" in qr

    r = client.post("/invoices", headers=H, json={"order_id": order["id"]})
    assert r.status_code == 409

    # ===== 6. Dashboard =====
    dash = jprint("GET /analytics/dashboard", client.get("/analytics/dashboard", headers=H))
    assert dash["todaysSales"] == pytest.approx(104.65)
    assert dash["activeOrders"] == 1
    assert dash["lowStockItems"] == 1
    assert [o["id"] for o in dash["recentOrders"]] == [order["id"]]
    assert dash["performance"]["dod"]["current"] == pytest.approx(104.65)
    assert set(dash["performance"]) == {"dod", "wow", "mom", "yoy"}
    assert len(dash["peakHours"]["hourlyData"]) == 24

    jprint("PATCH /orders -> completed", client.patch(f"/orders/{order['id']}", headers=H, json={"status": "completed"}))
    assert jprint("GET /analytics/dashboard", client.get("/analytics/dashboard", headers=H))["activeOrders"] == 0

    # ===== 7. Cleanup paths =====
    r = client.delete(f"/recipes/{recipe['id']}", headers=H)
    assert r.status_code == 204
    assert jprint("GET /menu/{id}", client.get(f"/menu/{double['id']}", headers=H))["recipe_id"] is None
    r = client.delete(f"/menu/{double['id']}", headers=H)
    assert r.status_code == 204
    assert jprint("GET /addons/{id}", client.get(f"/addons/{cheese['id']}", headers=H))["menu_item_id"] is None
