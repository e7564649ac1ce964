import pytest


@pytest.mark.parametrize("field", ["price", "portion_size", "name", "available"])
def test_menu_patch_rejects_null(client, tenant, kitchen, field):
    k = kitchen()
    url = f"/menu/{k.burger['id']}"
    r = client.patch(url, headers=tenant.headers, json={field: None})
    assert r.status_code == 400
    assert r.json()["error_code"] == "VALIDATION_ERROR"
    assert field in r.json()["fields"]

    after = client.get(url, headers=tenant.headers).json()
    assert after["price"] == 23.0
    assert after["portion_size"] == "full"


def test_menu_patch_still_clears_nullable_fields(client, tenant, kitchen):
    k = kitchen()
    r = client.patch(f"/menu/{k.burger['id']}", headers=tenant.headers, json={"recipe_id": None, "category": None})
    assert r.status_code == 200
    assert r.json()["recipe_id"] is None
    assert r.json()["category"] is None


def test_inventory_patch_rejects_null(client, tenant, kitchen):
    k = kitchen()
    r = client.patch(f"/inventory/{k.beef['id']}", headers=tenant.headers, json={"name": None, "unit": None})
    assert r.status_code == 400
    assert {"name", "unit"} <= set(r.json()["fields"])
    for field in ("quantity", "price"):
        r = client.patch(f"/inventory/{k.beef['id']}", headers=tenant.headers, json={field: None})
        assert r.status_code == 400, field
    assert client.get(f"/inventory/{k.beef['id']}", headers=tenant.headers).json()["unit"] == "kg"


def test_recipe_patch_rejects_null(client, tenant, kitchen):
    k = kitchen()
    for field in ("name", "ingredients"):
        r = client.patch(f"/recipes/{k.recipe['id']}", headers=tenant.headers, json={field: None})
        assert r.status_code == 400, field
        assert field in r.json()["fields"]


def test_addon_patch_rejects_null(client, tenant, kitchen):
    k = kitchen()
    addon = client.post("/addons", headers=tenant.headers, json={"name": "Pickles", "price": 1,
                                                                "menu_item_id": k.burger["id"]}).json()
    r = client.patch(f"/addons/{addon['id']}", headers=tenant.headers, json={"price": None})
    assert r.status_code == 400
    assert "price" in r.json()["fields"]
    r = client.patch(f"/addons/{addon['id']}", headers=tenant.headers, json={"menu_item_id": None})
    assert r.status_code == 200
    assert r.json()["menu_item_id"] is None


def test_branch_user_ticket_and_settings_patches_reject_null(client, tenant):
    h = tenant.headers
    branch = client.post("/branches", headers=h, json={"name": "Olaya"}).json()
    assert client.patch(f"/branches/{branch['id']}", headers=h, json={"name": None}).status_code == 400
    assert client.patch(f"/users/{tenant.user_id}", headers=h, json={"password": None}).status_code == 400
    ticket = client.post("/tickets", headers=h, json={"subject": "Drawer", "category": "hardware"}).json()
    assert client.patch(f"/tickets/{ticket['id']}", headers=h, json={"category": None}).status_code == 400
    assert client.patch("/settings", headers=h, json={"language": None}).status_code == 400


# ── Inventory deletion ──────────────────────────────────────────────────────

def test_inventory_in_a_recipe_cannot_be_deleted(client, tenant, kitchen):
    k = kitchen()
    r = client.delete(f"/inventory/{k.beef['id']}", headers=tenant.headers)
    assert r.status_code == 409
    assert r.json()["error_code"] == "CONFLICT"
    assert "Burger" in r.json()["detail"]

    # the recipe keeps working
    r = client.post("/orders", headers=tenant.headers, json={
        "items": [{"id": k.burger["id"], "name": "Burger", "quantity": 1, "price": 20}],
    })
    assert r.status_code == 201


def test_inventory_with_movements_cannot_be_deleted(client, tenant, kitchen):
    k = kitchen()
    client.post("/orders", headers=tenant.headers, json={
        "items": [{"id": k.burger["id"], "name": "Burger", "quantity": 1, "price": 20}],
    })
    # unlinking the recipe is not enough once stock has moved
    client.delete(f"/recipes/{k.recipe['id']}", headers=tenant.headers)
    r = client.delete(f"/inventory/{k.beef['id']}", headers=tenant.headers)
    assert r.status_code == 409
    assert "stock movements" in r.json()["detail"]


def test_inventory_linked_to_addon_cannot_be_deleted(client, tenant):
    h = tenant.headers
    cheese = client.post("/inventory", headers=h, json={"name": "cheese", "quantity": 1, "unit": "kg"}).json()
    addon = client.post("/addons", headers=h, json={"name": "Extra cheese", "price": 2,
                                                   "inventory_item_id": cheese["id"], "quantity": 0.05}).json()
    assert client.delete(f"/inventory/{cheese['id']}", headers=h).status_code == 409

    client.delete(f"/addons/{addon['id']}", headers=h)
    assert client.delete(f"/inventory/{cheese['id']}", headers=h).status_code == 204
    assert client.get(f"/inventory/{cheese['id']}", headers=h).status_code == 404
