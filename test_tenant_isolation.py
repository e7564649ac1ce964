import pytest


@pytest.fixture
def rival(make_tenant):
    return make_tenant(name="Pizza Place", username="rival")


def test_foreign_inventory_looks_missing(client, tenant, rival, kitchen):
    k = kitchen()
    url = f"/inventory/{k.beef['id']}"

    assert client.get(url, headers=rival.headers).status_code == 404
    assert client.patch(url, headers=rival.headers, json={"quantity": 0}).status_code == 404
    assert client.delete(url, headers=rival.headers).status_code == 404

    mine = client.get(url, headers=tenant.headers)
    assert mine.status_code == 200
    assert mine.json()["quantity"] == 10.0


def test_lists_only_show_own_rows(client, tenant, rival, kitchen):
    kitchen()
    for path in ("/inventory", "/recipes", "/menu", "/orders"):
        r = client.get(path, headers=rival.headers)
        assert r.status_code == 200, path
        assert r.json() == [], path


def test_foreign_order_is_not_found(client, tenant, rival, kitchen):
    k = kitchen()
    order = client.post("/orders", headers=tenant.headers, json={
        "items": [{"id": k.burger["id"], "name": "Burger", "quantity": 1, "price": 20}],
    }).json()

    assert client.get(f"/orders/{order['id']}", headers=rival.headers).status_code == 404
    r = client.patch(f"/orders/{order['id']}", headers=rival.headers, json={"status": "cancelled"})
    assert r.status_code == 404
    assert client.get(f"/orders/{order['id']}", headers=tenant.headers).json()["status"] == "created"


def test_foreign_menu_item_cannot_be_ordered(client, tenant, rival, kitchen):
    k = kitchen()
    r = client.post("/orders", headers=rival.headers, json={
        "items": [{"id": k.burger["id"], "name": "Burger", "quantity": 1, "price": 20}],
    })
    assert r.status_code == 400
    assert client.get(f"/inventory/{k.beef['id']}", headers=tenant.headers).json()["quantity"] == 10.0


def test_references_must_stay_in_tenant(client, tenant, rival, kitchen):
    k = kitchen()
    r = client.post("/recipes", headers=rival.headers, json={
        "name": "Stolen", "ingredients": [{"inventoryItemId": k.beef["id"], "quantity": 1}],
    })
    assert r.status_code == 400

    r = client.post("/menu", headers=rival.headers, json={"name": "Stolen", "price": 5, "recipe_id": k.recipe["id"]})
    assert r.status_code == 404

    r = client.post("/addons", headers=rival.headers, json={
        "name": "Stolen", "inventory_item_id": k.beef["id"], "quantity": 1,
    })
    assert r.status_code == 404


def test_sort_batch_with_foreign_id_is_refused_whole(client, tenant, rival, kitchen):
    k = kitchen()
    own = client.post("/inventory", headers=rival.headers, json={"name": "flour", "quantity": 5, "unit": "kg"}).json()

    r = client.patch("/inventory/sort", headers=rival.headers, json={"updates": [
        {"id": own["id"], "sort_order": 7},
        {"id": k.beef["id"], "sort_order": 9},
    ]})
    assert r.status_code == 403
    assert r.json()["detail"] == "Access denied to one or more items"

    # nothing from the refused batch was applied
    assert client.get(f"/inventory/{own['id']}", headers=rival.headers).json()["sort_order"] == 0
    assert client.get(f"/inventory/{k.beef['id']}", headers=tenant.headers).json()["sort_order"] == 0


def test_sort_batch_of_own_rows(client, tenant):
    ids = [client.post("/inventory", headers=tenant.headers, json={"name": n, "quantity": 1, "unit": "kg"}).json()["id"]
           for n in ("a", "b")]
    r = client.patch("/inventory/sort", headers=tenant.headers, json={"updates": [
        {"id": ids[0], "sort_order": 2}, {"id": ids[1], "sort_order": 1},
    ]})
    assert r.status_code == 200
    assert r.json() == {"success": True, "updated": 2}
    assert [i["id"] for i in client.get("/inventory", headers=tenant.headers).json()] == [ids[1], ids[0]]


def test_recipe_sort_refuses_foreign_ids(client, tenant, rival, kitchen):
    k = kitchen()
    r = client.patch("/recipes/sort", headers=rival.headers, json={"updates": [{"id": k.recipe["id"], "sort_order": 1}]})
    assert r.status_code == 403


def test_foreign_branch_on_inventory_item(client, tenant, rival):
    branch = client.post("/branches", headers=tenant.headers, json={"name": "Olaya"}).json()
    r = client.post("/inventory", headers=rival.headers,
                    json={"name": "x", "quantity": 1, "unit": "kg", "branch_id": branch["id"]})
    assert r.status_code == 404
