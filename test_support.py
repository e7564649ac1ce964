import pytest


@pytest.fixture
def ticket(client, tenant):
    r = client.post("/tickets", headers=tenant.headers, json={
        "subject": "Printer offline", "category": "hardware", "priority": "high",
        "description": "Kitchen printer stopped after the update",
    })
    assert r.status_code == 201, r.text
    return r.json()


@pytest.fixture
def staff(client, tenant, login):
    r = client.post("/users", headers=tenant.headers, json={
        "username": "chef", "password": "secret123", "full_name": "Head Chef", "permissions": {"kitchen": True},
    })
    assert r.status_code == 201, r.text
    return login("chef")


# ── Tickets ─────────────────────────────────────────────────────────────────

def test_ticket_created_and_announced(client, tenant, listen):
    inbox = listen(tenant.restaurant_id)
    r = client.post("/tickets", headers=tenant.headers, json={"subject": "Login slow", "category": "software"})
    assert r.status_code == 201
    t = r.json()
    assert t["ticket_number"].startswith("TKT-")
    assert t["status"] == "open"
    assert t["priority"] == "medium"
    assert inbox.types() == ["ticket:created"]
    assert inbox.messages[0]["ticketNumber"] == t["ticket_number"]


def test_client_cannot_set_it_only_status(client, tenant, ticket):
    for status in ("in-progress", "resolved", "closed"):
        r = client.patch(f"/tickets/{ticket['id']}", headers=tenant.headers, json={"status": status})
        assert r.status_code == 403, status
        assert r.json()["detail"] == "Only IT support can set ticket status to In Progress, Resolved, or Closed"

    r = client.patch(f"/tickets/{ticket['id']}", headers=tenant.headers, json={"priority": "urgent"})
    assert r.status_code == 200
    assert r.json()["priority"] == "urgent"


def test_it_resolves_ticket(client, ticket, it_account, tenant, listen):
    inbox = listen(tenant.restaurant_id)
    r = client.patch(f"/tickets/{ticket['id']}", headers=it_account.headers, json={"status": "resolved"})
    assert r.status_code == 200
    assert r.json()["status"] == "resolved"
    assert r.json()["resolved_at"]
    assert inbox.types() == ["ticket:updated"]


def test_ticket_conversation(client, tenant, ticket, it_account, listen):
    inbox = listen(tenant.restaurant_id)
    url = f"/tickets/{ticket['id']}/messages"
    assert client.post(url, headers=tenant.headers, json={"message": "Still broken"}).status_code == 201
    r = client.post(url, headers=it_account.headers, json={"message": "Looking into it"})
    assert r.status_code == 201
    assert r.json()["sender_role"] == "it"

    thread = client.get(url, headers=tenant.headers).json()
    assert [m["message"] for m in thread] == ["Still broken", "Looking into it"]
    assert [m["sender_role"] for m in thread] == ["admin", "it"]
    assert inbox.types() == ["ticket:message", "ticket:message"]


def test_foreign_ticket_is_not_found(client, ticket, make_tenant):
    rival = make_tenant(name="Pizza Place", username="rival")
    assert client.get(f"/tickets/{ticket['id']}", headers=rival.headers).status_code == 404
    assert client.get("/tickets", headers=rival.headers).json() == []


# ── IT console ──────────────────────────────────────────────────────────────

def test_it_lists_tickets_across_tenants(client, ticket, it_account, make_tenant):
    rival = make_tenant(name="Pizza Place", username="rival")
    client.post("/tickets", headers=rival.headers, json={"subject": "Oven", "category": "hardware"})

    assert len(client.get("/it/tickets", headers=it_account.headers).json()) == 2
    only_open = client.get("/it/tickets", headers=it_account.headers,
                           params={"status": "open", "restaurant_id": rival.restaurant_id}).json()
    assert [t["subject"] for t in only_open] == ["Oven"]


def test_it_assigns_ticket(client, tenant, ticket, it_account, listen):
    inbox = listen(tenant.restaurant_id)
    r = client.patch(f"/it/tickets/{ticket['id']}/assign", headers=it_account.headers,
                     json={"assigned_to": it_account.user_id})
    assert r.status_code == 200
    assert r.json()["status"] == "in-progress"
    assert r.json()["assigned_to"] == it_account.user_id
    assert inbox.messages[-1]["assignedTo"] == it_account.user_id

    # client accounts cannot take tickets
    r = client.patch(f"/it/tickets/{ticket['id']}/assign", headers=it_account.headers,
                     json={"assigned_to": tenant.user_id})
    assert r.status_code == 400


def test_it_manages_orders_across_tenants(client, tenant, kitchen, it_account, listen):
    k = kitchen()
    order = client.post("/orders", headers=tenant.headers, json={
        "items": [{"id": k.burger["id"], "name": "Burger", "quantity": 1, "price": 20}],
    }).json()
    inbox = listen(tenant.restaurant_id)

    listed = client.get("/it/orders", headers=it_account.headers).json()
    assert [o["id"] for o in listed] == [order["id"]]

    r = client.patch(f"/it/orders/{order['id']}", headers=it_account.headers, json={"status": "ready"})
    assert r.status_code == 200
    assert r.json()["status"] == "ready"
    assert inbox.types() == ["order:statusUpdated"]
    assert inbox.messages[0]["restaurantId"] == tenant.restaurant_id


def test_it_account_status(client, tenant, it_account, login):
    accounts = client.get("/it/client-accounts", headers=it_account.headers).json()
    assert [(a["username"], a["restaurant_name"]) for a in accounts] == [("owner", "Burger House")]

    r = client.patch(f"/it/accounts/{tenant.user_id}/status", headers=it_account.headers, json={"active": False})
    assert r.status_code == 200
    assert r.json()["user"]["active"] is False
    assert client.get("/auth/me", headers=tenant.headers).status_code == 401

    r = client.patch(f"/it/accounts/{it_account.user_id}/status", headers=it_account.headers, json={"active": False})
    assert r.status_code == 400


# ── Chat ────────────────────────────────────────────────────────────────────

def _general(client, session):
    convs = client.get("/chat/conversations", headers=session.headers).json()
    return next(c for c in convs if c["name"] == "General")


def test_new_staff_join_general_channel(client, tenant, staff):
    owner_general = _general(client, tenant)
    assert _general(client, staff)["id"] == owner_general["id"]
    members = client.get(f"/chat/conversations/{owner_general['id']}/members", headers=tenant.headers).json()
    assert {m["full_name"] for m in members} == {"Burger House Owner", "Head Chef"}


def test_chat_message_reaches_members_only(client, tenant, staff, listen):
    general = _general(client, tenant)
    r = client.post("/chat/channels", headers=tenant.headers, json={"name": "Managers"})
    assert r.status_code == 201
    managers = r.json()

    member = listen(tenant.restaurant_id, tenant.user_id, {general["id"], managers["id"]})
    outsider = listen(tenant.restaurant_id, staff.user_id, {general["id"]})

    r = client.post(f"/chat/conversations/{managers['id']}/messages", headers=tenant.headers,
                    json={"content": "  Stock count at 9  "})
    assert r.status_code == 201
    assert r.json()["content"] == "Stock count at 9"
    assert member.types() == ["chat:message"]
    assert outsider.messages == []

    r = client.get(f"/chat/conversations/{managers['id']}/messages", headers=staff.headers)
    assert r.status_code == 403
    assert r.json()["detail"] == "Not a member of this conversation"
    r = client.post(f"/chat/conversations/{managers['id']}/messages", headers=staff.headers, json={"content": "hi"})
    assert r.status_code == 403


def test_blank_chat_message(client, tenant):
    general = _general(client, tenant)
    r = client.post(f"/chat/conversations/{general['id']}/messages", headers=tenant.headers, json={"content": "   "})
    assert r.status_code == 400


def test_messages_come_back_oldest_first(client, tenant):
    general = _general(client, tenant)
    url = f"/chat/conversations/{general['id']}/messages"
    for text in ("one", "two", "three"):
        client.post(url, headers=tenant.headers, json={"content": text})
    assert [m["content"] for m in client.get(url, headers=tenant.headers).json()] == ["one", "two", "three"]
    assert [m["content"] for m in client.get(url, headers=tenant.headers, params={"limit": 2}).json()] == ["two", "three"]


def test_direct_conversation_is_reused(client, tenant, staff):
    first = client.post("/chat/direct", headers=tenant.headers, json={"other_user_id": staff.user_id}).json()
    again = client.post("/chat/direct", headers=staff.headers, json={"other_user_id": tenant.user_id}).json()
    assert first["id"] == again["id"]
    assert first["type"] == "direct"

    r = client.post("/chat/direct", headers=tenant.headers, json={"other_user_id": tenant.user_id})
    assert r.status_code == 400


def test_branch_channel_needs_branch(client, tenant):
    r = client.post("/chat/channels", headers=tenant.headers, json={"name": "Olaya team", "scope": "branch"})
    assert r.status_code == 400
    branch = client.post("/branches", headers=tenant.headers, json={"name": "Olaya"}).json()
    r = client.post("/chat/channels", headers=tenant.headers,
                    json={"name": "Olaya team", "scope": "branch", "branch_id": branch["id"]})
    assert r.status_code == 201
    assert r.json()["branch_id"] == branch["id"]


def test_foreign_conversation_is_not_found(client, tenant, make_tenant):
    general = _general(client, tenant)
    rival = make_tenant(name="Pizza Place", username="rival")
    assert client.get(f"/chat/conversations/{general['id']}", headers=rival.headers).status_code == 404


def test_it_account_has_no_chat(client, it_account):
    assert client.get("/chat/conversations", headers=it_account.headers).status_code == 403


# ── IT dashboards ───────────────────────────────────────────────────────────

def test_it_analytics_spans_tenants(client, tenant, kitchen, ticket, it_account, make_tenant):
    k = kitchen()
    client.post("/orders", headers=tenant.headers, json={
        "items": [{"id": k.burger["id"], "name": "Burger", "quantity": 1, "price": 20}],
    })
    make_tenant(name="Pizza Place", username="rival")

    r = client.get("/it/analytics", headers=it_account.headers)
    assert r.status_code == 200
    stats = r.json()
    assert stats["totalRestaurants"] == 2
    assert stats["activeRestaurants"] == 2
    assert stats["totalClientUsers"] == 2
    assert stats["totalOrders"] == 1
    assert stats["totalRevenue"] == 23.0
    assert stats["tickets"]["total"] == 1
    assert stats["tickets"]["open"] == 1
    assert stats["avgResolutionHours"] is None

    assert client.get("/it/analytics", headers=tenant.headers).status_code == 403


def test_it_performance_ranks_sellers(client, tenant, kitchen, it_account, login):
    k = kitchen()
    client.post("/users", headers=tenant.headers, json={
        "username": "cashier", "password": "secret123", "full_name": "Cashier", "permissions": {"pos": True, "orders": True},
    })
    cashier = login("cashier")
    line = {"id": k.burger["id"], "name": "Burger", "price": 20}
    client.post("/orders", headers=tenant.headers, json={"items": [{**line, "quantity": 1}]})
    client.post("/orders", headers=cashier.headers, json={"items": [{**line, "quantity": 2}]})
    client.post("/orders", headers=cashier.headers, json={"items": [{**line, "quantity": 1}]})

    rows = client.get("/it/performance", headers=it_account.headers, params={"dateRange": 7}).json()
    assert [(r["username"], r["totalOrders"]) for r in rows] == [("cashier", 2), ("owner", 1)]
    assert rows[0]["totalSales"] == 69.0
    assert rows[0]["avgOrderValue"] == 34.5
    assert rows[0]["restaurantName"] == "Burger House"

    assert client.get("/it/performance", headers=it_account.headers, params={"dateRange": 0}).status_code == 400
    assert client.get("/it/performance", headers=tenant.headers).status_code == 403
