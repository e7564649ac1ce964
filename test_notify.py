import time

import pytest
from starlette.websockets import WebSocketDisconnect

from restopos.services.notify import Event, EventType, NotificationHub

from conftest import RecordingListener


class BrokenListener(RecordingListener):
    def deliver(self, message):
        raise RuntimeError("socket gone")


def test_events_stay_inside_their_tenant():
    hub = NotificationHub()
    a, b = RecordingListener("r1"), RecordingListener("r2")
    hub.register(a)
    hub.register(b)

    sent = hub.publish(Event(EventType.ORDER_CREATED, "r1", {"orderId": "o1"}))
    assert sent == 1
    assert a.types() == ["order:created"]
    assert a.messages[0]["restaurantId"] == "r1"
    assert b.messages == []


def test_chat_only_reaches_conversation_members():
    hub = NotificationHub()
    member = RecordingListener("r1", "u1", {"c1"})
    outsider = RecordingListener("r1", "u2", {"c2"})
    hub.register(member)
    hub.register(outsider)

    hub.publish(Event(EventType.CHAT_MESSAGE, "r1", {"message": {"content": "hi"}}, conversation_id="c1"))
    assert member.messages[0]["conversationId"] == "c1"
    assert outsider.messages == []

    # non-chat events go to everyone in the tenant
    hub.publish(Event(EventType.SETTINGS_UPDATED, "r1", {"settings": {}}))
    assert outsider.types() == ["settings:updated"]


def test_join_conversation_updates_connected_sessions():
    hub = NotificationHub()
    lst = RecordingListener("r1", "u1")
    hub.register(lst)
    hub.join_conversation("r1", "u1", "c9")
    hub.publish(Event(EventType.CHAT_MESSAGE, "r1", {}, conversation_id="c9"))
    assert lst.types() == ["chat:message"]


def test_failing_listener_is_dropped():
    hub = NotificationHub()
    good, bad = RecordingListener("r1", "u1"), BrokenListener("r1", "u2")
    hub.register(good)
    hub.register(bad)

    assert hub.publish(Event(EventType.TICKET_CREATED, "r1")) == 1
    assert hub.listener_count("r1") == 1
    assert good.types() == ["ticket:created"]


def test_unregister_and_close():
    hub = NotificationHub()
    lst = RecordingListener("r1")
    hub.register(lst)
    hub.unregister(lst)
    hub.unregister(lst)
    assert hub.listener_count() == 0
    assert hub.publish(Event(EventType.ORDER_CREATED, "r1")) == 0

    hub.register(RecordingListener("r2"))
    hub.close()
    assert hub.listener_count() == 0


def test_settings_update_is_broadcast(client, tenant, listen):
    inbox = listen(tenant.restaurant_id)
    r = client.patch("/settings", headers=tenant.headers, json={"receipt_footer": "Shukran"})
    assert r.status_code == 200, r.text
    assert inbox.types() == ["settings:updated"]
    assert inbox.messages[0]["settings"]["receipt_footer"] == "Shukran"


def test_websocket_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws/notifications?token=garbage") as ws:
            ws.receive_text()
    assert exc.value.code == 4401


def test_websocket_rejects_it_accounts(client, it_account):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"/ws/notifications?token={it_account.token}") as ws:
            ws.receive_text()
    assert exc.value.code == 4403


def _wait_for_listener(hub, restaurant_id, timeout=2.0):
    deadline = time.monotonic() + timeout
    while hub.listener_count(restaurant_id) == 0:
        assert time.monotonic() < deadline, "websocket listener never registered"
        time.sleep(0.01)


def test_websocket_receives_order_events(client, hub, tenant, kitchen):
    k = kitchen()
    with client.websocket_connect(f"/ws/notifications?token={tenant.token}") as ws:
        _wait_for_listener(hub, tenant.restaurant_id)
        r = client.post("/orders", headers=tenant.headers, json={
            "items": [{"id": k.burger["id"], "name": "Burger", "quantity": 1, "price": 20}],
        })
        assert r.status_code == 201
        event = ws.receive_json()
    assert event["type"] == "order:created"
    assert event["orderId"] == r.json()["id"]
