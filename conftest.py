# conftest.py
import json
import os
import tempfile
from types import SimpleNamespace

import pytest

# settings are read at import time, so the environment must be in place first
_DB_DIR = tempfile.mkdtemp(prefix="restopos-tests-")
os.environ.setdefault("APP_SECRET", "test-secret-key-with-enough-length-for-hs256")
os.environ["DB_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["APP_ENV"] = "dev"
os.environ["IT_SIGNUP_SECRET"] = "it-secret"
os.environ.pop("INVOICE_RENDER_URL", None)

from fastapi.testclient import TestClient  # noqa: E402

from restopos.db import Base, SessionLocal, engine  # noqa: E402
from restopos.main import app  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def hub(client):
    return client.app.state.hub


def _login(client, username, password):
    r = client.post("/auth/login", json={"username": username, "password": password})
    assert r.status_code == 200, f"/auth/login failed: {r.text}"
    body = r.json()
    return SimpleNamespace(
        headers={"Authorization": f"Bearer {body['access_token']}"},
        user_id=body["user"]["id"],
        restaurant_id=body["user"]["restaurant_id"],
        token=body["access_token"],
    )


@pytest.fixture
def login(client):
    def _do(username, password="secret123"):
        return _login(client, username, password)
    return _do


@pytest.fixture
def make_tenant(client):
    def _make(name="Burger House", username="owner", password="secret123"):
        r = client.post("/auth/signup", json={
            "restaurant_name": name,
            "restaurant_type": "Fast Food",
            "vat_number": "300000000000003",
            "commercial_registration": "1010101010",
            "username": username,
            "password": password,
            "full_name": f"{name} Owner",
            "email": f"{username}@burgerhouse.sa",
        })
        assert r.status_code == 201, f"/auth/signup failed: {r.text}"
        return _login(client, username, password)
    return _make


@pytest.fixture
def tenant(make_tenant):
    return make_tenant()


@pytest.fixture
def it_account(client):
    r = client.post("/auth/it-signup", json={
        "username": "itsupport",
        "password": "secret123",
        "full_name": "IT Support",
        "email": "support@restopos.sa",
        "secret_key": "it-secret",
    })
    assert r.status_code == 201, f"/auth/it-signup failed: {r.text}"
    return _login(client, "itsupport", "secret123")


class RecordingListener:
    """Stands in for a WebSocket connection on the hub."""

    def __init__(self, restaurant_id, user_id="u", conversation_ids=()):
        self.restaurant_id = restaurant_id
        self.user_id = user_id
        self.conversation_ids = set(conversation_ids)
        self.messages = []

    def deliver(self, message):
        self.messages.append(json.loads(message))

    def types(self):
        return [m["type"] for m in self.messages]


@pytest.fixture
def listen(hub):
    def _listen(restaurant_id, user_id="u", conversation_ids=()):
        lst = RecordingListener(restaurant_id, user_id, conversation_ids)
        hub.register(lst)
        return lst
    return _listen


@pytest.fixture
def kitchen(client, tenant):
    """Beef stock, a 0.2 kg burger recipe and a Burger menu item for ``tenant``."""
    def _build(beef_qty=10, portion="full", headers=None):
        h = headers or tenant.headers
        r = client.post("/inventory", headers=h, json={"name": "beef", "quantity": beef_qty, "unit": "kg", "price": 40})
        assert r.status_code == 201, r.text
        beef = r.json()
        r = client.post("/recipes", headers=h, json={
            "name": "Burger", "ingredients": [{"inventoryItemId": beef["id"], "quantity": 0.2, "unit": "kg"}],
        })
        assert r.status_code == 201, r.text
        recipe = r.json()
        r = client.post("/menu", headers=h, json={
            "name": "Burger", "category": "Burgers", "price": 23.0, "recipe_id": recipe["id"], "portion_size": portion,
        })
        assert r.status_code == 201, r.text
        return SimpleNamespace(beef=beef, recipe=recipe, burger=r.json())
    return _build
