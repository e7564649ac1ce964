import itertools

import pytest

from restopos.services.permissions import (
    ACTIONS, FEATURE_KEYS, IT_FEATURES, AccountSnapshot, GranularPermission,
    action_for_method, check_access, normalize_permission, normalize_permission_set,
    serialize_permission_set,
)

GRANULAR_INPUTS = [
    dict(zip(ACTIONS, flags)) for flags in itertools.product([False, True], repeat=4)
]


@pytest.mark.parametrize("raw", GRANULAR_INPUTS + [True, False, None, "yes", 1])
def test_any_write_implies_view(raw):
    p = normalize_permission(raw)
    if p.add or p.edit or p.delete:
        assert p.view


def test_legacy_boolean_shapes():
    assert normalize_permission(True) == GranularPermission(True, True, True, True)
    assert normalize_permission(False) == GranularPermission()
    assert normalize_permission(None) == GranularPermission()


def test_write_without_view_is_upgraded_not_dropped():
    p = normalize_permission({"view": False, "edit": True})
    assert p == GranularPermission(view=True, edit=True)


def test_permission_set_covers_every_feature():
    perms = normalize_permission_set({"menu": True, "orders": {"view": True}, "bogus": True})
    assert set(perms) == set(FEATURE_KEYS)
    assert perms["menu"].delete
    assert perms["orders"].view and not perms["orders"].add
    assert perms["inventory"] == GranularPermission()


def test_serialized_set_is_canonical():
    stored = serialize_permission_set({"pos": True, "users": {"add": True}})
    assert stored["pos"] == {"view": True, "add": True, "edit": True, "delete": True}
    assert stored["users"] == {"view": True, "add": True, "edit": False, "delete": False}
    assert all(set(v) == set(ACTIONS) for v in stored.values())


@pytest.mark.parametrize("feature,action", itertools.product(FEATURE_KEYS, ACTIONS))
def test_admin_allowed_everywhere(feature, action):
    admin = AccountSnapshot(restaurant_id="r1", role="admin", permissions={})
    assert check_access(admin, feature, action)


def test_employee_follows_granular_record():
    emp = AccountSnapshot(restaurant_id="r1", role="employee",
                          permissions={"orders": {"view": True, "add": True}, "menu": True})
    assert check_access(emp, "orders", "view")
    assert check_access(emp, "orders", "add")
    assert not check_access(emp, "orders", "delete")
    assert check_access(emp, "menu", "delete")
    denied = check_access(emp, "inventory", "view")
    assert not denied
    assert "inventory" in denied.reason


@pytest.mark.parametrize("feature", FEATURE_KEYS)
def test_it_account_never_reaches_client_features(feature):
    # even a fully granted IT account stays out of tenant features
    it = AccountSnapshot(restaurant_id=None, role="admin", permissions={k: True for k in FEATURE_KEYS})
    assert not check_access(it, feature, "view")


@pytest.mark.parametrize("feature", IT_FEATURES)
def test_client_admin_never_reaches_it_features(feature):
    admin = AccountSnapshot(restaurant_id="r1", role="admin", permissions={})
    decision = check_access(admin, feature, "view")
    assert not decision
    assert decision.reason == "IT account required"


def test_it_features_open_to_it_accounts():
    it = AccountSnapshot(restaurant_id=None, role="admin", permissions={})
    assert all(check_access(it, f, "view") for f in IT_FEATURES)


def test_unknown_feature_and_action_are_denied():
    admin = AccountSnapshot(restaurant_id="r1", role="admin", permissions={})
    assert not check_access(admin, "nuclearLaunch", "view")
    assert not check_access(admin, "menu", "approve")


def test_action_for_method():
    assert action_for_method("GET") == "view"
    assert action_for_method("post") == "add"
    assert action_for_method("PATCH") == "edit"
    assert action_for_method("PUT") == "edit"
    assert action_for_method("DELETE") == "delete"
