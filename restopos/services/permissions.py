"""
Feature permission matrix.

Stored permission sets map a feature key to either a legacy boolean or a
granular ``{view, add, edit, delete}`` record. ``normalize_permission`` is the
only place that looks at the legacy shape; everything downstream works on
``GranularPermission``.

``check_access`` is a pure function of the account snapshot, the feature key
and the action, so decisions can be tested without a database.
"""
from dataclasses import dataclass
from typing import Literal, Mapping, Any

Action = Literal["view", "add", "edit", "delete"]
ACTIONS: tuple[Action, ...] = ("view", "add", "edit", "delete")

FEATURE_KEYS = (
    "pos", "orders", "kitchen", "menu", "inventory", "recipes", "customers",
    "branches", "procurement", "sales", "reports", "bills", "dashboard",
    "licenses", "settings", "users", "deliveryApps", "workingHours",
)

# only reachable by IT accounts, never by clients
IT_FEATURES = ("itDashboard", "performance", "itAccountManagement")

_METHOD_ACTIONS: dict[str, Action] = {
    "GET": "view", "HEAD": "view", "OPTIONS": "view",
    "POST": "add", "PUT": "edit", "PATCH": "edit", "DELETE": "delete",
}


@dataclass(frozen=True)
class GranularPermission:
    view: bool = False
    add: bool = False
    edit: bool = False
    delete: bool = False

    def allows(self, action: Action) -> bool:
        return bool(getattr(self, action))

    def as_dict(self) -> dict[str, bool]:
        return {a: getattr(self, a) for a in ACTIONS}


FULL = GranularPermission(True, True, True, True)
NONE = GranularPermission()

ADMIN_PERMISSIONS = {k: FULL.as_dict() for k in FEATURE_KEYS}
IT_PERMISSIONS = {k: FULL.as_dict() for k in IT_FEATURES}


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


def normalize_permission(value: Any) -> GranularPermission:
    """Legacy bool or granular mapping -> GranularPermission, with view implied by any write"""
    if value is True:
        return FULL
    if not isinstance(value, Mapping):
        return NONE
    add, edit, delete = (bool(value.get(a)) for a in ("add", "edit", "delete"))
    view = bool(value.get("view"))
    if add or edit or delete:
        view = True
    if not view:
        return NONE
    return GranularPermission(view=view, add=add, edit=edit, delete=delete)


def normalize_permission_set(raw: Mapping[str, Any] | None) -> dict[str, GranularPermission]:
    raw = raw or {}
    return {k: normalize_permission(raw.get(k)) for k in FEATURE_KEYS}


def serialize_permission_set(raw: Mapping[str, Any] | None) -> dict[str, dict[str, bool]]:
    """Canonical storage shape for a user's permission set."""
    return {k: p.as_dict() for k, p in normalize_permission_set(raw).items()}


def action_for_method(method: str) -> Action:
    return _METHOD_ACTIONS.get(method.upper(), "view")


@dataclass(frozen=True)
class AccountSnapshot:
    restaurant_id: str | None
    role: str
    permissions: Mapping[str, Any]

    @property
    def is_it(self) -> bool:
        return self.restaurant_id is None


def check_access(account: AccountSnapshot, feature: str, action: Action) -> AccessDecision:
    if action not in ACTIONS:
        return AccessDecision(False, f"Unknown action: {action}")

    if account.is_it:
        if feature in IT_FEATURES:
            return AccessDecision(True)
        return AccessDecision(False, "IT accounts cannot access client features")

    if feature in IT_FEATURES:
        return AccessDecision(False, "IT account required")
    if feature not in FEATURE_KEYS:
        return AccessDecision(False, f"Unknown feature: {feature}")

    if account.role == "admin":
        return AccessDecision(True)

    perm = normalize_permission((account.permissions or {}).get(feature))
    if perm.allows(action):
        return AccessDecision(True)
    return AccessDecision(False, f"You do not have permission to {action} {feature}")
