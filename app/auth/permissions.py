"""Capability lookup. Capabilities are (module, action) pairs, e.g. ("leave", "approve")."""

from typing import Dict

from app.auth.schemas import CurrentUser

ADMIN_ROLES = ("SUPER_ADMIN", "ADMIN")

# Built-in capabilities per role. A Role row with the same name replaces the entry.
DEFAULT_ROLE_PERMISSIONS: Dict[str, Dict[str, Dict[str, bool]]] = {
    "ADMIN": {
        "leave": {"create": True, "read": True, "approve": True, "manage": True},
        "attendance": {"create": True, "read": True, "override": True},
        "calendar": {"read": True, "manage": True},
        "classes": {"read": True, "manage": True},
    },
    "TEACHER": {
        "leave": {"create": True, "read": True},
        "attendance": {"create": True, "read": True},
        "calendar": {"read": True},
        "classes": {"read": True},
    },
    "STUDENT": {
        "leave": {"create": True, "read": True},
        "attendance": {"read": True},
        "calendar": {"read": True},
    },
    "PARENT": {
        "calendar": {"read": True},
    },
}


def default_permissions(role: str) -> Dict[str, Dict[str, bool]]:
    return {module: dict(actions) for module, actions in DEFAULT_ROLE_PERMISSIONS.get(role, {}).items()}


def is_admin(user: CurrentUser) -> bool:
    return user.role in ADMIN_ROLES


def has_permission(user: CurrentUser, module: str, action: str) -> bool:
    if user.role == "SUPER_ADMIN":
        return True
    permissions: Dict[str, Dict[str, bool]] = user.permissions or {}
    return bool(permissions.get(module, {}).get(action, False))
