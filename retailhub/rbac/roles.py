"""
Role definitions and permission matrix.

Permission format:  "{module}:{action}"
  - Modules : proposals, products, inventory, notifications, audit, stores, users
  - Actions : read, create, update, delete, manage, *  (wildcard)
  - Wildcard: "*:*"  means ALL modules, ALL actions

"inventory:manage" is the inventory-management capability required to
approve or reject proposals.
"""

ROLES: dict[str, list[str]] = {
    "super_admin": [
        "*:*",  # everything
    ],
    "company_admin": [
        "users:*",
        "stores:*",
        "products:*",
        "inventory:*",
        "proposals:*",
        "notifications:*",
        "audit:read",
    ],
    "store_manager": [
        "products:read",
        "inventory:read",
        "proposals:create",
        "proposals:read",
        "notifications:*",
    ],
    "employee": [
        "products:read",
        "proposals:create",
        "proposals:read",
        "notifications:*",
    ],
}


def get_role_permissions(role: str) -> list[str]:
    """Return the permission list for a given role name."""
    return ROLES.get(role, [])
