from .roles import ROLES, get_role_permissions
from .permissions import check_permission, resolve_permission_from_request
from .scopes import ProposalAction, ScopeRule, SCOPE_RULES, assert_allowed, scope_filter

__all__ = [
    "ROLES",
    "get_role_permissions",
    "check_permission",
    "resolve_permission_from_request",
    "ProposalAction",
    "ScopeRule",
    "SCOPE_RULES",
    "assert_allowed",
    "scope_filter",
]
