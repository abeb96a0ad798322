"""
Scope rules for proposal actions.

Each role maps every proposal action to one rule from a closed set. The
rule decides whether a caller may act on an entity stamped with a given
company / store. Roles missing from the table are denied everything.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from retailhub.utils.exceptions import AccessDeniedError
from retailhub.utils.helpers import as_object_id

if TYPE_CHECKING:
    from retailhub.auth.schemas import CurrentUser


class ScopeRule(str, Enum):
    UNRESTRICTED = "unrestricted"
    SAME_COMPANY = "same_company"
    SAME_STORE = "same_store"
    FORBIDDEN = "forbidden"


class ProposalAction(str, Enum):
    SUBMIT = "submit"
    VIEW = "view"
    APPROVE = "approve"
    REJECT = "reject"


_STORE_STAFF = {
    ProposalAction.SUBMIT: ScopeRule.SAME_STORE,
    ProposalAction.VIEW: ScopeRule.SAME_STORE,
    ProposalAction.APPROVE: ScopeRule.FORBIDDEN,
    ProposalAction.REJECT: ScopeRule.FORBIDDEN,
}

SCOPE_RULES: dict[str, dict[ProposalAction, ScopeRule]] = {
    "super_admin": {action: ScopeRule.UNRESTRICTED for action in ProposalAction},
    "company_admin": {action: ScopeRule.SAME_COMPANY for action in ProposalAction},
    "store_manager": dict(_STORE_STAFF),
    "employee": dict(_STORE_STAFF),
}


def rule_for(role: str, action: ProposalAction) -> ScopeRule:
    return SCOPE_RULES.get(role, {}).get(action, ScopeRule.FORBIDDEN)


def is_allowed(
    user: "CurrentUser",
    action: ProposalAction,
    company_id: Any = None,
    store_id: Any = None,
) -> bool:
    rule = rule_for(user.role, action)
    if rule is ScopeRule.UNRESTRICTED:
        return True
    if rule is ScopeRule.SAME_COMPANY:
        return user.within_company(company_id)
    if rule is ScopeRule.SAME_STORE:
        return user.within_store(store_id)
    return False


def assert_allowed(
    user: "CurrentUser",
    action: ProposalAction,
    company_id: Any = None,
    store_id: Any = None,
) -> None:
    """Raise AccessDeniedError unless `user` may perform `action` in that scope."""
    if not is_allowed(user, action, company_id, store_id):
        raise AccessDeniedError()


def scope_filter(user: "CurrentUser", company_id: Optional[str] = None) -> dict:
    """
    MongoDB filter restricting a listing to what `user` may view.

    `company_id` is an optional narrowing honoured for unrestricted callers
    only; scoped callers are always pinned to their own company / store.
    """
    rule = rule_for(user.role, ProposalAction.VIEW)

    if rule is ScopeRule.UNRESTRICTED:
        return {"company_id": as_object_id(company_id)} if company_id else {}

    if rule is ScopeRule.SAME_COMPANY and user.company_id:
        return {"company_id": as_object_id(user.company_id)}

    if rule is ScopeRule.SAME_STORE and user.store_id:
        return {"store_id": as_object_id(user.store_id)}

    raise AccessDeniedError()
