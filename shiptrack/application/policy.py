"""
Declarative authorization: ``evaluate(actor, action, resource)`` looks the
action up in ``RULES`` and returns a ``Decision``; ``authorize`` turns a
denial into the matching ``ServiceError``.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from ..domain.models import UserRole
from .errors import Forbidden, Unauthenticated


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, re-read from the users table on every request."""
    id: str
    email: str
    role: UserRole
    first_name: str = ""
    last_name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class Action(str, Enum):
    VIEW_SHIPMENTS = "view_shipments"
    CREATE_SHIPMENT = "create_shipment"
    UPDATE_SHIPMENT = "update_shipment"
    DELETE_SHIPMENT = "delete_shipment"
    CHANGE_STATUS = "change_status"
    FLAG_SHIPMENT = "flag_shipment"
    MANAGE_USERS = "manage_users"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""


Rule = Callable[[Actor, Any], Decision]

ALLOW = Decision(True)


def authenticated(actor: Actor, resource: Any) -> Decision:
    return ALLOW


def admin_only(actor: Actor, resource: Any) -> Decision:
    if actor.is_admin:
        return ALLOW
    return Decision(False, "You must be an admin to perform this action")


def owner_or_admin(actor: Actor, resource: Any) -> Decision:
    if actor.is_admin or getattr(resource, "created_by_id", None) == actor.id:
        return ALLOW
    return Decision(False, "You do not have permission to edit this shipment")


RULES: dict[Action, Rule] = {
    Action.VIEW_SHIPMENTS: authenticated,
    Action.CREATE_SHIPMENT: authenticated,
    Action.CHANGE_STATUS: authenticated,
    Action.FLAG_SHIPMENT: authenticated,
    Action.UPDATE_SHIPMENT: owner_or_admin,
    Action.DELETE_SHIPMENT: admin_only,
    Action.MANAGE_USERS: admin_only,
}


def evaluate(actor: Optional[Actor], action: Action, resource: Any = None) -> Decision:
    if actor is None:
        return Decision(False, Unauthenticated.default_message)
    return RULES[action](actor, resource)


def authorize(actor: Optional[Actor], action: Action, resource: Any = None) -> Actor:
    """Return the actor when allowed; raise Unauthenticated or Forbidden otherwise."""
    if actor is None:
        raise Unauthenticated()
    decision = evaluate(actor, action, resource)
    if not decision.allowed:
        raise Forbidden(decision.reason)
    return actor
