from types import SimpleNamespace

import pytest

from shiptrack.application.errors import Forbidden, Unauthenticated
from shiptrack.application.policy import RULES, Action, Actor, authorize, evaluate
from shiptrack.domain.models import UserRole

ADMIN = Actor(id="admin-1", email="admin@tms.com", role=UserRole.ADMIN)
EMPLOYEE = Actor(id="emp-1", email="employee@tms.com", role=UserRole.EMPLOYEE)


def test_every_action_has_a_rule():
    assert set(RULES) == set(Action)


def test_anonymous_is_denied_everything():
    for action in Action:
        assert evaluate(None, action).allowed is False
        with pytest.raises(Unauthenticated):
            authorize(None, action)


@pytest.mark.parametrize("action", [
    Action.VIEW_SHIPMENTS, Action.CREATE_SHIPMENT, Action.CHANGE_STATUS, Action.FLAG_SHIPMENT,
])
def test_any_signed_in_user(action):
    assert authorize(EMPLOYEE, action) is EMPLOYEE


@pytest.mark.parametrize("action", [Action.DELETE_SHIPMENT, Action.MANAGE_USERS])
def test_admin_only_actions(action):
    assert authorize(ADMIN, action) is ADMIN
    decision = evaluate(EMPLOYEE, action)
    assert decision.allowed is False
    assert "admin" in decision.reason
    with pytest.raises(Forbidden):
        authorize(EMPLOYEE, action)


def test_update_requires_creator_or_admin():
    mine = SimpleNamespace(created_by_id=EMPLOYEE.id)
    theirs = SimpleNamespace(created_by_id="someone-else")
    orphan = SimpleNamespace(created_by_id=None)

    assert evaluate(EMPLOYEE, Action.UPDATE_SHIPMENT, mine).allowed
    assert not evaluate(EMPLOYEE, Action.UPDATE_SHIPMENT, theirs).allowed
    assert not evaluate(EMPLOYEE, Action.UPDATE_SHIPMENT, orphan).allowed
    assert evaluate(ADMIN, Action.UPDATE_SHIPMENT, theirs).allowed
    assert evaluate(ADMIN, Action.UPDATE_SHIPMENT, orphan).allowed
