import pytest

from core.access import Action, Caller, can_perform, require
from core.errors import Forbidden, Unauthenticated
from models.enums import Role

customer = Caller(1, Role.CUSTOMER)
owner = Caller(2, Role.RESTAURANT)
driver = Caller(3, Role.DRIVER)


def test_role_is_coerced_from_string():
    assert Caller(5, "Driver").role == Role.DRIVER


def test_unknown_role_is_rejected_with_a_code():
    with pytest.raises(Unauthenticated) as exc:
        Caller(5, "bogus")
    assert exc.value.code == "INVALID_ROLE"


def test_anonymous_caller_is_denied():
    assert not can_perform(None, Action.VIEW_ORDER)
    with pytest.raises(Unauthenticated):
        require(None, Action.VIEW_ORDER)


def test_role_rules():
    assert can_perform(customer, Action.CREATE_ORDER)
    assert not can_perform(driver, Action.CREATE_ORDER)
    assert can_perform(driver, Action.ACCEPT_ORDER)
    assert not can_perform(owner, Action.ACCEPT_ORDER)
    assert can_perform(owner, Action.LIST_ALL_ORDERS)
    assert not can_perform(customer, Action.LIST_ALL_ORDERS)


def test_ownership_is_enforced_when_an_owner_is_given():
    assert can_perform(customer, Action.MANAGE_CART, owner_id=1)
    assert not can_perform(customer, Action.MANAGE_CART, owner_id=99)
    # no owner yet: creating a resource
    assert can_perform(customer, Action.MANAGE_CART)


def test_ownership_ignored_for_unowned_actions():
    assert can_perform(customer, Action.VIEW_ORDER, owner_id=99)


def test_require_raises_forbidden():
    with pytest.raises(Forbidden) as exc:
        require(customer, Action.CONFIRM_ORDER)
    assert exc.value.kind == "Forbidden"
    with pytest.raises(Forbidden):
        require(owner, Action.CONFIRM_ORDER, owner_id=77)
    assert require(owner, Action.CONFIRM_ORDER, owner_id=2) is owner
