# core/access.py
"""
Role-based access control.

Every service consults `require()` before it touches state. The rules table
maps an action to the roles allowed to perform it and whether the caller must
also own the resource (customer of the cart/order, owner of the restaurant,
account behind the driver profile).
"""
from dataclasses import dataclass
from enum import Enum

from core.errors import Unauthenticated, Forbidden
from models.enums import Role


@dataclass(frozen=True)
class Caller:
    """Identity resolved by the external auth collaborator."""
    user_id: int
    role: Role

    def __post_init__(self):
        # Accept plain strings coming from a decoded token
        if not isinstance(self.role, Role):
            try:
                role = Role(self.role)
            except ValueError:
                raise Unauthenticated(f"Unknown role: {self.role!r}", code="INVALID_ROLE")
            object.__setattr__(self, "role", role)


class Action(str, Enum):
    # Carts
    MANAGE_CART = "manage_cart"
    VIEW_CART = "view_cart"
    CHECKOUT = "checkout"
    # Orders
    CREATE_ORDER = "create_order"
    VIEW_ORDER = "view_order"
    LIST_ALL_ORDERS = "list_all_orders"
    LIST_PENDING_ORDERS = "list_pending_orders"
    CONFIRM_ORDER = "confirm_order"
    PREPARE_ORDER = "prepare_order"
    REJECT_ORDER = "reject_order"
    CANCEL_ORDER = "cancel_order"
    MODIFY_ORDER_ITEMS = "modify_order_items"
    VIEW_ORDER_STATS = "view_order_stats"
    VIEW_ITEM_STATS = "view_item_stats"
    VIEW_MENU_ITEM_ORDERS = "view_menu_item_orders"
    # Deliveries
    LIST_AVAILABLE_ORDERS = "list_available_orders"
    ACCEPT_ORDER = "accept_order"
    DELIVER_ORDER = "deliver_order"
    # Driver profiles
    MANAGE_DRIVER_PROFILE = "manage_driver_profile"
    VIEW_DRIVER = "view_driver"
    VIEW_DRIVER_STATS = "view_driver_stats"
    ADMINISTER_DRIVERS = "administer_drivers"
    ASSIGN_DRIVER = "assign_driver"
    # Restaurants
    MANAGE_RESTAURANT = "manage_restaurant"


ANY_ROLE = frozenset(Role)

# action -> (allowed roles, ownership required)
RULES = {
    Action.MANAGE_CART: ({Role.CUSTOMER}, True),
    Action.VIEW_CART: ({Role.CUSTOMER}, True),
    Action.CHECKOUT: ({Role.CUSTOMER}, True),
    Action.CREATE_ORDER: ({Role.CUSTOMER}, False),
    Action.VIEW_ORDER: (ANY_ROLE, False),
    Action.LIST_ALL_ORDERS: ({Role.RESTAURANT}, False),
    Action.LIST_PENDING_ORDERS: ({Role.RESTAURANT}, False),
    Action.CONFIRM_ORDER: ({Role.RESTAURANT}, True),
    Action.PREPARE_ORDER: ({Role.RESTAURANT}, True),
    Action.REJECT_ORDER: ({Role.RESTAURANT}, True),
    Action.CANCEL_ORDER: ({Role.CUSTOMER, Role.RESTAURANT}, True),
    Action.MODIFY_ORDER_ITEMS: ({Role.CUSTOMER}, True),
    Action.VIEW_ORDER_STATS: (ANY_ROLE, False),
    Action.VIEW_ITEM_STATS: ({Role.RESTAURANT}, False),
    Action.VIEW_MENU_ITEM_ORDERS: ({Role.RESTAURANT}, True),
    Action.LIST_AVAILABLE_ORDERS: ({Role.DRIVER}, False),
    Action.ACCEPT_ORDER: ({Role.DRIVER}, False),
    Action.DELIVER_ORDER: ({Role.DRIVER}, True),
    Action.MANAGE_DRIVER_PROFILE: ({Role.DRIVER}, True),
    Action.VIEW_DRIVER: (ANY_ROLE, False),
    Action.VIEW_DRIVER_STATS: ({Role.DRIVER, Role.RESTAURANT}, False),
    Action.ADMINISTER_DRIVERS: ({Role.RESTAURANT}, False),
    Action.ASSIGN_DRIVER: ({Role.RESTAURANT}, True),
    Action.MANAGE_RESTAURANT: ({Role.RESTAURANT}, True),
}


def can_perform(caller, action: Action, owner_id: int = None) -> bool:
    """
    Pure predicate: may `caller` perform `action` on a resource owned by `owner_id`?

    Ownership is only evaluated when the rule requires it and an owner is given;
    callers that create a resource pass no owner.
    """
    if caller is None:
        return False
    roles, needs_owner = RULES[action]
    if caller.role not in roles:
        return False
    if needs_owner and owner_id is not None and owner_id != caller.user_id:
        return False
    return True


def require_caller(caller):
    if caller is None:
        raise Unauthenticated()
    return caller


def require(caller, action: Action, owner_id: int = None):
    """Raise Unauthenticated / Forbidden unless `caller` may perform `action`."""
    require_caller(caller)
    if not can_perform(caller, action, owner_id):
        roles, _ = RULES[action]
        if caller.role not in roles:
            raise Forbidden(f"Role {caller.role.value} cannot {action.value.replace('_', ' ')}")
        raise Forbidden(f"You can only {action.value.replace('_', ' ')} on your own resources")
    return caller
