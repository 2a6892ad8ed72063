# core/errors.py
"""
Error taxonomy shared by every service.

Each error carries a stable machine-readable ``code`` and the ``kind`` it
belongs to, so a transport layer can map it to a response without parsing
messages.
"""


class ServiceError(Exception):
    kind = "Error"
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self):
        return {"code": self.code, "kind": self.kind, "message": self.message}

    def __repr__(self):
        return f"<{type(self).__name__} {self.code}: {self.message}>"


# ===================== KINDS =====================

class Unauthenticated(ServiceError):
    kind = "Unauthenticated"
    code = "UNAUTHENTICATED"

    def __init__(self, message: str = "You must be logged in", code: str = None):
        super().__init__(message, code)


class Forbidden(ServiceError):
    kind = "Forbidden"
    code = "FORBIDDEN"


class NotFound(ServiceError):
    kind = "NotFound"
    code = "NOT_FOUND"


class InvalidState(ServiceError):
    kind = "InvalidState"
    code = "INVALID_STATE"


class ValidationError(ServiceError):
    kind = "Validation"
    code = "INVALID_INPUT"


class Conflict(ServiceError):
    kind = "Conflict"
    code = "CONFLICT"


# ===================== NAMED ERRORS =====================

class OrderNotFound(NotFound):
    code = "ORDER_NOT_FOUND"

    def __init__(self, order_id=None):
        super().__init__(f"Order {order_id} not found" if order_id is not None else "Order not found")
        self.order_id = order_id


class MenuItemNotFound(NotFound):
    code = "MENU_ITEM_NOT_FOUND"

    def __init__(self, menu_item_id=None):
        super().__init__(f"Menu item with ID {menu_item_id} not found")
        self.menu_item_id = menu_item_id


class InvalidOrderStatus(InvalidState):
    code = "INVALID_ORDER_STATUS"

    def __init__(self, current, target=None):
        if target:
            message = f"Order cannot move from '{current}' to '{target}'"
        else:
            message = f"Order cannot be changed in status '{current}'"
        super().__init__(message)
        self.current = current
        self.target = target


class OrderNotReady(InvalidState):
    code = "ORDER_NOT_READY"

    def __init__(self, status):
        super().__init__(f"Order is not ready for pickup (status '{status}')")
        self.status = status


class OrderAlreadyAssigned(InvalidState):
    code = "ORDER_ALREADY_ASSIGNED"

    def __init__(self, order_id):
        super().__init__(f"Order {order_id} is already assigned to another driver")
        self.order_id = order_id


class OrderNotModifiable(InvalidState):
    code = "ORDER_NOT_MODIFIABLE"

    def __init__(self, status):
        super().__init__(f"Only pending orders can be modified (status '{status}')")
        self.status = status


class DriverNotAvailable(InvalidState):
    code = "DRIVER_NOT_AVAILABLE"

    def __init__(self, message: str = "Driver profile not found or not online"):
        super().__init__(message)


class InvalidQuantity(ValidationError):
    code = "INVALID_QUANTITY"

    def __init__(self, quantity):
        super().__init__(f"Quantity must be greater than 0 (got {quantity})")
        self.quantity = quantity


class MissingAddress(ValidationError):
    code = "MISSING_ADDRESS"

    def __init__(self):
        super().__init__("Delivery address is required")


class EmptyCart(ValidationError):
    code = "EMPTY_CART"

    def __init__(self, message: str = "Cannot checkout empty cart"):
        super().__init__(message)


class MenuItemMismatch(ValidationError):
    code = "MENU_ITEM_MISMATCH"

    def __init__(self, menu_item_id, restaurant_id):
        super().__init__(f"Menu item {menu_item_id} does not belong to restaurant {restaurant_id}")
        self.menu_item_id = menu_item_id
        self.restaurant_id = restaurant_id


class MenuItemUnavailable(ValidationError):
    code = "MENU_ITEM_UNAVAILABLE"

    def __init__(self, name, menu_item_id=None):
        super().__init__(f"Menu item {name} is no longer available")
        self.name = name
        self.menu_item_id = menu_item_id


class InvalidId(ValidationError):
    code = "INVALID_ID"

    def __init__(self, field, value):
        super().__init__(f"Invalid {field}: {value!r}")
        self.field = field
        self.value = value


class UserAlreadyExists(Conflict):
    code = "USER_ALREADY_EXISTS"

    def __init__(self, email):
        super().__init__(f"User with email {email} already exists")
        self.email = email
