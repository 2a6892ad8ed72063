# core/order_service.py
"""
Order aggregate: placement, status state machine and order queries.

Status flow:

    pending -> confirmed -> preparing -> ready -> delivering -> completed
       \\-> cancelled (customer cancel or restaurant reject, pending only)

Restaurant statuses (confirmed/preparing/ready) are set by the owner of the
order's restaurant; delivery statuses (delivering/completed) only by the
driver assigned to the order.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from core.access import Action, require, require_caller
from core.config import DEFAULT_PAGE_SIZE, MY_ORDERS_PAGE_SIZE, DEFAULT_PAYMENT_METHOD
from core.db import transaction
from core.errors import (
    EmptyCart, Forbidden, InvalidOrderStatus, InvalidQuantity, MenuItemMismatch,
    MenuItemNotFound, MenuItemUnavailable, MissingAddress, NotFound, OrderNotFound,
    ValidationError,
)
from core.logger import log_action
from core.pricing import compute_totals, line_total
from core.repositories import DriverRepository, MenuRepository, OrderRepository
from core.utils import paginate, parse_date, parse_id
from models.enums import (
    ACTIVE_ORDER_STATUSES, FINISHED_ORDER_STATUSES, OrderStatus, PaymentMethod, Role,
)
from models.order import Order, OrderItem

logger = logging.getLogger(__name__)

# ===================== STATE MACHINE =====================

TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.READY},
    OrderStatus.PREPARING: {OrderStatus.READY},
    OrderStatus.READY: {OrderStatus.DELIVERING},
    OrderStatus.DELIVERING: {OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}

# Who may move an order *into* a status
STATUS_ACTORS = {
    OrderStatus.CONFIRMED: {Role.RESTAURANT},
    OrderStatus.PREPARING: {Role.RESTAURANT},
    OrderStatus.READY: {Role.RESTAURANT},
    OrderStatus.DELIVERING: {Role.DRIVER},
    OrderStatus.COMPLETED: {Role.DRIVER},
    OrderStatus.CANCELLED: {Role.CUSTOMER, Role.RESTAURANT},
}

DELIVERY_STATUSES = {OrderStatus.DELIVERING, OrderStatus.COMPLETED}


def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown order status: {value!r}", code="INVALID_STATUS")


def can_transition(current, target) -> bool:
    return OrderStatus(target) in TRANSITIONS[OrderStatus(current)]


def ensure_transition(order, target):
    if not can_transition(order.status, target):
        raise InvalidOrderStatus(order.status, OrderStatus(target).value)


def apply_transition(db: Session, caller, order, target: OrderStatus, **fields):
    """
    Move `order` to `target` with a conditional update and audit it.

    Fails with InvalidOrderStatus when the transition is not in the table or
    when a concurrent caller changed the status first.
    """
    ensure_transition(order, target)
    previous = order.status
    if not OrderRepository(db).change_status(order, target.value, **fields):
        db.refresh(order)
        raise InvalidOrderStatus(order.status, target.value)
    log_action(db, caller, f"Order #{order.id} {previous} -> {target.value}")


# ===================== HELPERS =====================

def parse_payment_method(value) -> str:
    if value is None:
        return DEFAULT_PAYMENT_METHOD
    try:
        return PaymentMethod(value).value
    except ValueError:
        raise ValidationError(f"Unknown payment method: {value!r}", code="INVALID_PAYMENT_METHOD")


def validate_quantity(quantity):
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise InvalidQuantity(quantity)
    return quantity


def load_order(db: Session, order_id, for_update: bool = False):
    order_id = parse_id(order_id, "order_id")
    orders = OrderRepository(db)
    order = orders.get_for_update(order_id) if for_update else orders.get(order_id)
    if not order:
        raise OrderNotFound(order_id)
    return order


def restaurant_owner_id(order):
    return order.restaurant.owner_id if order.restaurant else None


def check_can_view(db: Session, caller, order):
    """Customers see their own orders, restaurants their restaurant's, drivers theirs or open ones."""
    require(caller, Action.VIEW_ORDER)
    if caller.role == Role.CUSTOMER and order.customer_id != caller.user_id:
        raise Forbidden("You can only access your own orders")
    if caller.role == Role.RESTAURANT and restaurant_owner_id(order) != caller.user_id:
        raise Forbidden("You can only access orders of your own restaurant")
    if caller.role == Role.DRIVER:
        driver = DriverRepository(db).by_user(caller.user_id)
        is_open = order.status == OrderStatus.READY.value and order.driver_id is None
        if not is_open and (driver is None or order.driver_id != driver.id):
            raise Forbidden("You can only access orders assigned to you")


def recompute_totals(db: Session, order):
    """Recompute subtotal, service fee and total from the order's current items."""
    db.flush()
    items = OrderRepository(db).items(order.id)
    totals = compute_totals(items, order.delivery_fee)
    order.subtotal = totals.subtotal
    order.service_fee = totals.service_fee
    order.total = totals.total
    order.updated_at = datetime.utcnow()
    return totals


def snapshot_item(menu_item, quantity: int, instructions: str = None) -> OrderItem:
    return OrderItem(
        menu_item_id=menu_item.id,
        quantity=quantity,
        instructions=instructions,
        unit_price=menu_item.price,
        line_total=line_total(menu_item.price, quantity),
    )


def place_order(db: Session, customer_id: int, restaurant, lines, delivery_address: str,
                payment_method: str = None, note: str = None):
    """
    Create a pending order from (menu_item, quantity, instructions) lines.

    Prices are snapshotted from the menu items; totals come from the pricing
    engine. The caller owns the surrounding transaction.
    """
    if not lines:
        raise EmptyCart("An order needs at least one item")
    if not delivery_address:
        raise MissingAddress()

    items = [snapshot_item(menu_item, quantity, instructions) for menu_item, quantity, instructions in lines]
    totals = compute_totals(items, restaurant.delivery_fee)
    now = datetime.utcnow()
    order = Order(
        customer_id=customer_id,
        restaurant_id=restaurant.id,
        status=OrderStatus.PENDING.value,
        delivery_address=delivery_address,
        payment_method=parse_payment_method(payment_method),
        note=note,
        subtotal=totals.subtotal,
        delivery_fee=totals.delivery_fee,
        service_fee=totals.service_fee,
        total=totals.total,
        created_at=now,
        updated_at=now,
        items=items,
    )
    db.add(order)
    db.flush()
    return order


# ===================== MUTATIONS =====================

def create_order(db: Session, caller, restaurant_id, delivery_address: str, items,
                 payment_method: str = None, note: str = None):
    """
    Place an order directly from a list of {menu_item_id, quantity, instructions}.
    """
    require(caller, Action.CREATE_ORDER)
    restaurant_id = parse_id(restaurant_id, "restaurant_id")
    payment_method = parse_payment_method(payment_method)
    if not delivery_address:
        raise MissingAddress()
    if not items:
        raise EmptyCart("An order needs at least one item")

    with transaction(db):
        menu = MenuRepository(db)
        restaurant = menu.restaurant(restaurant_id)
        if not restaurant:
            raise NotFound("Restaurant not found", code="RESTAURANT_NOT_FOUND")
        if not restaurant.is_active:
            raise ValidationError(f"Restaurant {restaurant.name} is not accepting orders", code="RESTAURANT_UNAVAILABLE")

        lines = []
        for item in items:
            menu_item_id = parse_id(item.get("menu_item_id"), "menu_item_id")
            quantity = validate_quantity(item.get("quantity"))
            menu_item = menu.menu_item(menu_item_id)
            if not menu_item:
                raise MenuItemNotFound(menu_item_id)
            if not menu_item.is_available:
                raise MenuItemUnavailable(menu_item.name, menu_item.id)
            if menu_item.restaurant_id != restaurant.id:
                raise MenuItemMismatch(menu_item.id, restaurant.id)
            lines.append((menu_item, quantity, item.get("instructions")))

        order = place_order(db, caller.user_id, restaurant, lines, delivery_address, payment_method, note)
        log_action(db, caller, f"Created order #{order.id} at restaurant #{restaurant.id} total {order.total}")

    db.refresh(order)
    logger.info("Order #%s created by customer #%s", order.id, caller.user_id)
    return order


def confirm_order(db: Session, caller, order_id, estimated_time: str = None):
    require(caller, Action.CONFIRM_ORDER)
    with transaction(db):
        order = load_order(db, order_id)
        require(caller, Action.CONFIRM_ORDER, owner_id=restaurant_owner_id(order))
        fields = {"estimated_time": estimated_time} if estimated_time else {}
        apply_transition(db, caller, order, OrderStatus.CONFIRMED, **fields)
    db.refresh(order)
    return order


def update_order_status(db: Session, caller, order_id, status, estimated_time: str = None):
    """
    Generic status update.

    Restaurant owners may move their orders through confirmed/preparing/ready;
    delivering/completed belong to the assigned driver. Cancellation goes
    through cancel_order / reject_order.
    """
    require_caller(caller)
    target = parse_status(status)
    if target == OrderStatus.CANCELLED:
        raise ValidationError("Use cancel_order or reject_order to cancel an order", code="INVALID_STATUS")
    if target == OrderStatus.PENDING:
        raise ValidationError("Orders cannot be moved back to pending", code="INVALID_STATUS")
    if caller.role not in STATUS_ACTORS[target]:
        if target in DELIVERY_STATUSES:
            raise Forbidden("Only drivers can set delivery status")
        raise Forbidden(f"Only restaurant owners can set order to {target.value}")

    if target in DELIVERY_STATUSES:
        # Local import: driver_service builds on this module
        from core import driver_service
        if target == OrderStatus.DELIVERING:
            driver_service.start_delivery(db, caller, order_id)
        else:
            driver_service.complete_delivery(db, caller, order_id)
        return load_order(db, order_id)

    with transaction(db):
        order = load_order(db, order_id)
        require(caller, Action.PREPARE_ORDER, owner_id=restaurant_owner_id(order))
        fields = {"estimated_time": estimated_time} if estimated_time else {}
        apply_transition(db, caller, order, target, **fields)
    db.refresh(order)
    return order


def cancel_order(db: Session, caller, order_id, reason: str = None):
    """Cancel a pending order: by its customer, or by the owner of its restaurant."""
    require(caller, Action.CANCEL_ORDER)
    with transaction(db):
        order = load_order(db, order_id)
        if caller.role == Role.CUSTOMER:
            require(caller, Action.CANCEL_ORDER, owner_id=order.customer_id)
        else:
            require(caller, Action.CANCEL_ORDER, owner_id=restaurant_owner_id(order))
        if order.status != OrderStatus.PENDING.value:
            raise InvalidOrderStatus(order.status, OrderStatus.CANCELLED.value)
        apply_transition(db, caller, order, OrderStatus.CANCELLED, cancellation_reason=reason)
    db.refresh(order)
    return order


def reject_order(db: Session, caller, order_id, reason: str):
    require(caller, Action.REJECT_ORDER)
    if not reason or not reason.strip():
        raise ValidationError("A reason is required to reject an order", code="REASON_REQUIRED")
    with transaction(db):
        order = load_order(db, order_id)
        require(caller, Action.REJECT_ORDER, owner_id=restaurant_owner_id(order))
        if order.status != OrderStatus.PENDING.value:
            raise InvalidOrderStatus(order.status, OrderStatus.CANCELLED.value)
        apply_transition(
            db, caller, order, OrderStatus.CANCELLED,
            cancellation_reason=f"Rejected by restaurant: {reason.strip()}",
        )
    db.refresh(order)
    return order


# ===================== QUERIES =====================

@dataclass
class OrderFilter:
    status: str = None
    restaurant_id: object = None
    customer_id: object = None
    driver_id: object = None
    payment_method: str = None
    date_from: object = None
    date_to: object = None
    min_total: float = None
    max_total: float = None


ORDER_SORTS = {
    "DATE_ASC": Order.created_at.asc(),
    "DATE_DESC": Order.created_at.desc(),
    "TOTAL_ASC": Order.total.asc(),
    "TOTAL_DESC": Order.total.desc(),
    "STATUS_ASC": Order.status.asc(),
    "STATUS_DESC": Order.status.desc(),
    "CREATED_AT_ASC": Order.created_at.asc(),
    "CREATED_AT_DESC": Order.created_at.desc(),
    "UPDATED_AT_ASC": Order.updated_at.asc(),
    "UPDATED_AT_DESC": Order.updated_at.desc(),
}


def apply_filter(query, order_filter: OrderFilter):
    if not order_filter:
        return query
    if order_filter.status:
        query = query.filter(Order.status == parse_status(order_filter.status).value)
    if order_filter.restaurant_id is not None:
        query = query.filter(Order.restaurant_id == parse_id(order_filter.restaurant_id, "restaurant_id"))
    if order_filter.customer_id is not None:
        query = query.filter(Order.customer_id == parse_id(order_filter.customer_id, "customer_id"))
    if order_filter.driver_id is not None:
        query = query.filter(Order.driver_id == parse_id(order_filter.driver_id, "driver_id"))
    if order_filter.payment_method:
        query = query.filter(Order.payment_method == parse_payment_method(order_filter.payment_method))
    if order_filter.date_from is not None:
        query = query.filter(Order.created_at >= parse_date(order_filter.date_from, "date_from"))
    if order_filter.date_to is not None:
        query = query.filter(Order.created_at <= parse_date(order_filter.date_to, "date_to"))
    if order_filter.min_total is not None:
        query = query.filter(Order.total >= order_filter.min_total)
    if order_filter.max_total is not None:
        query = query.filter(Order.total <= order_filter.max_total)
    return query


def scoped_orders(db: Session, caller):
    """Orders visible to the caller: own (customer), own restaurants', or assigned (driver)."""
    query = OrderRepository(db).query()
    if caller.role == Role.CUSTOMER:
        return query.filter(Order.customer_id == caller.user_id)
    if caller.role == Role.RESTAURANT:
        return query.filter(Order.restaurant_id.in_(MenuRepository(db).owned_restaurant_ids(caller.user_id)))
    driver = DriverRepository(db).by_user(caller.user_id)
    return query.filter(Order.driver_id == (driver.id if driver else -1))


def get_order(db: Session, caller, order_id):
    require_caller(caller)
    order = load_order(db, order_id)
    check_can_view(db, caller, order)
    return order


def list_orders(db: Session, caller, order_filter: OrderFilter = None, sort_by: str = "CREATED_AT_DESC",
                limit: int = DEFAULT_PAGE_SIZE, offset: int = 0):
    """Restaurant owners: filtered, sorted page of their restaurants' orders."""
    require(caller, Action.LIST_ALL_ORDERS)
    ordering = ORDER_SORTS.get(sort_by or "CREATED_AT_DESC")
    if ordering is None:
        raise ValidationError(f"Unknown sort order: {sort_by!r}", code="INVALID_SORT")
    query = apply_filter(scoped_orders(db, caller), order_filter)
    return paginate(query.order_by(ordering, Order.id), limit, offset)


def list_my_orders(db: Session, caller, limit: int = MY_ORDERS_PAGE_SIZE, offset: int = 0):
    require_caller(caller)
    query = scoped_orders(db, caller).order_by(Order.created_at.desc(), Order.id.desc())
    return paginate(query, limit, offset)


def list_active_orders(db: Session, caller):
    require_caller(caller)
    return scoped_orders(db, caller).filter(Order.status.in_(ACTIVE_ORDER_STATUSES)).order_by(
        Order.created_at.desc(), Order.id.desc()
    ).all()


def list_pending_orders(db: Session, caller):
    require(caller, Action.LIST_PENDING_ORDERS)
    return scoped_orders(db, caller).filter(Order.status == OrderStatus.PENDING.value).order_by(
        Order.created_at.asc(), Order.id.asc()
    ).all()


def order_history(db: Session, caller, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0):
    require_caller(caller)
    query = scoped_orders(db, caller).filter(Order.status.in_(FINISHED_ORDER_STATUSES)).order_by(
        Order.created_at.desc(), Order.id.desc()
    )
    return paginate(query, limit, offset)
