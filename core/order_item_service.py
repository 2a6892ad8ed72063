# core/order_item_service.py
"""
Line-item edits on placed orders.

Only the customer who owns an order may edit it, and only while it is
pending. Every edit locks the order row and recomputes its totals from the
full current item set.
"""
import logging
from dataclasses import dataclass, field
from typing import List

from sqlalchemy.orm import Session

from core.access import Action, require, require_caller
from core.db import transaction
from core.errors import (
    MenuItemMismatch, MenuItemNotFound, MenuItemUnavailable, NotFound, OrderNotModifiable,
)
from core.logger import log_action
from core.order_service import (
    check_can_view, load_order, recompute_totals, snapshot_item, validate_quantity,
)
from core.pricing import line_total
from core.repositories import MenuRepository, OrderRepository
from core.utils import paginate, parse_id
from models.enums import OrderStatus
from models.order import OrderItem

logger = logging.getLogger(__name__)

MENU_ITEM_HISTORY_LIMIT = 50


@dataclass
class SkippedItem:
    menu_item_id: object
    reason: str  # not_found, unavailable, wrong_restaurant


@dataclass
class BulkAddResult:
    added: List = field(default_factory=list)
    skipped: List[SkippedItem] = field(default_factory=list)


def _ensure_modifiable(caller, order):
    require(caller, Action.MODIFY_ORDER_ITEMS, owner_id=order.customer_id)
    if order.status != OrderStatus.PENDING.value:
        raise OrderNotModifiable(order.status)


def _load_item(db: Session, item_id):
    item_id = parse_id(item_id, "order_item_id")
    item = OrderRepository(db).get_item(item_id)
    if not item:
        raise NotFound("Order item not found", code="ORDER_ITEM_NOT_FOUND")
    return item


def _lock_orders(db: Session, order_ids):
    """Lock the given orders in id order (stable lock ordering)."""
    return {order_id: load_order(db, order_id, for_update=True) for order_id in sorted(order_ids)}


# ===================== SINGLE ITEM =====================

def add_item(db: Session, caller, order_id, menu_item_id, quantity: int, instructions: str = None):
    require(caller, Action.MODIFY_ORDER_ITEMS)
    menu_item_id = parse_id(menu_item_id, "menu_item_id")
    validate_quantity(quantity)

    with transaction(db):
        order = load_order(db, order_id, for_update=True)
        _ensure_modifiable(caller, order)

        menu_item = MenuRepository(db).menu_item(menu_item_id)
        if not menu_item:
            raise MenuItemNotFound(menu_item_id)
        if not menu_item.is_available:
            raise MenuItemUnavailable(menu_item.name, menu_item.id)
        if menu_item.restaurant_id != order.restaurant_id:
            raise MenuItemMismatch(menu_item.id, order.restaurant_id)

        item = snapshot_item(menu_item, quantity, instructions)
        item.order_id = order.id
        db.add(item)
        recompute_totals(db, order)
        log_action(db, caller, f"Added {quantity}x menu item #{menu_item.id} to order #{order.id}")

    db.refresh(item)
    return item


def update_item(db: Session, caller, item_id, quantity: int = None, instructions: str = None):
    require(caller, Action.MODIFY_ORDER_ITEMS)
    if quantity is not None:
        validate_quantity(quantity)

    with transaction(db):
        item = _load_item(db, item_id)
        order = load_order(db, item.order_id, for_update=True)
        _ensure_modifiable(caller, order)
        if quantity is not None:
            item.quantity = quantity
            item.line_total = line_total(item.unit_price, quantity)
        if instructions is not None:
            item.instructions = instructions
        recompute_totals(db, order)

    db.refresh(item)
    return item


def remove_item(db: Session, caller, item_id) -> bool:
    require(caller, Action.MODIFY_ORDER_ITEMS)
    with transaction(db):
        item = _load_item(db, item_id)
        order = load_order(db, item.order_id, for_update=True)
        _ensure_modifiable(caller, order)
        db.delete(item)
        recompute_totals(db, order)
        log_action(db, caller, f"Removed item #{item.id} from order #{order.id}")
    return True


# ===================== BULK =====================

def add_items(db: Session, caller, order_id, items) -> BulkAddResult:
    """
    Add several {menu_item_id, quantity, instructions} lines to a pending order.

    Lines whose menu item is missing, unavailable or from another restaurant
    are skipped and reported; the rest are added in one transaction.
    """
    require(caller, Action.MODIFY_ORDER_ITEMS)
    requested = []
    for entry in items:
        requested.append((
            parse_id(entry.get("menu_item_id"), "menu_item_id"),
            validate_quantity(entry.get("quantity")),
            entry.get("instructions"),
        ))

    result = BulkAddResult()
    with transaction(db):
        order = load_order(db, order_id, for_update=True)
        _ensure_modifiable(caller, order)

        menu_items = MenuRepository(db).menu_items(m for m, _, _ in requested)
        for menu_item_id, quantity, instructions in requested:
            menu_item = menu_items.get(menu_item_id)
            if menu_item is None:
                result.skipped.append(SkippedItem(menu_item_id, "not_found"))
                continue
            if not menu_item.is_available:
                result.skipped.append(SkippedItem(menu_item_id, "unavailable"))
                continue
            if menu_item.restaurant_id != order.restaurant_id:
                result.skipped.append(SkippedItem(menu_item_id, "wrong_restaurant"))
                continue
            item = snapshot_item(menu_item, quantity, instructions)
            item.order_id = order.id
            db.add(item)
            result.added.append(item)

        recompute_totals(db, order)
        log_action(
            db, caller,
            f"Added {len(result.added)} item(s) to order #{order.id}, skipped {len(result.skipped)}",
        )

    if result.skipped:
        logger.info("Bulk add to order #%s skipped %s", order.id, result.skipped)
    return result


def remove_items(db: Session, caller, item_ids) -> bool:
    """Delete several order items and recompute every affected order."""
    require(caller, Action.MODIFY_ORDER_ITEMS)
    ids = [parse_id(i, "order_item_id") for i in item_ids]

    with transaction(db):
        found = OrderRepository(db).items_by_ids(ids)
        if not found:
            raise NotFound("No order items found", code="ORDER_ITEMS_NOT_FOUND")
        orders = _lock_orders(db, {item.order_id for item in found})
        for order in orders.values():
            _ensure_modifiable(caller, order)

        for item in found:
            db.delete(item)
        for order in orders.values():
            recompute_totals(db, order)
        log_action(db, caller, f"Removed {len(found)} item(s) from order(s) {sorted(orders)}")
    return True


def update_quantities(db: Session, caller, updates):
    """Apply {order_item_id, quantity} updates; all succeed or none do."""
    require(caller, Action.MODIFY_ORDER_ITEMS)
    wanted = {}
    for update in updates:
        wanted[parse_id(update.get("order_item_id"), "order_item_id")] = validate_quantity(update.get("quantity"))

    with transaction(db):
        found = OrderRepository(db).items_by_ids(list(wanted))
        missing = sorted(set(wanted) - {item.id for item in found})
        if missing:
            raise NotFound(f"Order items not found: {missing}", code="ORDER_ITEMS_NOT_FOUND")
        orders = _lock_orders(db, {item.order_id for item in found})
        for order in orders.values():
            _ensure_modifiable(caller, order)

        for item in found:
            item.quantity = wanted[item.id]
            item.line_total = line_total(item.unit_price, item.quantity)
        for order in orders.values():
            recompute_totals(db, order)

    for item in found:
        db.refresh(item)
    return sorted(found, key=lambda i: i.id)


# ===================== QUERIES =====================

def get_order_item(db: Session, caller, item_id):
    require_caller(caller)
    item = _load_item(db, item_id)
    check_can_view(db, caller, item.order)
    return item


def list_order_items(db: Session, caller, order_id):
    require_caller(caller)
    order = load_order(db, order_id)
    check_can_view(db, caller, order)
    return OrderRepository(db).items(order.id)


def menu_item_order_history(db: Session, caller, menu_item_id, limit: int = MENU_ITEM_HISTORY_LIMIT):
    """Order lines for one of the caller's menu items, newest first."""
    require(caller, Action.VIEW_MENU_ITEM_ORDERS)
    menu_item_id = parse_id(menu_item_id, "menu_item_id")
    menu_item = MenuRepository(db).menu_item(menu_item_id)
    if not menu_item:
        raise MenuItemNotFound(menu_item_id)
    require(caller, Action.VIEW_MENU_ITEM_ORDERS, owner_id=menu_item.restaurant.owner_id)
    query = OrderRepository(db).item_query().filter(OrderItem.menu_item_id == menu_item.id)
    return paginate(query.order_by(OrderItem.created_at.desc(), OrderItem.id.desc()), limit, 0)
