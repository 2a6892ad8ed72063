# core/cart_service.py
"""
Cart store.

A customer holds carts for a single restaurant at a time: resolving a cart
for restaurant B drops every cart the customer has for other restaurants.
Repeated adds of the same menu item merge into one line.
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.access import Action, require
from core.db import transaction
from core.errors import (
    Conflict, EmptyCart, MenuItemMismatch, MenuItemNotFound, MenuItemUnavailable,
    MissingAddress, NotFound, ValidationError,
)
from core.logger import log_action
from core.order_service import parse_payment_method, place_order, validate_quantity
from core.repositories import CartRepository, MenuRepository
from core.utils import parse_id

logger = logging.getLogger(__name__)


def _load_restaurant(db: Session, restaurant_id: int):
    restaurant = MenuRepository(db).restaurant(restaurant_id)
    if not restaurant:
        raise NotFound("Restaurant not found", code="RESTAURANT_NOT_FOUND")
    return restaurant


def _load_cart(db: Session, caller, cart_id, action: Action = Action.MANAGE_CART):
    cart_id = parse_id(cart_id, "cart_id")
    cart = CartRepository(db).get(cart_id)
    if not cart:
        raise NotFound("Cart not found", code="CART_NOT_FOUND")
    require(caller, action, owner_id=cart.customer_id)
    return cart


def _load_cart_item(db: Session, caller, cart_item_id):
    cart_item_id = parse_id(cart_item_id, "cart_item_id")
    item = CartRepository(db).get_item(cart_item_id)
    if not item:
        raise NotFound("Cart item not found", code="CART_ITEM_NOT_FOUND")
    require(caller, Action.MANAGE_CART, owner_id=item.cart.customer_id)
    return item


def _resolve_cart(db: Session, customer_id: int, restaurant_id: int):
    """Drop carts for other restaurants, then return (or create) the cart for this one."""
    carts = CartRepository(db)
    dropped = carts.delete_for_customer(customer_id, except_restaurant_id=restaurant_id)
    if dropped:
        logger.info("Dropped %s cart(s) of customer #%s for other restaurants", dropped, customer_id)
    cart = carts.find(customer_id, restaurant_id)
    if cart:
        return cart
    try:
        return carts.find_or_create(customer_id, restaurant_id)
    except IntegrityError:
        raise Conflict("Cart was created concurrently, please retry", code="CART_CONFLICT")


def _apply_delivery_info(cart, delivery_address=None, payment_method=None, note=None):
    if delivery_address is not None:
        cart.delivery_address = delivery_address
    if payment_method is not None:
        cart.payment_method = parse_payment_method(payment_method)
    if note is not None:
        cart.note = note


# ===================== CART =====================

def get_or_create_cart(db: Session, caller, restaurant_id, delivery_address: str = None,
                       payment_method: str = None, note: str = None):
    """Return the caller's cart for `restaurant_id`, creating it if needed."""
    require(caller, Action.MANAGE_CART)
    restaurant_id = parse_id(restaurant_id, "restaurant_id")
    with transaction(db):
        _load_restaurant(db, restaurant_id)
        cart = _resolve_cart(db, caller.user_id, restaurant_id)
        if any(v is not None for v in (delivery_address, payment_method, note)):
            _apply_delivery_info(cart, delivery_address, payment_method, note)
            CartRepository(db).touch(cart)
    db.refresh(cart)
    return cart


def update_cart(db: Session, caller, cart_id, delivery_address: str = None,
                payment_method: str = None, note: str = None):
    require(caller, Action.MANAGE_CART)
    with transaction(db):
        cart = _load_cart(db, caller, cart_id)
        _apply_delivery_info(cart, delivery_address, payment_method, note)
        CartRepository(db).touch(cart)
    db.refresh(cart)
    return cart


def clear(db: Session, caller, cart_id) -> bool:
    """Delete every item of the cart and then the cart itself."""
    require(caller, Action.MANAGE_CART)
    with transaction(db):
        cart = _load_cart(db, caller, cart_id)
        CartRepository(db).delete(cart)
        log_action(db, caller, f"Cleared cart #{cart.id}")
    return True


def switch_restaurant(db: Session, caller, new_restaurant_id, delivery_address: str = None):
    """Start over: delete all of the caller's carts and open an empty one for the new restaurant."""
    require(caller, Action.MANAGE_CART)
    new_restaurant_id = parse_id(new_restaurant_id, "restaurant_id")
    with transaction(db):
        _load_restaurant(db, new_restaurant_id)
        carts = CartRepository(db)
        carts.delete_for_customer(caller.user_id)
        cart = carts.create(caller.user_id, new_restaurant_id, delivery_address=delivery_address)
        log_action(db, caller, f"Switched cart to restaurant #{new_restaurant_id}")
    db.refresh(cart)
    return cart


# ===================== ITEMS =====================

def add_item(db: Session, caller, restaurant_id, menu_item_id, quantity: int, instructions: str = None):
    """
    Add `quantity` of a menu item to the caller's cart for `restaurant_id`.

    An existing line for the same menu item is incremented in place, so
    concurrent adds of the same item sum up instead of failing.
    """
    require(caller, Action.MANAGE_CART)
    restaurant_id = parse_id(restaurant_id, "restaurant_id")
    menu_item_id = parse_id(menu_item_id, "menu_item_id")
    validate_quantity(quantity)

    with transaction(db):
        _load_restaurant(db, restaurant_id)
        cart = _resolve_cart(db, caller.user_id, restaurant_id)

        menu_item = MenuRepository(db).menu_item(menu_item_id)
        if not menu_item:
            raise MenuItemNotFound(menu_item_id)
        if not menu_item.is_available:
            raise MenuItemUnavailable(menu_item.name, menu_item.id)
        if menu_item.restaurant_id != restaurant_id:
            raise MenuItemMismatch(menu_item.id, restaurant_id)

        carts = CartRepository(db)
        if not carts.increment_item(cart.id, menu_item.id, quantity, instructions):
            try:
                inserted = carts.insert_item(cart.id, menu_item.id, quantity, instructions)
            except IntegrityError:
                raise Conflict("Cart item was added concurrently, please retry", code="CART_ITEM_CONFLICT")
            if not inserted:
                # Another request created the line after our increment missed it
                carts.increment_item(cart.id, menu_item.id, quantity, instructions)
        carts.touch(cart)
        item = carts.find_item(cart.id, menu_item.id)

    db.refresh(item)
    return item


def update_item(db: Session, caller, cart_item_id, quantity: int = None, instructions: str = None):
    require(caller, Action.MANAGE_CART)
    if quantity is not None:
        validate_quantity(quantity)
    with transaction(db):
        item = _load_cart_item(db, caller, cart_item_id)
        if quantity is not None:
            item.quantity = quantity
        if instructions is not None:
            item.instructions = instructions
        CartRepository(db).touch(item.cart)
    db.refresh(item)
    return item


def remove_item(db: Session, caller, cart_item_id) -> bool:
    require(caller, Action.MANAGE_CART)
    with transaction(db):
        item = _load_cart_item(db, caller, cart_item_id)
        cart = item.cart
        db.delete(item)
        CartRepository(db).touch(cart)
    return True


# ===================== CHECKOUT =====================

def checkout(db: Session, caller, cart_id):
    """
    Convert a cart into a pending order.

    Order creation and cart deletion commit together or not at all.
    """
    require(caller, Action.CHECKOUT)
    with transaction(db):
        cart = _load_cart(db, caller, cart_id, Action.CHECKOUT)
        items = CartRepository(db).items(cart.id)
        if not items:
            raise EmptyCart()
        if not cart.delivery_address:
            raise MissingAddress()

        restaurant = _load_restaurant(db, cart.restaurant_id)
        if not restaurant.is_active:
            raise ValidationError(f"Restaurant {restaurant.name} is not accepting orders", code="RESTAURANT_UNAVAILABLE")

        lines = []
        menu = MenuRepository(db)
        for cart_item in items:
            menu_item = menu.menu_item(cart_item.menu_item_id)
            if not menu_item.is_available:
                raise MenuItemUnavailable(menu_item.name, menu_item.id)
            lines.append((menu_item, cart_item.quantity, cart_item.instructions))

        order = place_order(
            db, cart.customer_id, restaurant, lines,
            delivery_address=cart.delivery_address,
            payment_method=cart.payment_method,
            note=cart.note,
        )
        CartRepository(db).delete(cart)
        log_action(db, caller, f"Checked out cart #{cart.id} into order #{order.id} total {order.total}")

    db.refresh(order)
    logger.info("Cart #%s checked out into order #%s", cart.id, order.id)
    return order


# ===================== QUERIES =====================

def get_my_cart(db: Session, caller, restaurant_id=None):
    """Most recently updated cart of the caller, optionally for one restaurant."""
    require(caller, Action.VIEW_CART)
    carts = CartRepository(db)
    if restaurant_id is not None:
        return carts.find(caller.user_id, parse_id(restaurant_id, "restaurant_id"))
    mine = carts.for_customer(caller.user_id)
    return mine[0] if mine else None


def list_my_carts(db: Session, caller):
    require(caller, Action.VIEW_CART)
    return CartRepository(db).for_customer(caller.user_id)


def get_cart(db: Session, caller, cart_id):
    require(caller, Action.VIEW_CART)
    return _load_cart(db, caller, cart_id, Action.VIEW_CART)
