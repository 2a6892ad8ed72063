# core/restaurant_service.py
"""
Restaurants and their menus. Writes are limited to the restaurant's owner.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.access import Action, require
from core.config import DEFAULT_PAGE_SIZE
from core.db import transaction
from core.errors import Conflict, MenuItemNotFound, NotFound, ValidationError
from core.logger import log_action
from core.repositories import MenuRepository
from core.utils import paginate, parse_id
from models.cart import Cart, CartItem
from models.order import Order, OrderItem
from models.restaurant import MenuItem, Restaurant

logger = logging.getLogger(__name__)

RESTAURANT_FIELDS = ("name", "address", "cuisine", "delivery_fee")
MENU_ITEM_FIELDS = ("name", "description", "category", "price")
SEARCH_LIMIT = 20
POPULAR_LIMIT = 10


def _validate_money(name, value):
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValidationError(f"{name} must be a non-negative number", code="INVALID_INPUT")


def _check_fields(changes, allowed):
    unknown = set(changes) - set(allowed)
    if unknown:
        raise ValidationError(f"Unknown fields: {sorted(unknown)}", code="INVALID_INPUT")


def _load_restaurant(db: Session, restaurant_id):
    restaurant = MenuRepository(db).restaurant(parse_id(restaurant_id, "restaurant_id"))
    if not restaurant:
        raise NotFound("Restaurant not found", code="RESTAURANT_NOT_FOUND")
    return restaurant


def _owned_restaurant(db: Session, caller, restaurant_id):
    require(caller, Action.MANAGE_RESTAURANT)
    restaurant = _load_restaurant(db, restaurant_id)
    require(caller, Action.MANAGE_RESTAURANT, owner_id=restaurant.owner_id)
    return restaurant


def _owned_menu_item(db: Session, caller, menu_item_id):
    require(caller, Action.MANAGE_RESTAURANT)
    menu_item_id = parse_id(menu_item_id, "menu_item_id")
    menu_item = MenuRepository(db).menu_item(menu_item_id)
    if not menu_item:
        raise MenuItemNotFound(menu_item_id)
    require(caller, Action.MANAGE_RESTAURANT, owner_id=menu_item.restaurant.owner_id)
    return menu_item


# ===================== RESTAURANTS =====================

def create_restaurant(db: Session, caller, name: str, address: str = None, cuisine: str = None,
                      delivery_fee: float = 0):
    require(caller, Action.MANAGE_RESTAURANT)
    if not name:
        raise ValidationError("Restaurant name is required", code="INVALID_INPUT")
    _validate_money("delivery_fee", delivery_fee)
    with transaction(db):
        restaurant = Restaurant(
            owner_id=caller.user_id,
            name=name,
            address=address,
            cuisine=cuisine,
            delivery_fee=delivery_fee or 0,
            rating=0,
            is_active=True,
        )
        db.add(restaurant)
        db.flush()
        log_action(db, caller, f"Created restaurant #{restaurant.id} {name}")
    db.refresh(restaurant)
    return restaurant


def update_restaurant(db: Session, caller, restaurant_id, **changes):
    _check_fields(changes, RESTAURANT_FIELDS)
    _validate_money("delivery_fee", changes.get("delivery_fee"))
    with transaction(db):
        restaurant = _owned_restaurant(db, caller, restaurant_id)
        for name, value in changes.items():
            if value is not None:
                setattr(restaurant, name, value)
        restaurant.updated_at = datetime.utcnow()
    db.refresh(restaurant)
    return restaurant


def toggle_restaurant_status(db: Session, caller, restaurant_id):
    with transaction(db):
        restaurant = _owned_restaurant(db, caller, restaurant_id)
        restaurant.is_active = not restaurant.is_active
        restaurant.updated_at = datetime.utcnow()
        log_action(db, caller, f"Restaurant #{restaurant.id} active={restaurant.is_active}")
    db.refresh(restaurant)
    return restaurant


def delete_restaurant(db: Session, caller, restaurant_id) -> bool:
    """Only restaurants without order history can be deleted; deactivate the others."""
    with transaction(db):
        restaurant = _owned_restaurant(db, caller, restaurant_id)
        if db.query(Order.id).filter(Order.restaurant_id == restaurant.id).first():
            raise Conflict("Restaurant has orders; deactivate it instead", code="RESTAURANT_HAS_ORDERS")
        for cart in db.query(Cart).filter(Cart.restaurant_id == restaurant.id).all():
            db.delete(cart)
        db.delete(restaurant)
        log_action(db, caller, f"Deleted restaurant #{restaurant.id}")
    return True


def get_restaurant(db: Session, restaurant_id):
    return _load_restaurant(db, restaurant_id)


@dataclass
class RestaurantFilter:
    cuisine: str = None
    min_rating: float = None
    max_delivery_fee: float = None
    is_active: bool = None


RESTAURANT_SORTS = {
    "NAME_ASC": Restaurant.name.asc(),
    "NAME_DESC": Restaurant.name.desc(),
    "RATING_ASC": Restaurant.rating.asc(),
    "RATING_DESC": Restaurant.rating.desc(),
    "DELIVERY_FEE_ASC": Restaurant.delivery_fee.asc(),
    "DELIVERY_FEE_DESC": Restaurant.delivery_fee.desc(),
    "CREATED_AT_ASC": Restaurant.created_at.asc(),
    "CREATED_AT_DESC": Restaurant.created_at.desc(),
}


def list_restaurants(db: Session, restaurant_filter: RestaurantFilter = None, sort_by: str = "CREATED_AT_DESC",
                     limit: int = DEFAULT_PAGE_SIZE, offset: int = 0):
    ordering = RESTAURANT_SORTS.get(sort_by or "CREATED_AT_DESC")
    if ordering is None:
        raise ValidationError(f"Unknown sort order: {sort_by!r}", code="INVALID_SORT")
    query = db.query(Restaurant)
    f = restaurant_filter
    if f:
        if f.cuisine:
            query = query.filter(Restaurant.cuisine == f.cuisine)
        if f.min_rating is not None:
            query = query.filter(Restaurant.rating >= f.min_rating)
        if f.max_delivery_fee is not None:
            query = query.filter(Restaurant.delivery_fee <= f.max_delivery_fee)
        if f.is_active is not None:
            query = query.filter(Restaurant.is_active.is_(bool(f.is_active)))
    return paginate(query.order_by(ordering, Restaurant.id), limit, offset)


def search_restaurants(db: Session, term: str, limit: int = SEARCH_LIMIT):
    """Active restaurants whose name, cuisine or address contains `term`, best rated first."""
    pattern = f"%{term or ''}%"
    query = db.query(Restaurant).filter(
        Restaurant.is_active.is_(True),
        or_(Restaurant.name.ilike(pattern), Restaurant.cuisine.ilike(pattern), Restaurant.address.ilike(pattern)),
    )
    return paginate(query.order_by(Restaurant.rating.desc(), Restaurant.id), limit)


def popular_restaurants(db: Session, limit: int = POPULAR_LIMIT):
    query = db.query(Restaurant).filter(Restaurant.is_active.is_(True))
    return paginate(query.order_by(Restaurant.rating.desc(), Restaurant.created_at.desc(), Restaurant.id), limit)


def list_my_restaurants(db: Session, caller):
    require(caller, Action.MANAGE_RESTAURANT)
    return db.query(Restaurant).filter(Restaurant.owner_id == caller.user_id).order_by(Restaurant.id).all()


# ===================== MENU =====================

def add_menu_item(db: Session, caller, restaurant_id, name: str, price: float, description: str = None,
                  category: str = None):
    if not name:
        raise ValidationError("Menu item name is required", code="INVALID_INPUT")
    if price is None:
        raise ValidationError("price is required", code="INVALID_INPUT")
    _validate_money("price", price)
    with transaction(db):
        restaurant = _owned_restaurant(db, caller, restaurant_id)
        menu_item = MenuItem(
            restaurant_id=restaurant.id,
            name=name,
            description=description,
            category=category,
            price=price,
            is_available=True,
        )
        db.add(menu_item)
        db.flush()
        log_action(db, caller, f"Added menu item #{menu_item.id} to restaurant #{restaurant.id}")
    db.refresh(menu_item)
    return menu_item


def update_menu_item(db: Session, caller, menu_item_id, **changes):
    """Price changes apply to carts immediately; placed orders keep their snapshot."""
    _check_fields(changes, MENU_ITEM_FIELDS)
    _validate_money("price", changes.get("price"))
    with transaction(db):
        menu_item = _owned_menu_item(db, caller, menu_item_id)
        for name, value in changes.items():
            if value is not None:
                setattr(menu_item, name, value)
        menu_item.updated_at = datetime.utcnow()
    db.refresh(menu_item)
    return menu_item


def set_menu_item_availability(db: Session, caller, menu_item_id, is_available: bool = None):
    """Set availability, or flip it when `is_available` is None."""
    with transaction(db):
        menu_item = _owned_menu_item(db, caller, menu_item_id)
        menu_item.is_available = (not menu_item.is_available) if is_available is None else bool(is_available)
        menu_item.updated_at = datetime.utcnow()
        log_action(db, caller, f"Menu item #{menu_item.id} available={menu_item.is_available}")
    db.refresh(menu_item)
    return menu_item


def delete_menu_item(db: Session, caller, menu_item_id) -> bool:
    with transaction(db):
        menu_item = _owned_menu_item(db, caller, menu_item_id)
        if db.query(OrderItem.id).filter(OrderItem.menu_item_id == menu_item.id).first():
            raise Conflict("Menu item appears in orders; mark it unavailable instead", code="MENU_ITEM_IN_USE")
        db.query(CartItem).filter(CartItem.menu_item_id == menu_item.id).delete(synchronize_session="fetch")
        db.delete(menu_item)
        log_action(db, caller, f"Deleted menu item #{menu_item.id}")
    return True


def get_menu_item(db: Session, menu_item_id):
    menu_item_id = parse_id(menu_item_id, "menu_item_id")
    menu_item = MenuRepository(db).menu_item(menu_item_id)
    if not menu_item:
        raise MenuItemNotFound(menu_item_id)
    return menu_item


def list_menu(db: Session, restaurant_id, category: str = None, available_only: bool = False):
    restaurant = _load_restaurant(db, restaurant_id)
    query = db.query(MenuItem).filter(MenuItem.restaurant_id == restaurant.id)
    if category:
        query = query.filter(MenuItem.category == category)
    if available_only:
        query = query.filter(MenuItem.is_available.is_(True))
    return query.order_by(MenuItem.category, MenuItem.name, MenuItem.id).all()


def search_menu_items(db: Session, restaurant_id, term: str):
    """Available items of one restaurant matching `term` in name, description or category."""
    restaurant = _load_restaurant(db, restaurant_id)
    pattern = f"%{term or ''}%"
    return db.query(MenuItem).filter(
        MenuItem.restaurant_id == restaurant.id,
        MenuItem.is_available.is_(True),
        or_(MenuItem.name.ilike(pattern), MenuItem.description.ilike(pattern), MenuItem.category.ilike(pattern)),
    ).order_by(MenuItem.name, MenuItem.id).all()
