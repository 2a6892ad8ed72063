# core/driver_service.py
"""
Delivery drivers: profiles, availability and order hand-off.

A driver profile is linked to exactly one Driver account (`user_id`), and
every driver operation resolves the caller's own profile through that link.
Accepting or assigning an order is a pair of conditional updates (order still
unassigned and ready, driver still Online) inside one transaction, so two
drivers racing for the same order cannot both win.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.access import Action, require
from core.config import AVAILABLE_ORDERS_LIMIT, DEFAULT_PAGE_SIZE
from core.db import transaction
from core.errors import (
    Conflict, DriverNotAvailable, Forbidden, InvalidOrderStatus, InvalidState, NotFound,
    OrderAlreadyAssigned, OrderNotReady, ValidationError,
)
from core.logger import log_action
from core.order_service import apply_transition, load_order, restaurant_owner_id
from core.repositories import DriverRepository, OrderRepository
from core.utils import paginate, parse_id
from models.driver import DeliveryDriver
from models.enums import DriverStatus, OrderStatus
from models.order import Order

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "phone", "vehicle", "current_location")


def parse_driver_status(value) -> DriverStatus:
    try:
        return DriverStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown driver status: {value!r}", code="INVALID_DRIVER_STATUS")


def _load_driver(db: Session, driver_id):
    driver_id = parse_id(driver_id, "driver_id")
    driver = DriverRepository(db).get(driver_id)
    if not driver:
        raise NotFound("Driver not found", code="DRIVER_NOT_FOUND")
    return driver


def _my_driver(db: Session, caller):
    require(caller, Action.MANAGE_DRIVER_PROFILE)
    driver = DriverRepository(db).by_user(caller.user_id)
    if not driver:
        raise NotFound("Driver profile not found", code="DRIVER_NOT_FOUND")
    return driver


def _set_status(db: Session, caller, driver, status: DriverStatus):
    """Online/Offline toggle; refused while the driver is out on a delivery."""
    if status == DriverStatus.DELIVERING:
        raise ValidationError("Delivering is set by accepting an order", code="INVALID_DRIVER_STATUS")
    if driver.status == DriverStatus.DELIVERING.value:
        raise InvalidState("Driver is on a delivery", code="DRIVER_BUSY")
    driver.status = status.value
    driver.updated_at = datetime.utcnow()
    log_action(db, caller, f"Driver #{driver.id} is now {status.value}")


# ===================== PROFILE =====================

def create_profile(db: Session, caller, name: str, phone: str = None, vehicle: str = None,
                   current_location: str = None):
    require(caller, Action.MANAGE_DRIVER_PROFILE)
    if not name:
        raise ValidationError("Driver name is required", code="INVALID_INPUT")
    try:
        with transaction(db):
            if DriverRepository(db).by_user(caller.user_id):
                raise Conflict("A driver profile already exists for this account", code="DRIVER_PROFILE_EXISTS")
            driver = DeliveryDriver(
                user_id=caller.user_id,
                name=name,
                phone=phone,
                vehicle=vehicle,
                current_location=current_location,
                status=DriverStatus.OFFLINE.value,
                rating=0,
                total_deliveries=0,
                is_active=True,
            )
            db.add(driver)
            db.flush()
            log_action(db, caller, f"Created driver profile #{driver.id}")
    except IntegrityError:
        raise Conflict("A driver profile already exists for this account", code="DRIVER_PROFILE_EXISTS")
    db.refresh(driver)
    return driver


def get_my_profile(db: Session, caller):
    require(caller, Action.MANAGE_DRIVER_PROFILE)
    return DriverRepository(db).by_user(caller.user_id)


def update_profile(db: Session, caller, **changes):
    unknown = set(changes) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown driver fields: {sorted(unknown)}", code="INVALID_INPUT")
    with transaction(db):
        driver = _my_driver(db, caller)
        for name, value in changes.items():
            if value is not None:
                setattr(driver, name, value)
        driver.updated_at = datetime.utcnow()
    db.refresh(driver)
    return driver


def delete_profile(db: Session, caller) -> bool:
    with transaction(db):
        driver = _my_driver(db, caller)
        if driver.status == DriverStatus.DELIVERING.value:
            raise InvalidState("Finish the current delivery before deleting the profile", code="DRIVER_BUSY")
        # Keep order history: unlink finished orders from the profile
        db.query(Order).filter(Order.driver_id == driver.id).update(
            {Order.driver_id: None}, synchronize_session="fetch"
        )
        db.delete(driver)
        log_action(db, caller, f"Deleted driver profile #{driver.id}")
    return True


def get_driver(db: Session, caller, driver_id):
    require(caller, Action.VIEW_DRIVER)
    return _load_driver(db, driver_id)


@dataclass
class DriverFilter:
    status: str = None
    is_active: bool = None
    min_rating: float = None


DRIVER_SORTS = {
    "NAME_ASC": DeliveryDriver.name.asc(),
    "NAME_DESC": DeliveryDriver.name.desc(),
    "RATING_ASC": DeliveryDriver.rating.asc(),
    "RATING_DESC": DeliveryDriver.rating.desc(),
    "TOTAL_DELIVERIES_ASC": DeliveryDriver.total_deliveries.asc(),
    "TOTAL_DELIVERIES_DESC": DeliveryDriver.total_deliveries.desc(),
    "CREATED_AT_ASC": DeliveryDriver.created_at.asc(),
    "CREATED_AT_DESC": DeliveryDriver.created_at.desc(),
}


def list_drivers(db: Session, caller, driver_filter: DriverFilter = None, sort_by: str = "CREATED_AT_DESC",
                 limit: int = DEFAULT_PAGE_SIZE, offset: int = 0):
    require(caller, Action.ADMINISTER_DRIVERS)
    ordering = DRIVER_SORTS.get(sort_by or "CREATED_AT_DESC")
    if ordering is None:
        raise ValidationError(f"Unknown sort order: {sort_by!r}", code="INVALID_SORT")
    query = DriverRepository(db).query()
    if driver_filter:
        if driver_filter.status:
            query = query.filter(DeliveryDriver.status == parse_driver_status(driver_filter.status).value)
        if driver_filter.is_active is not None:
            query = query.filter(DeliveryDriver.is_active.is_(bool(driver_filter.is_active)))
        if driver_filter.min_rating is not None:
            query = query.filter(DeliveryDriver.rating >= driver_filter.min_rating)
    return paginate(query.order_by(ordering, DeliveryDriver.id), limit, offset)


def toggle_active(db: Session, caller, driver_id):
    """Restaurant admin path: suspend or reinstate a driver."""
    require(caller, Action.ADMINISTER_DRIVERS)
    with transaction(db):
        driver = _load_driver(db, driver_id)
        if driver.is_active and driver.status == DriverStatus.DELIVERING.value:
            raise InvalidState("Driver is on a delivery", code="DRIVER_BUSY")
        driver.is_active = not driver.is_active
        if not driver.is_active:
            driver.status = DriverStatus.OFFLINE.value
        driver.updated_at = datetime.utcnow()
        log_action(db, caller, f"Driver #{driver.id} active={driver.is_active}")
    db.refresh(driver)
    return driver


# ===================== STATUS =====================

def go_online(db: Session, caller):
    with transaction(db):
        driver = _my_driver(db, caller)
        if not driver.is_active:
            raise Forbidden("Driver profile is deactivated")
        _set_status(db, caller, driver, DriverStatus.ONLINE)
    db.refresh(driver)
    return driver


def go_offline(db: Session, caller):
    with transaction(db):
        driver = _my_driver(db, caller)
        _set_status(db, caller, driver, DriverStatus.OFFLINE)
    db.refresh(driver)
    return driver


def update_status(db: Session, caller, status):
    target = parse_driver_status(status)
    if target == DriverStatus.ONLINE:
        return go_online(db, caller)
    with transaction(db):
        driver = _my_driver(db, caller)
        _set_status(db, caller, driver, target)
    db.refresh(driver)
    return driver


def update_location(db: Session, caller, current_location: str):
    if not current_location:
        raise ValidationError("Location is required", code="INVALID_INPUT")
    with transaction(db):
        driver = _my_driver(db, caller)
        driver.current_location = current_location
        driver.updated_at = datetime.utcnow()
    db.refresh(driver)
    return driver


def bulk_update_status(db: Session, caller, driver_ids, status):
    """Restaurant admin path: set several drivers Online/Offline at once (all or nothing)."""
    require(caller, Action.ADMINISTER_DRIVERS)
    target = parse_driver_status(status)
    ids = [parse_id(i, "driver_id") for i in driver_ids]
    with transaction(db):
        drivers = [_load_driver(db, driver_id) for driver_id in ids]
        for driver in drivers:
            _set_status(db, caller, driver, target)
    for driver in drivers:
        db.refresh(driver)
    return drivers


# ===================== DELIVERIES =====================

def list_available_orders(db: Session, caller, limit: int = AVAILABLE_ORDERS_LIMIT):
    """Ready, unassigned orders; the longest-waiting first."""
    require(caller, Action.LIST_AVAILABLE_ORDERS)
    return OrderRepository(db).query().filter(
        Order.status == OrderStatus.READY.value,
        Order.driver_id.is_(None),
    ).order_by(Order.updated_at.asc(), Order.id.asc()).limit(limit).all()


def get_my_active_delivery(db: Session, caller):
    require(caller, Action.LIST_AVAILABLE_ORDERS)
    driver = DriverRepository(db).by_user(caller.user_id)
    if not driver:
        return None
    return OrderRepository(db).query().filter(
        Order.driver_id == driver.id,
        Order.status.in_([OrderStatus.READY.value, OrderStatus.DELIVERING.value]),
    ).order_by(Order.updated_at.desc()).first()


def my_delivery_history(db: Session, caller, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0):
    """Completed deliveries of the calling driver, newest first."""
    require(caller, Action.LIST_AVAILABLE_ORDERS)
    driver = DriverRepository(db).by_user(caller.user_id)
    if not driver:
        return []
    query = OrderRepository(db).query().filter(
        Order.driver_id == driver.id,
        Order.status == OrderStatus.COMPLETED.value,
    ).order_by(Order.updated_at.desc(), Order.id.desc())
    return paginate(query, limit, offset)


def accept_order(db: Session, caller, order_id):
    """
    The calling driver takes a ready, unassigned order and starts delivering it.
    """
    require(caller, Action.ACCEPT_ORDER)
    with transaction(db):
        drivers = DriverRepository(db)
        driver = drivers.by_user(caller.user_id)
        if not driver:
            raise DriverNotAvailable("Driver profile not found")

        order = load_order(db, order_id)
        if order.driver_id is not None:
            raise OrderAlreadyAssigned(order.id)
        if order.status != OrderStatus.READY.value:
            raise OrderNotReady(order.status)

        if not drivers.claim(driver.id):
            raise DriverNotAvailable()
        if not OrderRepository(db).assign_driver(order.id, driver.id, OrderStatus.DELIVERING.value):
            raise OrderAlreadyAssigned(order.id)
        log_action(db, caller, f"Driver #{driver.id} accepted order #{order.id}")

    db.refresh(order)
    db.refresh(driver)
    logger.info("Order #%s picked up by driver #%s", order.id, driver.id)
    return order


def start_delivery(db: Session, caller, order_id):
    """Pick up an order that a restaurant assigned to the calling driver."""
    require(caller, Action.DELIVER_ORDER)
    with transaction(db):
        driver = _my_driver(db, caller)
        order = load_order(db, order_id)
        if order.driver_id != driver.id:
            raise Forbidden("Order is not assigned to you")
        if order.status != OrderStatus.READY.value:
            raise InvalidOrderStatus(order.status, OrderStatus.DELIVERING.value)
        apply_transition(db, caller, order, OrderStatus.DELIVERING)
        driver.status = DriverStatus.DELIVERING.value
        driver.updated_at = datetime.utcnow()
    db.refresh(driver)
    return driver


def complete_delivery(db: Session, caller, order_id):
    """Mark the driver's order completed; the driver goes back Online."""
    require(caller, Action.DELIVER_ORDER)
    with transaction(db):
        driver = _my_driver(db, caller)
        order = load_order(db, order_id)
        if order.driver_id != driver.id:
            raise Forbidden("Order is not assigned to you")
        apply_transition(db, caller, order, OrderStatus.COMPLETED)
        DriverRepository(db).release(driver.id, delivered=True)
    db.refresh(driver)
    logger.info("Order #%s delivered by driver #%s", order.id, driver.id)
    return driver


def assign_driver(db: Session, caller, order_id, driver_id):
    """
    Restaurant admin path: hand a ready order of one's own restaurant to an
    Online driver. The order stays `ready` until the driver starts the delivery.
    """
    require(caller, Action.ASSIGN_DRIVER)
    with transaction(db):
        order = load_order(db, order_id)
        require(caller, Action.ASSIGN_DRIVER, owner_id=restaurant_owner_id(order))
        driver = _load_driver(db, driver_id)
        if order.driver_id is not None:
            raise OrderAlreadyAssigned(order.id)
        if order.status != OrderStatus.READY.value:
            raise OrderNotReady(order.status)

        if not DriverRepository(db).claim(driver.id):
            raise DriverNotAvailable(f"Driver #{driver.id} is not online")
        if not OrderRepository(db).assign_driver(order.id, driver.id, OrderStatus.READY.value):
            raise OrderAlreadyAssigned(order.id)
        log_action(db, caller, f"Assigned order #{order.id} to driver #{driver.id}")
    db.refresh(driver)
    db.refresh(order)
    return driver


def remove_driver(db: Session, caller, order_id) -> bool:
    """Restaurant admin path: take an assigned order back before it is picked up."""
    require(caller, Action.ASSIGN_DRIVER)
    with transaction(db):
        order = load_order(db, order_id)
        require(caller, Action.ASSIGN_DRIVER, owner_id=restaurant_owner_id(order))
        if order.driver_id is None:
            raise InvalidState("Order has no driver", code="ORDER_NOT_ASSIGNED")
        if order.status != OrderStatus.READY.value:
            raise InvalidOrderStatus(order.status)
        driver_id = order.driver_id
        if not OrderRepository(db).unassign_driver(order.id, driver_id):
            raise InvalidOrderStatus(order.status)
        DriverRepository(db).release(driver_id)
        log_action(db, caller, f"Removed driver #{driver_id} from order #{order.id}")
    return True
