from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import models  # noqa: F401
from core.access import Caller
from core.db import Base
from models.driver import DeliveryDriver
from models.enums import DriverStatus, Role
from models.restaurant import MenuItem, Restaurant
from models.user import User


@pytest.fixture
def engine(tmp_path):
    # File database so separate sessions see each other's commits
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}", future=True, connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def _user(db, email, role):
    user = User(email=email, username=email.split("@")[0], password_hash="not-a-hash", role=role.value)
    db.add(user)
    db.flush()
    return user


@pytest.fixture
def world(db):
    """Accounts, two restaurants with menus and two Online drivers."""
    customer = _user(db, "cust@test.io", Role.CUSTOMER)
    other_customer = _user(db, "cust2@test.io", Role.CUSTOMER)
    owner = _user(db, "owner@test.io", Role.RESTAURANT)
    other_owner = _user(db, "owner2@test.io", Role.RESTAURANT)
    driver_user = _user(db, "driver@test.io", Role.DRIVER)
    driver2_user = _user(db, "driver2@test.io", Role.DRIVER)

    restaurant = Restaurant(owner_id=owner.id, name="Warung", delivery_fee=5000, is_active=True)
    other_restaurant = Restaurant(owner_id=other_owner.id, name="Kedai", delivery_fee=8000, is_active=True)
    db.add_all([restaurant, other_restaurant])
    db.flush()

    nasi = MenuItem(restaurant_id=restaurant.id, name="Nasi Goreng", price=20000, is_available=True)
    mie = MenuItem(restaurant_id=restaurant.id, name="Mie Ayam", price=15000, is_available=True)
    sold_out = MenuItem(restaurant_id=restaurant.id, name="Kerupuk", price=3000, is_available=False)
    foreign = MenuItem(restaurant_id=other_restaurant.id, name="Soto", price=18000, is_available=True)
    db.add_all([nasi, mie, sold_out, foreign])

    driver = DeliveryDriver(user_id=driver_user.id, name="Budi", status=DriverStatus.ONLINE.value, is_active=True)
    driver2 = DeliveryDriver(user_id=driver2_user.id, name="Andi", status=DriverStatus.ONLINE.value, is_active=True)
    db.add_all([driver, driver2])
    db.commit()

    return SimpleNamespace(
        customer=Caller(customer.id, Role.CUSTOMER),
        other_customer=Caller(other_customer.id, Role.CUSTOMER),
        owner=Caller(owner.id, Role.RESTAURANT),
        other_owner=Caller(other_owner.id, Role.RESTAURANT),
        driver=Caller(driver_user.id, Role.DRIVER),
        driver2=Caller(driver2_user.id, Role.DRIVER),
        restaurant=restaurant,
        other_restaurant=other_restaurant,
        nasi=nasi,
        mie=mie,
        sold_out=sold_out,
        foreign=foreign,
        driver_profile=driver,
        driver2_profile=driver2,
    )


@pytest.fixture
def place_order(db, world):
    """Place a pending order (2x nasi, 1x mie) for the default customer."""
    from core import order_service

    def _place(caller=None, items=None):
        return order_service.create_order(
            db, caller or world.customer, world.restaurant.id, "Jl. Merdeka 10",
            items or [
                {"menu_item_id": world.nasi.id, "quantity": 2},
                {"menu_item_id": world.mie.id, "quantity": 1},
            ],
        )
    return _place


@pytest.fixture
def ready_order(db, world, place_order):
    """A pending order walked to `ready` by the restaurant owner."""
    from core import order_service

    order = place_order()
    order_service.confirm_order(db, world.owner, order.id)
    order_service.update_order_status(db, world.owner, order.id, "preparing")
    return order_service.update_order_status(db, world.owner, order.id, "ready")
