# core/repositories.py
"""
Per-aggregate data access on top of a SQLAlchemy session.

Services build these around the session they are handed; the session comes
from the single SessionLocal factory bound at process start. Writes that
guard an invariant against concurrent callers are expressed as conditional
UPDATEs whose rowcount tells the caller whether it won.
"""
from datetime import datetime

from sqlalchemy import insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from models.cart import Cart, CartItem
from models.driver import DeliveryDriver
from models.order import Order, OrderItem
from models.restaurant import Restaurant, MenuItem
from models.enums import DriverStatus, OrderStatus

# Dialects whose INSERT supports ON CONFLICT DO NOTHING
CONFLICT_INSERTS = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}


class CartRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, cart_id: int):
        return self.db.query(Cart).populate_existing().filter(Cart.id == cart_id).first()

    def get_item(self, cart_item_id: int):
        return self.db.query(CartItem).populate_existing().filter(CartItem.id == cart_item_id).first()

    def find(self, customer_id: int, restaurant_id: int):
        return self.db.query(Cart).populate_existing().filter(
            Cart.customer_id == customer_id,
            Cart.restaurant_id == restaurant_id,
        ).first()

    def for_customer(self, customer_id: int):
        return self.db.query(Cart).filter(Cart.customer_id == customer_id).order_by(
            Cart.updated_at.desc(), Cart.id.desc()
        ).all()

    def items(self, cart_id: int):
        return self.db.query(CartItem).populate_existing().filter(CartItem.cart_id == cart_id).order_by(
            CartItem.created_at, CartItem.id
        ).all()

    def find_item(self, cart_id: int, menu_item_id: int):
        return self.db.query(CartItem).filter(
            CartItem.cart_id == cart_id,
            CartItem.menu_item_id == menu_item_id,
        ).first()

    def create(self, customer_id: int, restaurant_id: int, **fields):
        cart = Cart(customer_id=customer_id, restaurant_id=restaurant_id, **fields)
        self.db.add(cart)
        self.db.flush()
        return cart

    def _insert_once(self, model, keys, values) -> bool:
        """
        INSERT that leaves an existing row with the same unique `keys` alone.

        Returns True when this call wrote the row. Dialects without ON CONFLICT
        get a plain INSERT, which raises IntegrityError on a duplicate.
        """
        dialect_insert = CONFLICT_INSERTS.get(self.db.get_bind().dialect.name)
        if dialect_insert is None:
            stmt = insert(model).values(**values)
        else:
            stmt = dialect_insert(model).values(**values).on_conflict_do_nothing(index_elements=keys)
        return self.db.execute(stmt).rowcount == 1

    def find_or_create(self, customer_id: int, restaurant_id: int):
        """The customer's cart for a restaurant, created if missing; a concurrent creator's cart is reused."""
        self._insert_once(
            Cart, ["customer_id", "restaurant_id"],
            {"customer_id": customer_id, "restaurant_id": restaurant_id},
        )
        return self.find(customer_id, restaurant_id)

    def insert_item(self, cart_id: int, menu_item_id: int, quantity: int, instructions: str = None) -> bool:
        """Insert a new cart line. False when a line for this menu item already exists."""
        return self._insert_once(
            CartItem, ["cart_id", "menu_item_id"],
            {"cart_id": cart_id, "menu_item_id": menu_item_id, "quantity": quantity, "instructions": instructions},
        )

    def delete(self, cart):
        """Delete a cart and (through the cascade) all of its items."""
        self.db.delete(cart)

    def delete_for_customer(self, customer_id: int, except_restaurant_id: int = None) -> int:
        query = self.db.query(Cart).filter(Cart.customer_id == customer_id)
        if except_restaurant_id is not None:
            query = query.filter(Cart.restaurant_id != except_restaurant_id)
        carts = query.all()
        for cart in carts:
            self.db.delete(cart)
        # Deletes must reach the store before a replacement cart is inserted
        self.db.flush()
        return len(carts)

    def increment_item(self, cart_id: int, menu_item_id: int, quantity: int, instructions: str = None) -> int:
        """Atomically add `quantity` to an existing line; returns the number of rows touched."""
        values = {
            CartItem.quantity: CartItem.quantity + quantity,
            CartItem.updated_at: datetime.utcnow(),
        }
        if instructions:
            values[CartItem.instructions] = instructions
        return self.db.query(CartItem).filter(
            CartItem.cart_id == cart_id,
            CartItem.menu_item_id == menu_item_id,
        ).update(values, synchronize_session="fetch")

    def touch(self, cart):
        cart.updated_at = datetime.utcnow()


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def query(self):
        return self.db.query(Order)

    def get(self, order_id: int):
        return self.db.query(Order).populate_existing().filter(Order.id == order_id).first()

    def get_for_update(self, order_id: int):
        """Load an order holding a row lock for the rest of the transaction."""
        return self.db.query(Order).populate_existing().with_for_update().filter(Order.id == order_id).first()

    def get_item(self, item_id: int):
        return self.db.query(OrderItem).populate_existing().filter(OrderItem.id == item_id).first()

    def items(self, order_id: int):
        return self.db.query(OrderItem).populate_existing().filter(OrderItem.order_id == order_id).order_by(
            OrderItem.created_at, OrderItem.id
        ).all()

    def item_query(self):
        return self.db.query(OrderItem)

    def items_by_ids(self, item_ids):
        return self.db.query(OrderItem).populate_existing().filter(OrderItem.id.in_(item_ids)).all()

    def change_status(self, order, target: str, **fields) -> bool:
        """
        Move `order` to `target` only if nobody changed its status since it was read.
        """
        values = {Order.status: target, Order.updated_at: datetime.utcnow()}
        for name, value in fields.items():
            values[getattr(Order, name)] = value
        changed = self.db.query(Order).filter(
            Order.id == order.id,
            Order.status == order.status,
        ).update(values, synchronize_session="fetch")
        return changed == 1

    def assign_driver(self, order_id: int, driver_id: int, target_status: str) -> bool:
        """Attach a driver to a ready, unassigned order. False when another caller got there first."""
        changed = self.db.query(Order).filter(
            Order.id == order_id,
            Order.status == OrderStatus.READY.value,
            Order.driver_id.is_(None),
        ).update(
            {Order.driver_id: driver_id, Order.status: target_status, Order.updated_at: datetime.utcnow()},
            synchronize_session="fetch",
        )
        return changed == 1

    def unassign_driver(self, order_id: int, driver_id: int) -> bool:
        changed = self.db.query(Order).filter(
            Order.id == order_id,
            Order.status == OrderStatus.READY.value,
            Order.driver_id == driver_id,
        ).update({Order.driver_id: None, Order.updated_at: datetime.utcnow()}, synchronize_session="fetch")
        return changed == 1


class DriverRepository:
    def __init__(self, db: Session):
        self.db = db

    def query(self):
        return self.db.query(DeliveryDriver)

    def get(self, driver_id: int):
        return self.db.query(DeliveryDriver).populate_existing().filter(DeliveryDriver.id == driver_id).first()

    def by_user(self, user_id: int):
        return self.db.query(DeliveryDriver).populate_existing().filter(DeliveryDriver.user_id == user_id).first()

    def claim(self, driver_id: int) -> bool:
        """Online, active driver -> Delivering. False if the driver is not free."""
        changed = self.db.query(DeliveryDriver).filter(
            DeliveryDriver.id == driver_id,
            DeliveryDriver.status == DriverStatus.ONLINE.value,
            DeliveryDriver.is_active.is_(True),
        ).update(
            {DeliveryDriver.status: DriverStatus.DELIVERING.value, DeliveryDriver.updated_at: datetime.utcnow()},
            synchronize_session="fetch",
        )
        return changed == 1

    def release(self, driver_id: int, delivered: bool = False):
        values = {DeliveryDriver.status: DriverStatus.ONLINE.value, DeliveryDriver.updated_at: datetime.utcnow()}
        if delivered:
            values[DeliveryDriver.total_deliveries] = DeliveryDriver.total_deliveries + 1
        return self.db.query(DeliveryDriver).filter(DeliveryDriver.id == driver_id).update(
            values, synchronize_session="fetch"
        )


class MenuRepository:
    def __init__(self, db: Session):
        self.db = db

    def restaurant(self, restaurant_id: int):
        return self.db.query(Restaurant).populate_existing().filter(Restaurant.id == restaurant_id).first()

    def menu_item(self, menu_item_id: int):
        return self.db.query(MenuItem).populate_existing().filter(MenuItem.id == menu_item_id).first()

    def menu_items(self, menu_item_ids):
        rows = self.db.query(MenuItem).filter(MenuItem.id.in_(list(menu_item_ids))).all()
        return {m.id: m for m in rows}

    def owned_restaurant_ids(self, owner_id: int):
        return self.db.query(Restaurant.id).filter(Restaurant.owner_id == owner_id)
