# Import every model so SQLAlchemy relationships resolve regardless of import order
from models.user import User
from models.restaurant import Restaurant, MenuItem
from models.cart import Cart, CartItem
from models.order import Order, OrderItem
from models.driver import DeliveryDriver
from models.audit_log import AuditLog
