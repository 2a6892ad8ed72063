# models/enums.py
from enum import Enum


class Role(str, Enum):
    CUSTOMER = "Customer"
    DRIVER = "Driver"
    RESTAURANT = "Restaurant"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERING = "delivering"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_ORDER_STATUSES = [
    OrderStatus.PENDING.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.PREPARING.value,
    OrderStatus.READY.value,
    OrderStatus.DELIVERING.value,
]
FINISHED_ORDER_STATUSES = [OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value]


class DriverStatus(str, Enum):
    ONLINE = "Online"
    OFFLINE = "Offline"
    DELIVERING = "Delivering"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    E_WALLET = "e_wallet"
    BANK_TRANSFER = "bank_transfer"
