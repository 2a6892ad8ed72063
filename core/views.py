# core/views.py
"""
Read models for carts, orders and drivers.

Each projection is computed from already-loaded rows plus the pricing
engine, so derived fields (item counts, fees, totals) are plain functions of
the data instead of per-field lookups.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import List, Optional

from core.pricing import compute_totals, line_total


@dataclass
class CartItemView:
    cart_item_id: int
    menu_item_id: int
    name: str
    quantity: int
    instructions: Optional[str]
    unit_price: float
    total_price: float
    is_available: bool


@dataclass
class CartView:
    cart_id: int
    customer_id: int
    restaurant_id: int
    delivery_address: Optional[str]
    payment_method: Optional[str]
    note: Optional[str]
    items: List[CartItemView] = field(default_factory=list)
    item_count: int = 0
    subtotal: float = 0.0
    delivery_fee: float = 0.0
    service_fee: float = 0.0
    total_amount: float = 0.0
    updated_at: Optional[datetime] = None

    def to_dict(self):
        return asdict(self)


@dataclass
class OrderItemView:
    order_item_id: int
    menu_item_id: int
    name: Optional[str]
    quantity: int
    instructions: Optional[str]
    unit_price: float
    line_total: float


@dataclass
class OrderView:
    order_id: int
    customer_id: int
    restaurant_id: int
    driver_id: Optional[int]
    status: str
    delivery_address: str
    payment_method: str
    note: Optional[str]
    cancellation_reason: Optional[str]
    estimated_time: Optional[str]
    subtotal: float
    delivery_fee: float
    service_fee: float
    total: float
    items: List[OrderItemView] = field(default_factory=list)
    total_items: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self):
        return asdict(self)


@dataclass
class DriverView:
    driver_id: int
    user_id: int
    name: str
    phone: Optional[str]
    vehicle: Optional[str]
    status: str
    current_location: Optional[str]
    rating: float
    total_deliveries: int
    is_active: bool

    def to_dict(self):
        return asdict(self)


def cart_view(cart) -> CartView:
    """Project a cart (with items and menu items loaded) into its priced view."""
    items = []
    for ci in cart.items:
        price = ci.menu_item.price if ci.menu_item else 0
        items.append(CartItemView(
            cart_item_id=ci.id,
            menu_item_id=ci.menu_item_id,
            name=ci.menu_item.name if ci.menu_item else None,
            quantity=ci.quantity,
            instructions=ci.instructions,
            unit_price=price,
            total_price=line_total(price, ci.quantity),
            is_available=bool(ci.menu_item and ci.menu_item.is_available),
        ))

    delivery_fee = cart.restaurant.delivery_fee if cart.restaurant else 0
    totals = compute_totals(items, delivery_fee)
    return CartView(
        cart_id=cart.id,
        customer_id=cart.customer_id,
        restaurant_id=cart.restaurant_id,
        delivery_address=cart.delivery_address,
        payment_method=cart.payment_method,
        note=cart.note,
        items=items,
        item_count=sum(i.quantity for i in items),
        subtotal=totals.subtotal,
        delivery_fee=totals.delivery_fee,
        service_fee=totals.service_fee,
        total_amount=totals.total,
        updated_at=cart.updated_at,
    )


def order_view(order) -> OrderView:
    items = [
        OrderItemView(
            order_item_id=oi.id,
            menu_item_id=oi.menu_item_id,
            name=oi.menu_item.name if oi.menu_item else None,
            quantity=oi.quantity,
            instructions=oi.instructions,
            unit_price=oi.unit_price,
            line_total=oi.line_total,
        )
        for oi in order.items
    ]
    return OrderView(
        order_id=order.id,
        customer_id=order.customer_id,
        restaurant_id=order.restaurant_id,
        driver_id=order.driver_id,
        status=order.status,
        delivery_address=order.delivery_address,
        payment_method=order.payment_method,
        note=order.note,
        cancellation_reason=order.cancellation_reason,
        estimated_time=order.estimated_time,
        subtotal=order.subtotal,
        delivery_fee=order.delivery_fee,
        service_fee=order.service_fee,
        total=order.total,
        items=items,
        total_items=sum(i.quantity for i in items),
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def driver_view(driver) -> DriverView:
    return DriverView(
        driver_id=driver.id,
        user_id=driver.user_id,
        name=driver.name,
        phone=driver.phone,
        vehicle=driver.vehicle,
        status=driver.status,
        current_location=driver.current_location,
        rating=driver.rating or 0,
        total_deliveries=driver.total_deliveries or 0,
        is_active=bool(driver.is_active),
    )
