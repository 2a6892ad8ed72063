from sqlalchemy import Column, Integer, Float, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from core.db import Base

class Order(Base):
    __tablename__ = "orders"
    
    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey("delivery_drivers.id"), nullable=True, index=True)
    status = Column(String, nullable=False, default="pending", index=True)
    delivery_address = Column(String, nullable=False)
    payment_method = Column(String, nullable=False, default="cash")
    note = Column(String, nullable=True)
    cancellation_reason = Column(String, nullable=True)
    estimated_time = Column(String, nullable=True)
    subtotal = Column(Float, nullable=False, default=0)
    delivery_fee = Column(Float, nullable=False, default=0)
    service_fee = Column(Float, nullable=False, default=0)
    total = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)
    
    # Relationships
    customer = relationship("User", back_populates="orders")
    restaurant = relationship("Restaurant")
    driver = relationship("DeliveryDriver", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="(OrderItem.created_at, OrderItem.id)",
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    
    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    instructions = Column(String, nullable=True)
    unit_price = Column(Float, nullable=False)
    line_total = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    # Relationships
    order = relationship("Order", back_populates="items")
    menu_item = relationship("MenuItem")
