from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime
from core.db import Base

class User(Base):
    __tablename__ = "users"
    
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    username = Column(String, nullable=True)
    password_hash = Column(String, nullable=False)
    phone = Column(String, default="")
    address = Column(String, nullable=True)
    role = Column(String, nullable=False, default="Customer")  # Customer, Driver, Restaurant
    created_at = Column(DateTime, default=datetime.utcnow)
    
    # Relationships
    orders = relationship("Order", back_populates="customer")
    carts = relationship("Cart", back_populates="customer", cascade="all, delete-orphan")
    restaurants = relationship("Restaurant", back_populates="owner")
    driver_profile = relationship("DeliveryDriver", back_populates="user", uselist=False)
