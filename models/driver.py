# models/driver.py
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from core.db import Base

class DeliveryDriver(Base):
    __tablename__ = "delivery_drivers"

    id = Column(Integer, primary_key=True, index=True)
    # One driver profile per account
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    vehicle = Column(String, nullable=True)
    status = Column(String, nullable=False, default="Offline")  # Online, Offline, Delivering
    current_location = Column(String, nullable=True)
    rating = Column(Float, default=0)
    total_deliveries = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="driver_profile")
    orders = relationship("Order", back_populates="driver")

    def __repr__(self):
        return f"<DeliveryDriver {self.id} {self.name} [{self.status}]>"
