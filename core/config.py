# core/config.py
import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///foodcourier.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Platform commission applied to the item subtotal of every cart and order
SERVICE_FEE_RATE = os.getenv("SERVICE_FEE_RATE", "0.05")
MONEY_DECIMALS = int(os.getenv("MONEY_DECIMALS", "0"))
DEFAULT_PAYMENT_METHOD = os.getenv("DEFAULT_PAYMENT_METHOD", "cash")
DRIVER_EARNING_PER_DELIVERY = float(os.getenv("DRIVER_EARNING_PER_DELIVERY", "15000"))

DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "50"))
MY_ORDERS_PAGE_SIZE = int(os.getenv("MY_ORDERS_PAGE_SIZE", "20"))
AVAILABLE_ORDERS_LIMIT = int(os.getenv("AVAILABLE_ORDERS_LIMIT", "20"))

MIN_PASSWORD_LENGTH = int(os.getenv("MIN_PASSWORD_LENGTH", "6"))
