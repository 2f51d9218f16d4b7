# storefront_cart/utils/settings.py
import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()

STOREFRONT_API_URL = os.getenv("STOREFRONT_API_URL", "http://localhost:5000/api")
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", 10))
REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory")
SESSION_NAMESPACE = os.getenv("SESSION_NAMESPACE", "storefront")
CURRENCY = os.getenv("CURRENCY", "INR")

#canonical pricing pair (checkout page): free shipping from 500.00, else 50.00, 5% GST
FREE_SHIPPING_THRESHOLD = int(os.getenv("FREE_SHIPPING_THRESHOLD", 50000))
SHIPPING_CHARGE = int(os.getenv("SHIPPING_CHARGE", 5000))
TAX_RATE = Decimal(os.getenv("TAX_RATE", "0.05"))

PENDING_REPLAY_DELAY_SECONDS = float(os.getenv("PENDING_REPLAY_DELAY_SECONDS", 0.5))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
