"""
config.py — Environment Configuration for the Storefront Service

All settings are read once from environment variables at import time.
The defaults match the local docker-compose setup with the mock services.

Settings:
    • Remote service addresses (order-management API, payment provider)
    • Bearer token for the order-management API
    • HTTP timeouts
    • Retry/backoff window for order commits
    • Catalog page size and log file
"""

import os

# Service addresses
ORDER_API_URL = os.environ.get("ORDER_API_URL", "http://order_api:5000/api")
PAYMENT_PROVIDER_URL = os.environ.get("PAYMENT_PROVIDER_URL", "http://payment_provider:8001")

# Issued by the account service; the storefront only forwards it
ORDER_API_TOKEN = os.environ.get("ORDER_API_TOKEN", "")

HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", "5.0"))
HTTP_READ_TIMEOUT = float(os.environ.get("HTTP_READ_TIMEOUT", "8.0"))

# Order commit retry window (transport failures only)
ORDER_COMMIT_MAX_ATTEMPTS = int(os.environ.get("ORDER_COMMIT_MAX_ATTEMPTS", "3"))
ORDER_COMMIT_INITIAL_DELAY = float(os.environ.get("ORDER_COMMIT_INITIAL_DELAY", "0.5"))
ORDER_COMMIT_MAX_DELAY = float(os.environ.get("ORDER_COMMIT_MAX_DELAY", "4.0"))

CATALOG_PAGE_SIZE = int(os.environ.get("CATALOG_PAGE_SIZE", "6"))

LOG_FILE = os.environ.get("LOG_FILE", "checkout.log")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
# Captured payments without an order are appended here as well as to LOG_FILE.
RECONCILIATION_LOG_FILE = os.environ.get("RECONCILIATION_LOG_FILE", "reconciliation.log")
