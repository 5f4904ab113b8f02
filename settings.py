import os
from decimal import Decimal

# Keep every runtime file next to this module so the register uses the same
# database and receipt folder regardless of the working directory.
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

DB_NAME = os.environ.get("POS_DB_PATH", os.path.join(BASE_DIR, "pos_register.db"))
RECEIPTS_DIR = os.environ.get("POS_RECEIPTS_DIR", os.path.join(BASE_DIR, "receipts"))

# Flat sales tax applied to the subtotal
TAX_RATE = Decimal(os.environ.get("POS_TAX_RATE", "0.10"))

# Products at or below this stock level show up in low-stock alerts
LOW_STOCK_THRESHOLD = int(os.environ.get("POS_LOW_STOCK_THRESHOLD", "10"))

INVOICE_PREFIX = os.environ.get("POS_INVOICE_PREFIX", "FAC")

STORE_NAME = os.environ.get("POS_STORE_NAME", "Register POS")
STORE_ADDRESS = os.environ.get("POS_STORE_ADDRESS", "Main Street 30")
CURRENCY_SYMBOL = os.environ.get("POS_CURRENCY_SYMBOL", "$")

LOG_LEVEL = os.environ.get("POS_LOG_LEVEL", "INFO")
