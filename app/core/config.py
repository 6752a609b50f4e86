# app/core/config.py
import os
from dotenv import load_dotenv

load_dotenv()

# ---------------- MongoDB ----------------
# Multi-document transactions need a replica set (a single-node one is fine)
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017/?replicaSet=rs0")
MONGO_DB = os.getenv("MONGO_DB", "pharma_inventory")

# Ledger collections (owned by this service)
COLLECTION_WAREHOUSE_STOCKS = "WarehouseStocks"
COLLECTION_INSTITUTION_STOCKS = "InstitutionStocks"
COLLECTION_REQUIREMENTS = "Requirements"
COLLECTION_LOGISTICS = "Logistics"
COLLECTION_USAGE_LOGS = "InstitutionUsageLogs"
COLLECTION_RECEIPT_LOGS = "WarehouseReceiptLogs"

# Reference catalog (maintained elsewhere, read-only here)
COLLECTION_MEDICINES = "medicines"
COLLECTION_WAREHOUSES = "warehouses"
COLLECTION_INSTITUTIONS = "institutions"

# ---------------- Workflow ----------------
# "all_or_nothing" or "line_item"
APPROVAL_POLICY = os.getenv("APPROVAL_POLICY", "all_or_nothing").strip().lower()
SHIPMENT_ID_PREFIX = os.getenv("SHIPMENT_ID_PREFIX", "SHP")
EXPIRY_WARNING_DAYS = int(os.getenv("EXPIRY_WARNING_DAYS", "30"))

# ---------------- Mail ----------------
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM = os.getenv("SMTP_FROM", SMTP_USER)
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5173")

# ---------------- Logging ----------------
LOG_FILE = os.getenv("LOG_FILE", "pharma_inventory.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
