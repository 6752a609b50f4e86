# app/models/logs.py
"""Append-only audit entries. Written inside the same transaction as the ledger change they describe."""
from datetime import datetime
from enum import Enum

from pydantic import Field

from app.models.base import DocumentModel
from app.utiles.custom_helpers import _gen_id, _now_utc


class UsageType(str, Enum):
    USAGE = "usage"
    ADDITION = "addition"


class ReceiptType(str, Enum):
    PURCHASE = "purchase"
    SALE = "sale"


class UsageLogEntry(DocumentModel):
    log_id: str = Field(default_factory=_gen_id)
    institution_id: str
    medicine_id: str
    batch_name: str
    quantity: int = Field(..., ge=1)
    type: UsageType
    created_at: datetime = Field(default_factory=_now_utc)


class ReceiptLogEntry(DocumentModel):
    log_id: str = Field(default_factory=_gen_id)
    warehouse_id: str
    medicine_id: str
    batch_name: str
    quantity: int = Field(..., ge=1)
    type: ReceiptType
    created_at: datetime = Field(default_factory=_now_utc)
