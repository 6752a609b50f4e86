# app/models/stock.py
"""
Stock ledger aggregates (MongoDB documents + pydantic).

One stock record exists per (owner, medicine). The record owns its batch list and
is always persisted whole; batches are only changed through the record's methods,
which enforce the per-batch accounting invariants:

- warehouse side:   0 <= reserved_quantity <= quantity
- institution side: 0 <= current_quantity <= quantity_received
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from app.models.base import DocumentModel
from app.utiles.custom_helpers import _gen_id, _now_utc
from app.utiles.exceptions import InsufficientStock, NotFound, StockInconsistency, ValidationError


class PacketSize(DocumentModel):
    strips: Optional[int] = Field(None, ge=0)
    tablets_per_strip: Optional[int] = Field(None, ge=0)


def _fefo_key(batch) -> tuple:
    return (batch.expiry_date, batch.created_at)


# -----------------------------
# Warehouse side
# -----------------------------
class WarehouseBatch(DocumentModel):
    batch_name: str
    quantity: int = Field(..., ge=0)
    reserved_quantity: int = Field(0, ge=0)
    mfg_date: Optional[datetime] = None
    expiry_date: datetime
    packet_size: Optional[PacketSize] = None
    purchase_price: float = Field(..., ge=0.0)
    selling_price: float = Field(..., ge=0.0)
    mrp: float = Field(..., ge=0.0)
    received_date: datetime
    created_at: datetime = Field(default_factory=_now_utc)

    @model_validator(mode="after")
    def _reserved_within_on_hand(self):
        if self.reserved_quantity > self.quantity:
            raise ValueError("reserved_quantity cannot exceed quantity")
        return self

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved_quantity


# Fields a warehouse may edit on an existing batch; quantities are never among them
EDITABLE_BATCH_FIELDS = ("mfg_date", "expiry_date", "purchase_price", "selling_price", "mrp", "packet_size")


class WarehouseStock(DocumentModel):
    stock_id: str = Field(default_factory=_gen_id)
    warehouse_id: str
    medicine_id: str
    batches: List[WarehouseBatch] = Field(default_factory=list)
    is_deleted: bool = False
    version: int = 0
    created_at: datetime = Field(default_factory=_now_utc)
    updated_at: datetime = Field(default_factory=_now_utc)

    # ---- read side ----
    def on_hand_quantity(self) -> int:
        return sum(b.quantity for b in self.batches)

    def reserved_quantity(self) -> int:
        return sum(b.reserved_quantity for b in self.batches)

    def available_quantity(self) -> int:
        return sum(b.available_quantity for b in self.batches)

    def fefo_order(self) -> List[int]:
        """Batch positions by expiry, then creation time, then insertion order."""
        return sorted(range(len(self.batches)), key=lambda i: _fefo_key(self.batches[i]))

    def batch_index(self, batch_name: str) -> Optional[int]:
        for i, b in enumerate(self.batches):
            if b.batch_name == batch_name:
                return i
        return None

    # ---- mutations ----
    def add_batch(self, batch: WarehouseBatch) -> bool:
        """Append the batch, or merge its quantity into the batch with the same label. Returns True on merge."""
        if batch.quantity <= 0:
            raise ValidationError("Quantity must be positive.")
        idx = self.batch_index(batch.batch_name)
        if idx is not None:
            self.batches[idx].quantity += batch.quantity
            self._touch()
            return True
        self.batches.append(batch)
        self._touch()
        return False

    def reserve_on(self, index: int, qty: int) -> None:
        batch = self.batches[index]
        if qty <= 0 or qty > batch.available_quantity:
            raise StockInconsistency(
                f"Cannot reserve {qty} on batch {batch.batch_name} (available {batch.available_quantity})"
            )
        batch.reserved_quantity += qty
        self._touch()

    def release_on(self, index: int, qty: int) -> None:
        batch = self.batches[index]
        if qty <= 0 or qty > batch.reserved_quantity:
            raise StockInconsistency(
                f"Cannot release {qty} on batch {batch.batch_name} (reserved {batch.reserved_quantity})"
            )
        batch.reserved_quantity -= qty
        self._touch()

    def ship_from(self, index: int, qty: int) -> None:
        """Physically remove reserved units: on-hand and reserved both drop by qty."""
        batch = self.batches[index]
        if qty <= 0 or qty > batch.reserved_quantity or qty > batch.quantity:
            raise StockInconsistency(
                f"Cannot ship {qty} from batch {batch.batch_name} "
                f"(on hand {batch.quantity}, reserved {batch.reserved_quantity})"
            )
        # reserved first so the batch never holds reserved > quantity in between
        batch.reserved_quantity -= qty
        batch.quantity -= qty
        self._touch()

    def update_batch_details(self, batch_name: str, updates: Dict[str, Any]) -> WarehouseBatch:
        idx = self.batch_index(batch_name)
        if idx is None:
            raise NotFound(f"Batch with name '{batch_name}' not found within this stock record.")
        unknown = set(updates) - set(EDITABLE_BATCH_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        if not updates:
            raise ValidationError("No valid fields provided for update.")
        batch = self.batches[idx]
        for field, value in updates.items():
            setattr(batch, field, value)
        self._touch()
        return batch

    def assert_invariants(self) -> None:
        for b in self.batches:
            if not 0 <= b.reserved_quantity <= b.quantity:
                raise StockInconsistency(
                    f"Batch {b.batch_name} of stock {self.stock_id} has reserved {b.reserved_quantity} > on hand {b.quantity}"
                )

    def _touch(self) -> None:
        self.updated_at = _now_utc()


# -----------------------------
# Institution side
# -----------------------------
class InstitutionBatch(DocumentModel):
    warehouse_id: Optional[str] = None  # origin warehouse, None for manual entries
    batch_name: str = "N/A"
    expiry_date: datetime
    packet_size: Optional[PacketSize] = None
    current_quantity: int = Field(..., ge=0)
    quantity_received: int = Field(..., ge=0)
    purchase_price: float = Field(..., ge=0.0)
    mrp: float = Field(..., ge=0.0)
    received_date: datetime
    created_at: datetime = Field(default_factory=_now_utc)

    @model_validator(mode="after")
    def _current_within_received(self):
        if self.current_quantity > self.quantity_received:
            raise ValueError("current_quantity cannot exceed quantity_received")
        return self


class InstitutionStock(DocumentModel):
    stock_id: str = Field(default_factory=_gen_id)
    institution_id: str
    medicine_id: str
    batches: List[InstitutionBatch] = Field(default_factory=list)
    is_deleted: bool = False
    version: int = 0
    created_at: datetime = Field(default_factory=_now_utc)
    updated_at: datetime = Field(default_factory=_now_utc)

    def total_current_quantity(self) -> int:
        return sum(b.current_quantity for b in self.batches)

    def fefo_order(self) -> List[int]:
        return sorted(range(len(self.batches)), key=lambda i: _fefo_key(self.batches[i]))

    def append_batch(self, batch: InstitutionBatch) -> None:
        # never merged: every receipt keeps its own batch for traceability
        if batch.quantity_received <= 0:
            raise ValidationError("Quantity must be positive.")
        self.batches.append(batch)
        self.updated_at = _now_utc()

    def debit_from(self, index: int, qty: int) -> None:
        batch = self.batches[index]
        if qty <= 0 or qty > batch.current_quantity:
            raise StockInconsistency(
                f"Cannot debit {qty} from batch {batch.batch_name} (current {batch.current_quantity})"
            )
        batch.current_quantity -= qty
        self.updated_at = _now_utc()

    def plan_debit(self, qty: int) -> List[tuple]:
        """FEFO plan of (position, amount) covering qty; raises when the record cannot cover it."""
        total = self.total_current_quantity()
        if qty > total:
            raise InsufficientStock(self.medicine_id, qty, total)
        plan = []
        remaining = qty
        for i in self.fefo_order():
            if remaining <= 0:
                break
            take = min(remaining, self.batches[i].current_quantity)
            if take > 0:
                plan.append((i, take))
                remaining -= take
        if remaining > 0:
            raise StockInconsistency(
                f"Usage walk for stock {self.stock_id} left {remaining} unaccounted after availability check"
            )
        return plan


# -----------------------------
# Request Schemas
# -----------------------------
class AddWarehouseStock(BaseModel):
    medicine_id: str = Field(..., description="Medicine reference (must exist in the catalog)")
    batch_name: Optional[str] = Field(None, description="Batch label, unique within the stock record")
    quantity: int = Field(..., description="Packets received (must be > 0)")
    mfg_date: Optional[date] = None
    expiry_date: Optional[date] = None
    packet_size: Optional[PacketSize] = None
    purchase_price: Optional[float] = Field(None, ge=0.0)
    selling_price: Optional[float] = Field(None, ge=0.0)
    mrp: Optional[float] = Field(None, ge=0.0)
    received_date: Optional[date] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "medicine_id": "med-paracetamol-500",
                "batch_name": "B1",
                "quantity": 100,
                "expiry_date": "2026-12-01",
                "purchase_price": 10.0,
                "selling_price": 12.5,
                "mrp": 15.0,
                "received_date": "2026-01-10",
            }
        }
    }


class UpdateBatchDetails(BaseModel):
    batch_name: str
    mfg_date: Optional[date] = None
    expiry_date: Optional[date] = None
    purchase_price: Optional[float] = Field(None, ge=0.0)
    selling_price: Optional[float] = Field(None, ge=0.0)
    mrp: Optional[float] = Field(None, ge=0.0)
    packet_size: Optional[PacketSize] = None


class InstitutionBatchIn(BaseModel):
    batch_name: Optional[str] = "N/A"
    expiry_date: Optional[date] = None
    packet_size: Optional[PacketSize] = None
    quantity: int
    purchase_price: Optional[float] = Field(None, ge=0.0)
    mrp: Optional[float] = Field(None, ge=0.0)
    received_date: Optional[date] = None


class AddInstitutionStock(BaseModel):
    medicine_id: str
    stocks: List[InstitutionBatchIn]


class LogUsage(BaseModel):
    stock_id: Optional[str] = None
    medicine_id: Optional[str] = None
    quantity: int
