# app/models/logistic.py
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.base import DocumentModel
from app.models.stock import PacketSize
from app.utiles.custom_helpers import _gen_id, _now_utc


class ShipmentStatus(str, Enum):
    PENDING = "Pending"
    IN_TRANSIT = "In Transit"
    DELIVERED = "Delivered"


class ReceivedStatus(str, Enum):
    PENDING = "Pending"
    RECEIVED = "Received"


# Transport status only moves forward
STATUS_RANK = {
    ShipmentStatus.PENDING.value: 0,
    ShipmentStatus.IN_TRANSIT.value: 1,
    ShipmentStatus.DELIVERED.value: 2,
}


class VehicleTimestamps(DocumentModel):
    loaded_at: datetime
    departed_at: datetime
    arrived_at: Optional[datetime] = None
    unloaded_at: Optional[datetime] = None


class VehicleLeg(DocumentModel):
    vehicle_number: str = Field(..., min_length=1, examples=["UP32 AB 1234"])
    driver_name: str = Field(..., min_length=1)
    driver_contact: str = Field(..., min_length=1)
    timestamps: VehicleTimestamps


class ShippedBatch(DocumentModel):
    """Frozen copy of a warehouse batch at the moment it left the warehouse."""
    batch_number: str
    expiry_date: datetime
    quantity: int = Field(..., gt=0)
    packet_size: Optional[PacketSize] = None
    selling_price: float
    mrp: float


class ShippedMedicine(DocumentModel):
    medicine_id: str
    stocks: List[ShippedBatch]

    def total_quantity(self) -> int:
        return sum(s.quantity for s in self.stocks)


class Logistic(DocumentModel):
    logistic_id: str = Field(default_factory=_gen_id)
    shipment_id: str
    requirement_id: str
    warehouse_id: str
    institution_id: str
    medicines: List[ShippedMedicine]
    vehicles: List[VehicleLeg]
    status: ShipmentStatus = ShipmentStatus.PENDING
    received_status: ReceivedStatus = ReceivedStatus.PENDING
    is_deleted: bool = False
    version: int = 0
    created_at: datetime = Field(default_factory=_now_utc)
    updated_at: datetime = Field(default_factory=_now_utc)


# -----------------------------
# Request Schemas
# -----------------------------
class CreateShipment(BaseModel):
    requirement_id: str
    vehicles: List[VehicleLeg]
    shipment_id: Optional[str] = Field(None, description="Optional; generated when omitted")


class UpdateShipmentStatus(BaseModel):
    status: ShipmentStatus
