# app/models/requirement.py
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from app.models.base import DocumentModel
from app.utiles.custom_helpers import _gen_id, _now_utc


class LineStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class RequirementStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"                      # all-or-nothing policy
    PARTIALLY_APPROVED = "Partially Approved"  # line-item policy
    FULLY_APPROVED = "Fully Approved"          # line-item policy
    REJECTED = "Rejected"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    RECEIVED = "Received"


class RequirementLine(DocumentModel):
    medicine_id: str
    requested_quantity: int = Field(..., ge=1)
    approved_quantity: int = Field(0, ge=0)
    status: LineStatus = LineStatus.PENDING


class Requirement(DocumentModel):
    requirement_id: str = Field(default_factory=_gen_id)
    institution_id: str
    warehouse_id: str
    medicines: List[RequirementLine]
    overall_status: RequirementStatus = RequirementStatus.PENDING
    logistic_id: Optional[str] = None
    is_deleted: bool = False
    version: int = 0
    created_at: datetime = Field(default_factory=_now_utc)
    updated_at: datetime = Field(default_factory=_now_utc)

    def line_for(self, medicine_id: str) -> Optional[RequirementLine]:
        for line in self.medicines:
            if line.medicine_id == medicine_id:
                return line
        return None

    def shippable_lines(self) -> List[RequirementLine]:
        return [l for l in self.medicines if l.status == LineStatus.APPROVED and l.approved_quantity > 0]

    def set_status(self, status: RequirementStatus) -> None:
        self.overall_status = status
        self.updated_at = _now_utc()


def rollup_status(lines: List[RequirementLine]) -> RequirementStatus:
    """Overall status derived from line statuses (line-item approval policy)."""
    approved = sum(1 for l in lines if l.status == LineStatus.APPROVED)
    rejected = sum(1 for l in lines if l.status == LineStatus.REJECTED)
    pending = len(lines) - approved - rejected

    if pending > 0:
        return RequirementStatus.PARTIALLY_APPROVED if approved > 0 else RequirementStatus.PENDING
    if approved == 0 and rejected > 0:
        return RequirementStatus.REJECTED
    if approved > 0 and rejected > 0:
        return RequirementStatus.PARTIALLY_APPROVED
    if approved == len(lines) and approved > 0:
        return RequirementStatus.FULLY_APPROVED
    return RequirementStatus.PENDING


# -----------------------------
# Request Schemas
# -----------------------------
class RequirementLineIn(BaseModel):
    medicine_id: str
    requested_quantity: int


class CreateRequirement(BaseModel):
    warehouse_id: str
    medicines: List[RequirementLineIn]

    model_config = {
        "json_schema_extra": {
            "example": {
                "warehouse_id": "wh-001",
                "medicines": [{"medicine_id": "med-paracetamol-500", "requested_quantity": 40}],
            }
        }
    }


class LineDecision(BaseModel):
    medicine_id: str
    status: Literal["Approved", "Rejected"]
    approved_quantity: Optional[int] = None


class ApproveRequirement(BaseModel):
    # Only read by the line-item policy
    medicines: Optional[List[LineDecision]] = None
