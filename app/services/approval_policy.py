# app/services/approval_policy.py
"""
Requirement approval strategies. One is chosen per deployment through APPROVAL_POLICY.

all_or_nothing: every line is approved for its full requested quantity, or nothing changes.
line_item:      the warehouse decides each line; overall status is rolled up from the lines.
"""
from abc import ABC, abstractmethod
from typing import Optional

from app.core.config import APPROVAL_POLICY
from app.db.unit_of_work import UnitOfWork
from app.models.requirement import (
    ApproveRequirement, LineStatus, Requirement, RequirementStatus, rollup_status,
)
from app.services import reservation_service
from app.utiles.exceptions import InsufficientStock, InvalidStateTransition, ValidationError
from app.utiles.logger import get_logger

logger = get_logger(__name__)


class ApprovalPolicy(ABC):
    name = ""
    approvable_from = ()

    def check_approvable(self, requirement: Requirement) -> None:
        if requirement.overall_status not in self.approvable_from:
            raise InvalidStateTransition(
                f"Requirement {requirement.requirement_id} cannot be approved from status {requirement.overall_status}"
            )

    @abstractmethod
    async def approve(self, uow: UnitOfWork, requirement: Requirement,
                      payload: Optional[ApproveRequirement] = None) -> None:
        """Reserve stock and update line/overall status in place. Runs inside the caller's transaction."""

    @abstractmethod
    def can_ship(self, requirement: Requirement) -> bool:
        ...


class AllOrNothingPolicy(ApprovalPolicy):
    name = "all_or_nothing"
    approvable_from = (RequirementStatus.PENDING.value,)

    async def approve(self, uow, requirement, payload=None):
        self.check_approvable(requirement)

        # every line is checked before any reservation is placed
        for line in requirement.medicines:
            record = await uow.warehouse_stocks.find_by_owner_and_medicine(
                requirement.warehouse_id, line.medicine_id
            )
            available = record.available_quantity() if record else 0
            if available < line.requested_quantity:
                logger.warning("Approval of %s refused: %s needs %s, %s available",
                               requirement.requirement_id, line.medicine_id, line.requested_quantity, available)
                raise InsufficientStock(line.medicine_id, line.requested_quantity, available)

        for line in requirement.medicines:
            await reservation_service.reserve(uow, requirement.warehouse_id, line.medicine_id, line.requested_quantity)
            line.approved_quantity = line.requested_quantity
            line.status = LineStatus.APPROVED

        requirement.set_status(RequirementStatus.APPROVED)

    def can_ship(self, requirement):
        return requirement.overall_status == RequirementStatus.APPROVED.value


class LineItemPolicy(ApprovalPolicy):
    name = "line_item"
    approvable_from = (RequirementStatus.PENDING.value, RequirementStatus.PARTIALLY_APPROVED.value)

    async def approve(self, uow, requirement, payload=None):
        self.check_approvable(requirement)
        if payload is None or not payload.medicines:
            raise ValidationError("Medicines array with line decisions is required")

        seen = set()
        for decision in payload.medicines:
            if decision.medicine_id in seen:
                raise ValidationError(f"Duplicate decision for medicine {decision.medicine_id}")
            seen.add(decision.medicine_id)

            line = requirement.line_for(decision.medicine_id)
            if line is None:
                raise ValidationError(f"Medicine {decision.medicine_id} is not part of this requirement")

            if decision.status == LineStatus.APPROVED.value:
                qty = line.requested_quantity if decision.approved_quantity is None else decision.approved_quantity
                if qty <= 0 or qty > line.requested_quantity:
                    raise ValidationError(
                        f"Approved quantity for {line.medicine_id} must be between 1 and {line.requested_quantity}"
                    )
                delta = qty - line.approved_quantity
                if delta > 0:
                    await reservation_service.reserve(uow, requirement.warehouse_id, line.medicine_id, delta)
                elif delta < 0:
                    await reservation_service.release(uow, requirement.warehouse_id, line.medicine_id, -delta)
                line.approved_quantity = qty
                line.status = LineStatus.APPROVED
            else:
                if line.approved_quantity > 0:
                    await reservation_service.release(
                        uow, requirement.warehouse_id, line.medicine_id, line.approved_quantity
                    )
                line.approved_quantity = 0
                line.status = LineStatus.REJECTED

        requirement.set_status(rollup_status(requirement.medicines))

    def can_ship(self, requirement):
        no_pending = all(l.status != LineStatus.PENDING.value for l in requirement.medicines)
        return no_pending and bool(requirement.shippable_lines()) and requirement.overall_status in (
            RequirementStatus.PARTIALLY_APPROVED.value, RequirementStatus.FULLY_APPROVED.value,
        )


_POLICIES = {
    AllOrNothingPolicy.name: AllOrNothingPolicy,
    LineItemPolicy.name: LineItemPolicy,
}


def get_policy(name: str = APPROVAL_POLICY) -> ApprovalPolicy:
    try:
        return _POLICIES[name]()
    except KeyError:
        raise ValueError(f"Unknown approval policy '{name}'; expected one of {sorted(_POLICIES)}") from None
