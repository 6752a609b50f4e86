# app/services/requirement_service.py
"""
Requirement workflow: an institution's demand on one warehouse, from creation through
approval or rejection. Shipping and receipt advance the status further in their own services.
"""
from typing import Any, Dict, List, Optional

from app.db.unit_of_work import UnitOfWork
from app.models.principal import Principal, Role
from app.models.requirement import (
    ApproveRequirement, CreateRequirement, LineStatus, Requirement, RequirementLine, RequirementStatus,
)
from app.services import reservation_service
from app.services.approval_policy import ApprovalPolicy, get_policy
from app.services.notification_service import REQUIREMENT_STATUS, REQUIREMENT_SUBMITTED, notify_party
from app.utiles.custom_helpers import _normalize_id, _now_utc
from app.utiles.exceptions import Forbidden, InvalidStateTransition, NotFound, ValidationError
from app.utiles.logger import get_logger

logger = get_logger(__name__)

# Statuses a requirement may still be rejected or cancelled from
_OPEN_STATUSES = (
    RequirementStatus.PENDING.value,
    RequirementStatus.APPROVED.value,
    RequirementStatus.PARTIALLY_APPROVED.value,
    RequirementStatus.FULLY_APPROVED.value,
)


async def _load_for_warehouse(uow: UnitOfWork, requirement_id: str, warehouse_id: str) -> Requirement:
    requirement = await uow.requirements.get(requirement_id)
    if not requirement:
        raise NotFound("Requirement not found")
    if requirement.warehouse_id != warehouse_id:
        raise Forbidden("Forbidden: This requirement is not addressed to your warehouse")
    return requirement


async def _release_approved_lines(uow: UnitOfWork, requirement: Requirement) -> None:
    for line in requirement.medicines:
        if line.status == LineStatus.APPROVED.value and line.approved_quantity > 0:
            await reservation_service.release(uow, requirement.warehouse_id, line.medicine_id, line.approved_quantity)
            line.approved_quantity = 0


async def create_requirement(uow: UnitOfWork, institution_id: str, payload: CreateRequirement) -> Requirement:
    """
    Record a new demand. Every medicine must exist in the catalog and the warehouse must be verified.
    All lines start Pending with nothing approved.
    """
    if not payload.medicines:
        raise ValidationError("Medicines array is required")

    warehouse_id = _normalize_id(payload.warehouse_id)
    lines: List[RequirementLine] = []
    seen = set()
    for item in payload.medicines:
        medicine_id = _normalize_id(item.medicine_id)
        if item.requested_quantity <= 0:
            raise ValidationError(f"Requested quantity for {medicine_id} must be positive")
        if medicine_id in seen:
            raise ValidationError(f"Medicine {medicine_id} is listed more than once")
        seen.add(medicine_id)
        lines.append(RequirementLine(medicine_id=medicine_id, requested_quantity=item.requested_quantity))

    async with uow.transaction():
        warehouse = await uow.catalog.get_warehouse(warehouse_id)
        if not warehouse:
            raise NotFound(f"Warehouse '{warehouse_id}' not found")
        if warehouse.get("is_verified") != "verified":
            raise ValidationError(f"Warehouse '{warehouse_id}' is not verified")

        for line in lines:
            if not await uow.catalog.get_medicine(line.medicine_id):
                raise NotFound(f"Medicine '{line.medicine_id}' not found")

        requirement = Requirement(institution_id=institution_id, warehouse_id=warehouse_id, medicines=lines)
        await uow.requirements.add(requirement)

    logger.info("Requirement %s created by institution %s for warehouse %s (%d lines)",
                requirement.requirement_id, institution_id, warehouse_id, len(lines))

    await notify_party(uow, "warehouse", warehouse_id, REQUIREMENT_SUBMITTED, {
        "requirement_id": requirement.requirement_id,
        "institution_name": institution_id,
    })
    return requirement


async def approve_requirement(uow: UnitOfWork, requirement_id: str, warehouse_id: str,
                              payload: Optional[ApproveRequirement] = None,
                              policy: Optional[ApprovalPolicy] = None) -> Requirement:
    policy = policy or get_policy()

    async with uow.transaction():
        requirement = await _load_for_warehouse(uow, requirement_id, warehouse_id)
        if requirement.logistic_id:
            raise InvalidStateTransition("Requirement already has a shipment attached")
        await policy.approve(uow, requirement, payload)
        await uow.requirements.save(requirement)

    logger.info("Requirement %s approved by warehouse %s under %s policy: %s",
                requirement_id, warehouse_id, policy.name, requirement.overall_status)

    await notify_party(uow, "institution", requirement.institution_id, REQUIREMENT_STATUS, {
        "requirement_id": requirement_id, "status": requirement.overall_status,
    })
    return requirement


async def reject_requirement(uow: UnitOfWork, requirement_id: str, warehouse_id: str) -> Requirement:
    """Reject every line. Reservations held by previously approved lines are released."""
    async with uow.transaction():
        requirement = await _load_for_warehouse(uow, requirement_id, warehouse_id)
        if requirement.logistic_id or requirement.overall_status not in _OPEN_STATUSES:
            raise InvalidStateTransition(
                f"Requirement {requirement_id} cannot be rejected from status {requirement.overall_status}"
            )
        await _release_approved_lines(uow, requirement)
        for line in requirement.medicines:
            line.status = LineStatus.REJECTED
            line.approved_quantity = 0
        requirement.set_status(RequirementStatus.REJECTED)
        await uow.requirements.save(requirement)

    logger.info("Requirement %s rejected by warehouse %s", requirement_id, warehouse_id)

    await notify_party(uow, "institution", requirement.institution_id, REQUIREMENT_STATUS, {
        "requirement_id": requirement_id, "status": requirement.overall_status,
    })
    return requirement


async def cancel_requirement(uow: UnitOfWork, requirement_id: str, institution_id: str) -> Dict[str, Any]:
    async with uow.transaction():
        requirement = await uow.requirements.get(requirement_id)
        if not requirement:
            raise NotFound("Requirement not found or already deleted")
        if requirement.institution_id != institution_id:
            raise Forbidden("Forbidden: You cannot cancel this requirement")
        if requirement.logistic_id:
            raise InvalidStateTransition("Requirement has already been shipped and cannot be cancelled")
        await _release_approved_lines(uow, requirement)
        requirement.is_deleted = True
        requirement.updated_at = _now_utc()
        await uow.requirements.save(requirement)

    logger.info("Requirement %s cancelled by institution %s", requirement_id, institution_id)
    return {"message": "Requirement cancelled successfully", "requirement_id": requirement_id}


async def get_requirement(uow: UnitOfWork, principal: Principal, requirement_id: str) -> Requirement:
    requirement = await uow.requirements.get(requirement_id)
    if not requirement:
        raise NotFound("Requirement not found")
    allowed = (
        principal.is_admin
        or (principal.role == Role.INSTITUTION and requirement.institution_id == principal.id)
        or (principal.role == Role.WAREHOUSE and requirement.warehouse_id == principal.id)
    )
    if not allowed:
        raise Forbidden("Forbidden: You cannot view this requirement")
    return requirement


async def requirement_stock_availability(uow: UnitOfWork, requirement_id: str, warehouse_id: str) -> Dict[str, Any]:
    """Per line: what was asked for, what is approved, and what the warehouse could still reserve."""
    requirement = await _load_for_warehouse(uow, requirement_id, warehouse_id)
    lines = []
    for line in requirement.medicines:
        record = await uow.warehouse_stocks.find_by_owner_and_medicine(warehouse_id, line.medicine_id)
        available = record.available_quantity() if record else 0
        lines.append({
            "medicine_id": line.medicine_id,
            "requested_quantity": line.requested_quantity,
            "approved_quantity": line.approved_quantity,
            "status": line.status,
            "available_quantity": available,
            "sufficient": available >= line.requested_quantity - line.approved_quantity,
        })
    return {
        "requirement_id": requirement_id,
        "overall_status": requirement.overall_status,
        "medicines": lines,
    }
