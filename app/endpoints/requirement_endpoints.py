# app/endpoints/requirement_endpoints.py

from typing import Optional

from fastapi import APIRouter, Body, Depends

from app.db.unit_of_work import UnitOfWork
from app.endpoints.deps import get_approval_policy, get_principal, get_uow, require_roles
from app.models.principal import Principal, Role
from app.models.requirement import ApproveRequirement, CreateRequirement
from app.services.approval_policy import ApprovalPolicy
from app.services.requirement_service import (
    approve_requirement, cancel_requirement, create_requirement, get_requirement,
    reject_requirement, requirement_stock_availability,
)
from app.utiles.decoratores import handle_exceptions
from app.utiles.logger import get_logger

router = APIRouter(prefix="/requirements", tags=["Requirements"])

logger = get_logger(__name__)

institution_only = require_roles(Role.INSTITUTION)
warehouse_only = require_roles(Role.WAREHOUSE)


# ---------------- Create Requirement ----------------
@router.post("/", status_code=201)
@handle_exceptions
async def create_requirement_endpoint(payload: CreateRequirement,
                                      principal: Principal = Depends(institution_only),
                                      uow: UnitOfWork = Depends(get_uow)):
    """
    Endpoint: Institution raises a demand on a warehouse.
    Calls service layer → create_requirement.
    """
    logger.info("API Request → Create requirement: institution=%s, warehouse=%s, lines=%d",
                principal.id, payload.warehouse_id, len(payload.medicines))
    requirement = await create_requirement(uow, principal.id, payload)
    logger.info("API Response → Requirement created: id=%s", requirement.requirement_id)
    return {"message": "Requirement created successfully", "requirement": requirement}


# ---------------- Get Requirement ----------------
@router.get("/{requirement_id}")
@handle_exceptions
async def get_requirement_endpoint(requirement_id: str,
                                   principal: Principal = Depends(get_principal),
                                   uow: UnitOfWork = Depends(get_uow)):
    logger.info("API Request → Get requirement: id=%s", requirement_id)
    return await get_requirement(uow, principal, requirement_id)


# ---------------- Approve ----------------
@router.patch("/{requirement_id}/approve")
@handle_exceptions
async def approve_requirement_endpoint(requirement_id: str,
                                       payload: Optional[ApproveRequirement] = Body(None),
                                       principal: Principal = Depends(warehouse_only),
                                       policy: ApprovalPolicy = Depends(get_approval_policy),
                                       uow: UnitOfWork = Depends(get_uow)):
    """
    Endpoint: Warehouse approves a requirement and reserves the stock.
    The body is only read by the line-item policy.
    """
    logger.info("API Request → Approve requirement: id=%s, warehouse=%s, policy=%s",
                requirement_id, principal.id, policy.name)
    requirement = await approve_requirement(uow, requirement_id, principal.id, payload, policy)
    logger.info("API Response → Requirement %s is now %s", requirement_id, requirement.overall_status)
    return {"message": f"Requirement {requirement.overall_status}", "requirement": requirement}


# ---------------- Reject ----------------
@router.patch("/{requirement_id}/reject")
@handle_exceptions
async def reject_requirement_endpoint(requirement_id: str,
                                      principal: Principal = Depends(warehouse_only),
                                      uow: UnitOfWork = Depends(get_uow)):
    logger.info("API Request → Reject requirement: id=%s, warehouse=%s", requirement_id, principal.id)
    requirement = await reject_requirement(uow, requirement_id, principal.id)
    logger.info("API Response → Requirement rejected: id=%s", requirement_id)
    return {"message": "Requirement rejected", "requirement": requirement}


# ---------------- Stock Availability ----------------
@router.get("/{requirement_id}/stock-availability")
@handle_exceptions
async def stock_availability_endpoint(requirement_id: str,
                                      principal: Principal = Depends(warehouse_only),
                                      uow: UnitOfWork = Depends(get_uow)):
    logger.info("API Request → Stock availability: requirement=%s, warehouse=%s", requirement_id, principal.id)
    return await requirement_stock_availability(uow, requirement_id, principal.id)


# ---------------- Cancel ----------------
@router.delete("/{requirement_id}")
@handle_exceptions
async def cancel_requirement_endpoint(requirement_id: str,
                                      principal: Principal = Depends(institution_only),
                                      uow: UnitOfWork = Depends(get_uow)):
    logger.info("API Request → Cancel requirement: id=%s, institution=%s", requirement_id, principal.id)
    res = await cancel_requirement(uow, requirement_id, principal.id)
    logger.info("API Response → Requirement cancelled: id=%s", requirement_id)
    return res
