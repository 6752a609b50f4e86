# app/endpoints/logistic_endpoints.py

from fastapi import APIRouter, Depends

from app.db.unit_of_work import UnitOfWork
from app.endpoints.deps import get_approval_policy, get_principal, get_uow, require_roles
from app.models.logistic import CreateShipment, UpdateShipmentStatus
from app.models.principal import Principal, Role
from app.services.approval_policy import ApprovalPolicy
from app.services.receipt_service import receive_shipment
from app.services.shipment_service import create_shipment, get_logistic, update_shipment_status
from app.utiles.decoratores import handle_exceptions
from app.utiles.logger import get_logger

router = APIRouter(prefix="/logistics", tags=["Logistics"])

logger = get_logger(__name__)

institution_only = require_roles(Role.INSTITUTION)
warehouse_only = require_roles(Role.WAREHOUSE)


# ---------------- Create Shipment ----------------
@router.post("/", status_code=201)
@handle_exceptions
async def create_shipment_endpoint(payload: CreateShipment,
                                   principal: Principal = Depends(warehouse_only),
                                   policy: ApprovalPolicy = Depends(get_approval_policy),
                                   uow: UnitOfWork = Depends(get_uow)):
    """
    Endpoint: Ship an approved requirement.
    Calls service layer → create_shipment.
    """
    logger.info("API Request → Create shipment: requirement=%s, warehouse=%s, vehicles=%d",
                payload.requirement_id, principal.id, len(payload.vehicles))
    logistic = await create_shipment(uow, principal.id, payload, policy)
    logger.info("API Response → Shipment created: shipment_id=%s, logistic_id=%s",
                logistic.shipment_id, logistic.logistic_id)
    return {"message": "Shipment created successfully", "logistic": logistic}


# ---------------- Get Shipment ----------------
@router.get("/{logistic_id}")
@handle_exceptions
async def get_logistic_endpoint(logistic_id: str,
                                principal: Principal = Depends(get_principal),
                                uow: UnitOfWork = Depends(get_uow)):
    logger.info("API Request → Get logistic: id=%s", logistic_id)
    return await get_logistic(uow, principal, logistic_id)


# ---------------- Transport Status ----------------
@router.patch("/{logistic_id}/status")
@handle_exceptions
async def update_status_endpoint(logistic_id: str, payload: UpdateShipmentStatus,
                                 principal: Principal = Depends(warehouse_only),
                                 uow: UnitOfWork = Depends(get_uow)):
    logger.info("API Request → Update shipment status: id=%s, status=%s", logistic_id, payload.status)
    logistic = await update_shipment_status(uow, logistic_id, principal.id, payload)
    logger.info("API Response → Shipment %s is %s", logistic.shipment_id, logistic.status)
    return {"message": "Shipment status updated", "logistic": logistic}


# ---------------- Receive ----------------
@router.patch("/{logistic_id}/receive")
@handle_exceptions
async def receive_shipment_endpoint(logistic_id: str,
                                    principal: Principal = Depends(institution_only),
                                    uow: UnitOfWork = Depends(get_uow)):
    """
    Endpoint: Institution acknowledges a shipment; its batches join the institution's stock.
    Calls service layer → receive_shipment.
    """
    logger.info("API Request → Receive shipment: id=%s, institution=%s", logistic_id, principal.id)
    logistic = await receive_shipment(uow, logistic_id, principal.id)
    logger.info("API Response → Shipment received: shipment_id=%s", logistic.shipment_id)
    return {"message": "Shipment received successfully", "logistic": logistic}
