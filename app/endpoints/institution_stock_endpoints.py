# app/endpoints/institution_stock_endpoints.py

from fastapi import APIRouter, Depends

from app.db.unit_of_work import UnitOfWork
from app.endpoints.deps import get_principal, get_uow, require_roles
from app.models.principal import Principal, Role
from app.models.stock import AddInstitutionStock, LogUsage
from app.services.ledger_service import add_institution_stock, get_institution_stock, soft_delete_institution_stock
from app.services.usage_service import log_usage
from app.utiles.decoratores import handle_exceptions
from app.utiles.logger import get_logger

router = APIRouter(prefix="/institution-stock", tags=["Institution Stock"])

logger = get_logger(__name__)

institution_only = require_roles(Role.INSTITUTION)


# ---------------- Manual Stock Entry ----------------
@router.post("/", status_code=201)
@handle_exceptions
async def add_stock_endpoint(payload: AddInstitutionStock,
                             principal: Principal = Depends(institution_only),
                             uow: UnitOfWork = Depends(get_uow)):
    logger.info("API Request → Add institution stock: institution=%s, medicine=%s, batches=%d",
                principal.id, payload.medicine_id, len(payload.stocks))
    record = await add_institution_stock(uow, principal.id, payload)
    logger.info("API Response → Institution stock updated: stock_id=%s", record.stock_id)
    return {"message": "Stock added successfully", "stock": record}


# ---------------- Log Usage ----------------
@router.post("/log-usage")
@handle_exceptions
async def log_usage_endpoint(payload: LogUsage,
                             principal: Principal = Depends(institution_only),
                             uow: UnitOfWork = Depends(get_uow)):
    """
    Endpoint: Consume stock, soonest expiry first.
    Calls service layer → log_usage.
    """
    logger.info("API Request → Log usage: institution=%s, stock_id=%s, medicine=%s, qty=%s",
                principal.id, payload.stock_id, payload.medicine_id, payload.quantity)
    res = await log_usage(uow, principal.id, payload)
    logger.info("API Response → Usage logged: stock_id=%s, remaining=%s", res["stock_id"], res["remaining_quantity"])
    return res


# ---------------- Get Stock Record ----------------
@router.get("/{stock_id}")
@handle_exceptions
async def get_stock_endpoint(stock_id: str,
                             principal: Principal = Depends(get_principal),
                             uow: UnitOfWork = Depends(get_uow)):
    logger.info("API Request → Get institution stock: stock_id=%s", stock_id)
    return await get_institution_stock(uow, principal, stock_id)


# ---------------- Soft Delete ----------------
@router.delete("/{stock_id}")
@handle_exceptions
async def delete_stock_endpoint(stock_id: str,
                                principal: Principal = Depends(institution_only),
                                uow: UnitOfWork = Depends(get_uow)):
    logger.info("API Request → Delete institution stock: stock_id=%s", stock_id)
    res = await soft_delete_institution_stock(uow, stock_id, principal.id)
    logger.info("API Response → Institution stock deleted: stock_id=%s", stock_id)
    return res
