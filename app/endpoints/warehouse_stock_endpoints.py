# app/endpoints/warehouse_stock_endpoints.py

from fastapi import APIRouter, Depends

from app.db.unit_of_work import UnitOfWork
from app.endpoints.deps import get_principal, get_uow, require_roles
from app.models.principal import Principal, Role
from app.models.stock import AddWarehouseStock, UpdateBatchDetails
from app.services.ledger_service import (
    add_warehouse_stock, get_warehouse_stock, soft_delete_warehouse_stock, update_batch_details,
)
from app.utiles.decoratores import handle_exceptions
from app.utiles.logger import get_logger

# Initialize router
router = APIRouter(prefix="/warehouse-stock", tags=["Warehouse Stock"])

logger = get_logger(__name__)

warehouse_only = require_roles(Role.WAREHOUSE)


# ---------------- Add Batch ----------------
@router.post("/", status_code=201)
@handle_exceptions
async def add_stock_endpoint(payload: AddWarehouseStock,
                             principal: Principal = Depends(warehouse_only),
                             uow: UnitOfWork = Depends(get_uow)):
    """
    Endpoint: Add a batch to the caller's stock record.
    Calls service layer → add_warehouse_stock.
    """
    logger.info("API Request → Add warehouse stock: warehouse=%s, medicine=%s, batch=%s, qty=%s",
                principal.id, payload.medicine_id, payload.batch_name, payload.quantity)
    res = await add_warehouse_stock(uow, principal.id, payload)
    logger.info("API Response → Stock added: stock_id=%s", res["stock_id"])
    return res


# ---------------- Get Stock Record ----------------
@router.get("/{stock_id}")
@handle_exceptions
async def get_stock_endpoint(stock_id: str,
                             principal: Principal = Depends(get_principal),
                             uow: UnitOfWork = Depends(get_uow)):
    logger.info("API Request → Get warehouse stock: stock_id=%s", stock_id)
    return await get_warehouse_stock(uow, principal, stock_id)


# ---------------- Update Batch Details ----------------
@router.put("/{stock_id}/batch")
@handle_exceptions
async def update_batch_endpoint(stock_id: str, payload: UpdateBatchDetails,
                                principal: Principal = Depends(warehouse_only),
                                uow: UnitOfWork = Depends(get_uow)):
    """
    Endpoint: Update pricing, dates or packaging of one batch.
    Calls service layer → update_batch_details.
    """
    logger.info("API Request → Update batch: stock_id=%s, batch=%s", stock_id, payload.batch_name)
    record = await update_batch_details(uow, principal.id, stock_id, payload)
    logger.info("API Response → Batch updated: stock_id=%s", stock_id)
    return {"message": "Batch details updated successfully", "stock": record}


# ---------------- Soft Delete ----------------
@router.delete("/{stock_id}")
@handle_exceptions
async def delete_stock_endpoint(stock_id: str,
                                principal: Principal = Depends(warehouse_only),
                                uow: UnitOfWork = Depends(get_uow)):
    logger.info("API Request → Delete warehouse stock: stock_id=%s", stock_id)
    res = await soft_delete_warehouse_stock(uow, stock_id, principal.id)
    logger.info("API Response → Warehouse stock deleted: stock_id=%s", stock_id)
    return res
