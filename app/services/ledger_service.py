# app/services/ledger_service.py
"""
Stock ledger service: batch entry, lookup and soft deletion for warehouse and
institution stock records.
"""
from typing import Any, Dict, Optional

from app.core.config import EXPIRY_WARNING_DAYS
from app.db.unit_of_work import UnitOfWork
from app.models.logs import ReceiptLogEntry, ReceiptType, UsageLogEntry, UsageType
from app.models.principal import Principal, Role
from app.models.stock import (
    AddInstitutionStock, AddWarehouseStock, InstitutionBatch, InstitutionStock,
    UpdateBatchDetails, WarehouseBatch, WarehouseStock,
)
from app.utiles.custom_helpers import _normalize_id, _now_utc, _to_utc_datetime_from_date
from app.utiles.exceptions import Forbidden, InvalidStateTransition, NotFound, ValidationError
from app.utiles.logger import get_logger

logger = get_logger(__name__)


# ----------------------------
# Internal helpers
# ----------------------------
async def _ensure_medicine_exists(uow: UnitOfWork, medicine_id: str) -> Dict[str, Any]:
    medicine = await uow.catalog.get_medicine(medicine_id)
    if not medicine:
        logger.error("Medicine '%s' not found", medicine_id)
        raise NotFound(f"Medicine '{medicine_id}' not found")
    return medicine


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _require(payload, fields) -> None:
    missing = [f for f in fields if _blank(getattr(payload, f, None))]
    if missing:
        raise ValidationError(f"Missing required stock fields: {', '.join(missing)}")


def _expiry_warning(medicine_id: str, expiry) -> Optional[str]:
    days_left = (expiry - _now_utc()).days
    if days_left < EXPIRY_WARNING_DAYS:
        warning = f"Stock for {medicine_id} will expire within {days_left} days"
        logger.warning(warning)
        return warning
    return None


# ----------------------------
# Warehouse side
# ----------------------------
async def add_warehouse_stock(uow: UnitOfWork, warehouse_id: str, payload: AddWarehouseStock) -> Dict[str, Any]:
    """
    Add a batch to the warehouse's record for a medicine, creating the record on first use.
    A batch label already present in the record has the new quantity merged into it.
    Writes one purchase entry to the receipt log.
    """
    _require(payload, ("medicine_id", "batch_name", "expiry_date", "purchase_price",
                       "selling_price", "mrp", "received_date"))
    if payload.quantity <= 0:
        raise ValidationError("Quantity must be positive.")

    medicine_id = _normalize_id(payload.medicine_id)
    batch_name = payload.batch_name.strip()
    batch = WarehouseBatch(
        batch_name=batch_name,
        quantity=payload.quantity,
        reserved_quantity=0,
        mfg_date=_to_utc_datetime_from_date(payload.mfg_date) if payload.mfg_date else None,
        expiry_date=_to_utc_datetime_from_date(payload.expiry_date),
        packet_size=payload.packet_size,
        purchase_price=payload.purchase_price,
        selling_price=payload.selling_price,
        mrp=payload.mrp,
        received_date=_to_utc_datetime_from_date(payload.received_date),
    )

    async with uow.transaction():
        await _ensure_medicine_exists(uow, medicine_id)

        record = await uow.warehouse_stocks.find_by_owner_and_medicine(warehouse_id, medicine_id)
        created = record is None
        if created:
            record = WarehouseStock(warehouse_id=warehouse_id, medicine_id=medicine_id)

        merged = record.add_batch(batch)
        if created:
            await uow.warehouse_stocks.add(record)
        else:
            await uow.warehouse_stocks.save(record)

        await uow.receipt_logs.add_many([
            ReceiptLogEntry(
                warehouse_id=warehouse_id,
                medicine_id=medicine_id,
                batch_name=batch_name,
                quantity=payload.quantity,
                type=ReceiptType.PURCHASE,
            )
        ])

    logger.info("%s batch %s (+%s) for medicine %s in warehouse %s",
                "Merged" if merged else "Created", batch_name, payload.quantity, medicine_id, warehouse_id)

    return {
        "message": "Stock added successfully.",
        "stock_id": record.stock_id,
        "batch_name": batch_name,
        "merged": merged,
        "quantity_added": payload.quantity,
        "warning": _expiry_warning(medicine_id, batch.expiry_date),
        "stock": record,
    }


async def update_batch_details(uow: UnitOfWork, warehouse_id: str, stock_id: str,
                               payload: UpdateBatchDetails) -> WarehouseStock:
    """Edit non-quantity fields of one batch."""
    updates = payload.model_dump(exclude_unset=True, exclude={"batch_name"})
    updates = {k: v for k, v in updates.items() if v is not None}
    for field in ("mfg_date", "expiry_date"):
        if field in updates:
            updates[field] = _to_utc_datetime_from_date(updates[field])

    async with uow.transaction():
        record = await uow.warehouse_stocks.get(stock_id)
        if not record or record.warehouse_id != warehouse_id:
            raise NotFound("Warehouse stock record not found or does not belong to this warehouse.")
        record.update_batch_details(payload.batch_name, updates)
        await uow.warehouse_stocks.save(record)

    logger.info("Updated batch %s of stock %s: %s", payload.batch_name, stock_id, sorted(updates))
    return record


async def soft_delete_warehouse_stock(uow: UnitOfWork, stock_id: str, warehouse_id: str) -> Dict[str, Any]:
    async with uow.transaction():
        record = await uow.warehouse_stocks.get(stock_id, include_deleted=True)
        if not record or record.is_deleted:
            raise NotFound("Warehouse stock record not found or already deleted.")
        if record.warehouse_id != warehouse_id:
            raise Forbidden("Forbidden: You cannot delete this stock record.")
        if record.reserved_quantity() > 0:
            raise InvalidStateTransition(
                f"Stock record has {record.reserved_quantity()} units reserved for pending shipments"
            )
        record.is_deleted = True
        await uow.warehouse_stocks.save(record)

    logger.info("Warehouse stock %s soft-deleted by warehouse %s", stock_id, warehouse_id)
    return {"message": "Warehouse stock record deleted successfully", "stock_id": stock_id}


async def get_warehouse_stock(uow: UnitOfWork, principal: Principal, stock_id: str) -> WarehouseStock:
    record = await uow.warehouse_stocks.get(stock_id)
    if not record:
        raise NotFound("Warehouse stock record not found")
    if not principal.is_admin and not (principal.role == Role.WAREHOUSE and record.warehouse_id == principal.id):
        raise Forbidden("Forbidden: You cannot access this stock record")
    return record


async def find_stock(uow: UnitOfWork, owner: Principal, medicine_id: str):
    """Live stock record of the owner for a medicine, or None."""
    if owner.role == Role.WAREHOUSE:
        return await uow.warehouse_stocks.find_by_owner_and_medicine(owner.id, medicine_id)
    if owner.role == Role.INSTITUTION:
        return await uow.institution_stocks.find_by_owner_and_medicine(owner.id, medicine_id)
    raise ValidationError("Only warehouses and institutions own stock")


# ----------------------------
# Institution side
# ----------------------------
async def add_institution_stock(uow: UnitOfWork, institution_id: str, payload: AddInstitutionStock) -> InstitutionStock:
    """Manual entry of possessed stock. Batches are always appended, never merged."""
    if not payload.stocks:
        raise ValidationError("Stocks array (new batches) is required")

    medicine_id = _normalize_id(payload.medicine_id)
    now = _now_utc()
    batches = []
    for entry in payload.stocks:
        _require(entry, ("expiry_date", "purchase_price", "mrp"))
        if entry.quantity <= 0:
            raise ValidationError("Quantity must be positive.")
        batches.append(InstitutionBatch(
            batch_name=(entry.batch_name or "").strip() or "N/A",
            expiry_date=_to_utc_datetime_from_date(entry.expiry_date),
            packet_size=entry.packet_size,
            current_quantity=entry.quantity,
            quantity_received=entry.quantity,
            purchase_price=entry.purchase_price,
            mrp=entry.mrp,
            received_date=_to_utc_datetime_from_date(entry.received_date) if entry.received_date else now,
        ))

    async with uow.transaction():
        await _ensure_medicine_exists(uow, medicine_id)
        record = await uow.institution_stocks.find_by_owner_and_medicine(institution_id, medicine_id)
        created = record is None
        if created:
            record = InstitutionStock(institution_id=institution_id, medicine_id=medicine_id)
        for batch in batches:
            record.append_batch(batch)
        if created:
            await uow.institution_stocks.add(record)
        else:
            await uow.institution_stocks.save(record)

        await uow.usage_logs.add_many([
            UsageLogEntry(institution_id=institution_id, medicine_id=medicine_id,
                          batch_name=b.batch_name, quantity=b.quantity_received, type=UsageType.ADDITION)
            for b in batches
        ])

    logger.info("Institution %s added %d batch(es) of medicine %s", institution_id, len(batches), medicine_id)
    return record


async def soft_delete_institution_stock(uow: UnitOfWork, stock_id: str, institution_id: str) -> Dict[str, Any]:
    async with uow.transaction():
        record = await uow.institution_stocks.get(stock_id, include_deleted=True)
        if not record or record.is_deleted:
            raise NotFound("Institution stock record not found or already deleted.")
        if record.institution_id != institution_id:
            raise Forbidden("Forbidden: You cannot delete this stock record.")
        record.is_deleted = True
        await uow.institution_stocks.save(record)

    logger.info("Institution stock %s soft-deleted by institution %s", stock_id, institution_id)
    return {"message": "Institution stock record deleted successfully", "stock_id": stock_id}


async def get_institution_stock(uow: UnitOfWork, principal: Principal, stock_id: str) -> InstitutionStock:
    record = await uow.institution_stocks.get(stock_id)
    if not record:
        raise NotFound("Institution stock record not found")
    if not principal.is_admin and not (principal.role == Role.INSTITUTION and record.institution_id == principal.id):
        raise Forbidden("Forbidden: You cannot access this stock record")
    return record
