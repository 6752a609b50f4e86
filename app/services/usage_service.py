# app/services/usage_service.py
from typing import Any, Dict

from app.db.unit_of_work import UnitOfWork
from app.models.logs import UsageLogEntry, UsageType
from app.models.stock import LogUsage
from app.utiles.custom_helpers import _normalize_id
from app.utiles.exceptions import Forbidden, NotFound, ValidationError
from app.utiles.logger import get_logger

logger = get_logger(__name__)


async def log_usage(uow: UnitOfWork, institution_id: str, payload: LogUsage) -> Dict[str, Any]:
    """Consume stock FEFO across the institution's batches, one usage log entry per batch touched."""
    if payload.quantity <= 0:
        raise ValidationError("Quantity used must be positive")
    if not payload.stock_id and not payload.medicine_id:
        raise ValidationError("Either stock_id or medicine_id is required")

    async with uow.transaction():
        if payload.stock_id:
            record = await uow.institution_stocks.get(payload.stock_id)
            if not record:
                raise NotFound("Institution stock record not found")
            if record.institution_id != institution_id:
                raise Forbidden("Forbidden: You cannot log usage against this stock record")
        else:
            medicine_id = _normalize_id(payload.medicine_id)
            record = await uow.institution_stocks.find_by_owner_and_medicine(institution_id, medicine_id)
            if not record:
                raise NotFound(f"No stock of medicine {medicine_id} for this institution")

        plan = record.plan_debit(payload.quantity)
        logs = []
        for i, take in plan:
            record.debit_from(i, take)
            logs.append(UsageLogEntry(
                institution_id=institution_id, medicine_id=record.medicine_id,
                batch_name=record.batches[i].batch_name, quantity=take, type=UsageType.USAGE,
            ))
        await uow.institution_stocks.save(record)
        await uow.usage_logs.add_many(logs)

    logger.info("Institution %s used %s of %s across %d batch(es)",
                institution_id, payload.quantity, record.medicine_id, len(logs))
    return {
        "message": "Usage logged successfully",
        "stock_id": record.stock_id,
        "medicine_id": record.medicine_id,
        "quantity": payload.quantity,
        "deductions": [{"batch_name": e.batch_name, "quantity": e.quantity} for e in logs],
        "remaining_quantity": record.total_current_quantity(),
    }
