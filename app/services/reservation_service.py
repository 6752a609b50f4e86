# app/services/reservation_service.py
"""
Reservation allocator.

Places and lifts soft holds on warehouse batches, first-expiring-first-reserved.
Both calls run inside the caller's transaction when one is open, so a workflow that
reserves several medicines either keeps every hold or none of them.
"""
from typing import Dict, List, Tuple

from app.db.unit_of_work import UnitOfWork
from app.models.stock import WarehouseStock
from app.utiles.exceptions import InsufficientStock, StockInconsistency, ValidationError
from app.utiles.logger import get_logger

logger = get_logger(__name__)


def plan_reservation(record: WarehouseStock, quantity: int) -> List[Tuple[int, int]]:
    """(batch position, amount) pairs covering quantity in FEFR order."""
    plan = []
    remaining = quantity
    for i in record.fefo_order():
        if remaining == 0:
            break
        take = min(remaining, record.batches[i].available_quantity)
        if take > 0:
            plan.append((i, take))
            remaining -= take
    if remaining:
        raise StockInconsistency(
            f"Reservation walk on stock {record.stock_id} left {remaining} unallocated after availability check"
        )
    return plan


def plan_release(record: WarehouseStock, quantity: int) -> List[Tuple[int, int]]:
    plan = []
    remaining = quantity
    for i in record.fefo_order():
        if remaining == 0:
            break
        take = min(remaining, record.batches[i].reserved_quantity)
        if take > 0:
            plan.append((i, take))
            remaining -= take
    return plan


async def reserve(uow: UnitOfWork, warehouse_id: str, medicine_id: str, quantity: int) -> List[Dict[str, int]]:
    """
    Reserve quantity of a medicine at a warehouse.

    Raises InsufficientStock (and changes nothing) when the live record cannot cover it.
    Returns the per-batch reservations that were made.
    """
    if quantity <= 0:
        raise ValidationError("Reservation quantity must be positive.")

    async with uow.transaction():
        record = await uow.warehouse_stocks.find_by_owner_and_medicine(warehouse_id, medicine_id)
        available = record.available_quantity() if record else 0
        if available < quantity:
            logger.warning("Reservation refused for %s at %s: required %s, available %s",
                           medicine_id, warehouse_id, quantity, available)
            raise InsufficientStock(medicine_id, quantity, available)

        plan = plan_reservation(record, quantity)
        for i, take in plan:
            record.reserve_on(i, take)
        record.assert_invariants()
        await uow.warehouse_stocks.save(record)

    allocations = [{"batch_name": record.batches[i].batch_name, "quantity": take} for i, take in plan]
    logger.info("Reserved %s of %s at warehouse %s: %s", quantity, medicine_id, warehouse_id, allocations)
    return allocations


async def release(uow: UnitOfWork, warehouse_id: str, medicine_id: str, quantity: int) -> int:
    """
    Lift up to quantity of reservations in FEFR order. Returns the amount released.
    A shortfall is logged, never raised.
    """
    if quantity <= 0:
        return 0

    async with uow.transaction():
        record = await uow.warehouse_stocks.find_by_owner_and_medicine(warehouse_id, medicine_id)
        if record is None:
            logger.warning("Release of %s for %s at %s skipped: no live stock record",
                           quantity, medicine_id, warehouse_id)
            return 0

        plan = plan_release(record, quantity)
        for i, take in plan:
            record.release_on(i, take)
        if plan:
            await uow.warehouse_stocks.save(record)

    released = sum(take for _, take in plan)
    if released < quantity:
        logger.warning("Release shortfall for %s at %s: requested %s, released %s",
                       medicine_id, warehouse_id, quantity, released)
    else:
        logger.info("Released %s of %s at warehouse %s", released, medicine_id, warehouse_id)
    return released
