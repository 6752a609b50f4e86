# app/services/shipment_service.py
"""
Shipment fulfillment: turns an approved requirement's reservations into a logistic record,
physically removing the units from the warehouse batches (FEFO) in the same transaction.
"""
from typing import Optional

from app.db.unit_of_work import UnitOfWork
from app.models.logistic import (
    CreateShipment, Logistic, ReceivedStatus, STATUS_RANK, ShipmentStatus, ShippedBatch, ShippedMedicine,
    UpdateShipmentStatus,
)
from app.models.logs import ReceiptLogEntry, ReceiptType
from app.models.principal import Principal, Role
from app.models.requirement import Requirement, RequirementStatus
from app.models.stock import WarehouseStock
from app.services.approval_policy import ApprovalPolicy, get_policy
from app.services.notification_service import SHIPMENT_DELIVERED, SHIPMENT_DISPATCHED, notify_party
from app.utiles.custom_helpers import _gen_shipment_id, _now_utc
from app.utiles.exceptions import (
    Forbidden, InvalidStateTransition, NotFound, StockInconsistency, ValidationError,
)
from app.utiles.logger import get_logger

logger = get_logger(__name__)


def _inconsistent(message: str) -> StockInconsistency:
    logger.error(message)
    return StockInconsistency(message)


def _ship_line(record: WarehouseStock, quantity: int, logs: list) -> ShippedMedicine:
    """Deduct quantity from reserved batches, soonest expiry first, and snapshot what left."""
    if record.reserved_quantity() < quantity:
        raise _inconsistent(
            f"Stock {record.stock_id} holds {record.reserved_quantity()} reserved units "
            f"but {quantity} were approved for {record.medicine_id}"
        )

    snapshots = []
    remaining = quantity
    for i in record.fefo_order():
        if remaining == 0:
            break
        batch = record.batches[i]
        take = min(remaining, batch.reserved_quantity, batch.quantity)
        if take <= 0:
            continue
        snapshots.append(ShippedBatch(
            batch_number=batch.batch_name,
            expiry_date=batch.expiry_date,
            quantity=take,
            packet_size=batch.packet_size,
            selling_price=batch.selling_price,
            mrp=batch.mrp,
        ))
        logs.append(ReceiptLogEntry(
            warehouse_id=record.warehouse_id, medicine_id=record.medicine_id,
            batch_name=batch.batch_name, quantity=take, type=ReceiptType.SALE,
        ))
        record.ship_from(i, take)
        remaining -= take

    if remaining:
        raise _inconsistent(
            f"Could not ship {remaining} of {quantity} units of {record.medicine_id} from reserved batches "
            f"of stock {record.stock_id}"
        )
    record.assert_invariants()
    return ShippedMedicine(medicine_id=record.medicine_id, stocks=snapshots)


async def create_shipment(uow: UnitOfWork, warehouse_id: str, payload: CreateShipment,
                          policy: Optional[ApprovalPolicy] = None) -> Logistic:
    """
    Ship every approved line of a requirement.
    Ledger deductions, the logistic record and the requirement update commit together.
    """
    policy = policy or get_policy()
    if not payload.vehicles:
        raise ValidationError("At least one vehicle is required")

    async with uow.transaction():
        shipment_id = (payload.shipment_id or "").strip()
        if not shipment_id:
            shipment_id = _gen_shipment_id()
        elif await uow.logistics.shipment_id_exists(shipment_id):
            raise ValidationError(f"Shipment ID '{shipment_id}' already exists")

        requirement: Requirement = await uow.requirements.get(payload.requirement_id)
        if not requirement:
            raise NotFound("Requirement not found")
        if requirement.warehouse_id != warehouse_id:
            raise Forbidden("Forbidden: This requirement is not addressed to your warehouse")
        if requirement.logistic_id:
            raise InvalidStateTransition("A shipment already exists for this requirement")
        if not policy.can_ship(requirement):
            raise InvalidStateTransition(
                f"Requirement {requirement.requirement_id} is {requirement.overall_status} and cannot be shipped"
            )

        shipped, logs = [], []
        for line in requirement.shippable_lines():
            record = await uow.warehouse_stocks.find_by_owner_and_medicine(warehouse_id, line.medicine_id)
            if record is None:
                raise _inconsistent(
                    f"No live stock record for approved medicine {line.medicine_id} at warehouse {warehouse_id}"
                )
            shipped.append(_ship_line(record, line.approved_quantity, logs))
            await uow.warehouse_stocks.save(record)

        logistic = Logistic(
            shipment_id=shipment_id,
            requirement_id=requirement.requirement_id,
            warehouse_id=warehouse_id,
            institution_id=requirement.institution_id,
            medicines=shipped,
            vehicles=payload.vehicles,
            status=ShipmentStatus.IN_TRANSIT,
            received_status=ReceivedStatus.PENDING,
        )
        await uow.logistics.add(logistic)
        await uow.receipt_logs.add_many(logs)

        requirement.logistic_id = logistic.logistic_id
        requirement.set_status(RequirementStatus.SHIPPED)
        await uow.requirements.save(requirement)

    logger.info("Shipment %s (%s) created for requirement %s: %s",
                logistic.shipment_id, logistic.logistic_id, requirement.requirement_id,
                {m.medicine_id: m.total_quantity() for m in shipped})

    await notify_party(uow, "institution", logistic.institution_id, SHIPMENT_DISPATCHED, {
        "shipment_id": logistic.shipment_id,
        "requirement_id": logistic.requirement_id,
        "logistic_id": logistic.logistic_id,
    })
    return logistic


async def update_shipment_status(uow: UnitOfWork, logistic_id: str, warehouse_id: str,
                                 payload: UpdateShipmentStatus) -> Logistic:
    """Advance the transport status. It never moves backwards and Delivered is final."""
    new_status = ShipmentStatus(payload.status).value

    async with uow.transaction():
        logistic = await uow.logistics.get(logistic_id)
        if not logistic:
            raise NotFound("Logistic record not found")
        if logistic.warehouse_id != warehouse_id:
            raise Forbidden("Forbidden: You cannot update this shipment")
        if logistic.received_status == ReceivedStatus.RECEIVED.value:
            raise InvalidStateTransition("Shipment has already been received by the institution")
        if STATUS_RANK[new_status] < STATUS_RANK[logistic.status]:
            raise InvalidStateTransition(f"Shipment status cannot move from {logistic.status} to {new_status}")
        if new_status == logistic.status:
            return logistic

        now = _now_utc()
        logistic.status = new_status
        logistic.updated_at = now
        if new_status == ShipmentStatus.DELIVERED.value:
            for leg in logistic.vehicles:
                if leg.timestamps.arrived_at is None:
                    leg.timestamps.arrived_at = now
            requirement = await uow.requirements.get(logistic.requirement_id)
            if requirement and requirement.overall_status == RequirementStatus.SHIPPED.value:
                requirement.set_status(RequirementStatus.DELIVERED)
                await uow.requirements.save(requirement)
        await uow.logistics.save(logistic)

    logger.info("Shipment %s status set to %s by warehouse %s", logistic.shipment_id, new_status, warehouse_id)

    if new_status == ShipmentStatus.DELIVERED.value:
        await notify_party(uow, "institution", logistic.institution_id, SHIPMENT_DELIVERED, {
            "shipment_id": logistic.shipment_id,
            "requirement_id": logistic.requirement_id,
            "logistic_id": logistic.logistic_id,
        })
    return logistic


async def get_logistic(uow: UnitOfWork, principal: Principal, logistic_id: str) -> Logistic:
    logistic = await uow.logistics.get(logistic_id)
    if not logistic:
        raise NotFound("Logistic record not found")
    allowed = (
        principal.is_admin
        or (principal.role == Role.WAREHOUSE and logistic.warehouse_id == principal.id)
        or (principal.role == Role.INSTITUTION and logistic.institution_id == principal.id)
    )
    if not allowed:
        raise Forbidden("Forbidden: You cannot view this shipment")
    return logistic
