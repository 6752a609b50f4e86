# app/services/receipt_service.py
from app.db.unit_of_work import UnitOfWork
from app.models.logistic import Logistic, ReceivedStatus, ShipmentStatus
from app.models.logs import UsageLogEntry, UsageType
from app.models.requirement import RequirementStatus
from app.models.stock import InstitutionBatch, InstitutionStock
from app.services.notification_service import SHIPMENT_RECEIVED, notify_party
from app.utiles.custom_helpers import _now_utc
from app.utiles.exceptions import AlreadyReceived, Forbidden, NotFound
from app.utiles.logger import get_logger

logger = get_logger(__name__)


async def receive_shipment(uow: UnitOfWork, logistic_id: str, institution_id: str) -> Logistic:
    """
    Book a shipment into the institution's stock.

    Every shipped batch becomes a new institution batch priced at the warehouse's selling price,
    with one addition entry in the usage log. The logistic and its requirement are marked Received.
    A second call for the same shipment raises AlreadyReceived and changes nothing.
    """
    async with uow.transaction():
        logistic = await uow.logistics.get(logistic_id)
        if not logistic:
            raise NotFound("Logistic record not found")
        if logistic.institution_id != institution_id:
            raise Forbidden("Forbidden: This shipment is not addressed to your institution")
        if logistic.received_status == ReceivedStatus.RECEIVED.value:
            raise AlreadyReceived(f"Shipment {logistic.shipment_id} has already been received")
        if logistic.status != ShipmentStatus.DELIVERED.value:
            logger.warning("Shipment %s received while transport status is %s", logistic.shipment_id, logistic.status)

        now = _now_utc()
        logs = []
        for medicine in logistic.medicines:
            record = await uow.institution_stocks.find_by_owner_and_medicine(institution_id, medicine.medicine_id)
            created = record is None
            if created:
                record = InstitutionStock(institution_id=institution_id, medicine_id=medicine.medicine_id)

            for snap in medicine.stocks:
                record.append_batch(InstitutionBatch(
                    warehouse_id=logistic.warehouse_id,
                    batch_name=snap.batch_number,
                    expiry_date=snap.expiry_date,
                    packet_size=snap.packet_size,
                    current_quantity=snap.quantity,
                    quantity_received=snap.quantity,
                    purchase_price=snap.selling_price,
                    mrp=snap.mrp,
                    received_date=now,
                ))
                logs.append(UsageLogEntry(
                    institution_id=institution_id, medicine_id=medicine.medicine_id,
                    batch_name=snap.batch_number, quantity=snap.quantity, type=UsageType.ADDITION,
                ))

            if created:
                await uow.institution_stocks.add(record)
            else:
                await uow.institution_stocks.save(record)

        await uow.usage_logs.add_many(logs)

        logistic.received_status = ReceivedStatus.RECEIVED
        for leg in logistic.vehicles:
            if leg.timestamps.unloaded_at is None:
                leg.timestamps.unloaded_at = now
        logistic.updated_at = now
        await uow.logistics.save(logistic)

        requirement = await uow.requirements.get(logistic.requirement_id)
        if requirement:
            requirement.set_status(RequirementStatus.RECEIVED)
            await uow.requirements.save(requirement)
        else:
            logger.warning("Requirement %s of shipment %s not found while receiving",
                           logistic.requirement_id, logistic.shipment_id)

    logger.info("Shipment %s received by institution %s (%d batches)",
                logistic.shipment_id, institution_id, len(logs))

    await notify_party(uow, "warehouse", logistic.warehouse_id, SHIPMENT_RECEIVED, {
        "shipment_id": logistic.shipment_id,
        "requirement_id": logistic.requirement_id,
        "logistic_id": logistic.logistic_id,
    })
    return logistic
