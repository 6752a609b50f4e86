# tests/test_fulfillment.py
"""Shipment, transport status, receipt and usage debit."""
from datetime import date

import pytest

from app.models.logistic import UpdateShipmentStatus
from app.models.principal import Principal, Role
from app.models.requirement import ApproveRequirement, LineDecision
from app.models.stock import LogUsage
from app.services import requirement_service, shipment_service
from app.services.receipt_service import receive_shipment
from app.services.usage_service import log_usage
from app.utiles.exceptions import (
    AlreadyReceived, Forbidden, InsufficientStock, InvalidStateTransition, NotFound, StockInconsistency,
    ValidationError,
)
from tests.factories import make_requirement, seed_warehouse_batch, shipment_request

pytestmark = pytest.mark.asyncio


async def _approved_requirement(uow, policy, lines=(("med-para", 40),), quantity=100):
    for medicine_id, _ in lines:
        await seed_warehouse_batch(uow, medicine_id=medicine_id, quantity=quantity)
    req = await make_requirement(uow, list(lines))
    await requirement_service.approve_requirement(uow, req.requirement_id, "wh-1", policy=policy)
    return req


# ---------------- scenario ----------------
async def test_request_ship_receive_use(uow, all_or_nothing):
    await seed_warehouse_batch(uow, batch_name="B1", quantity=100, expiry=date(2025, 12, 1))
    req = await make_requirement(uow, [("med-para", 40)])

    await requirement_service.approve_requirement(uow, req.requirement_id, "wh-1", policy=all_or_nothing)
    batch = uow.warehouse_stock("wh-1", "med-para").batches[0]
    assert (batch.quantity, batch.reserved_quantity) == (100, 40)

    logistic = await shipment_service.create_shipment(uow, "wh-1", shipment_request(req.requirement_id),
                                                      policy=all_or_nothing)
    batch = uow.warehouse_stock("wh-1", "med-para").batches[0]
    assert (batch.quantity, batch.reserved_quantity) == (60, 0)
    assert len(logistic.medicines) == 1
    assert [(s.batch_number, s.quantity) for s in logistic.medicines[0].stocks] == [("B1", 40)]
    assert logistic.status == "In Transit"
    assert logistic.received_status == "Pending"
    stored_req = uow.state["requirements"][req.requirement_id]
    assert stored_req["overall_status"] == "Shipped"
    assert stored_req["logistic_id"] == logistic.logistic_id

    await receive_shipment(uow, logistic.logistic_id, "inst-1")
    inst = uow.institution_stock("inst-1", "med-para")
    assert len(inst.batches) == 1
    assert inst.batches[0].current_quantity == 40
    assert inst.batches[0].purchase_price == 12.5
    assert inst.batches[0].warehouse_id == "wh-1"
    assert uow.state["requirements"][req.requirement_id]["overall_status"] == "Received"

    res = await log_usage(uow, "inst-1", LogUsage(medicine_id="med-para", quantity=15))
    assert res["remaining_quantity"] == 25
    assert uow.institution_stock("inst-1", "med-para").batches[0].current_quantity == 25
    usage = uow.logs("usage_logs", type="usage")
    assert len(usage) == 1
    assert (usage[0]["batch_name"], usage[0]["quantity"]) == ("B1", 15)


# ---------------- shipment ----------------
async def test_shipment_walks_reserved_batches_by_expiry(uow, all_or_nothing):
    await seed_warehouse_batch(uow, batch_name="LATE", quantity=10, expiry=date(2031, 1, 1))
    await seed_warehouse_batch(uow, batch_name="EARLY", quantity=10, expiry=date(2030, 1, 1))
    req = await make_requirement(uow, [("med-para", 15)])
    await requirement_service.approve_requirement(uow, req.requirement_id, "wh-1", policy=all_or_nothing)

    logistic = await shipment_service.create_shipment(uow, "wh-1", shipment_request(req.requirement_id),
                                                      policy=all_or_nothing)

    assert [(s.batch_number, s.quantity) for s in logistic.medicines[0].stocks] == [("EARLY", 10), ("LATE", 5)]
    record = uow.warehouse_stock("wh-1", "med-para")
    assert {b.batch_name: (b.quantity, b.reserved_quantity) for b in record.batches} == {
        "EARLY": (0, 0), "LATE": (5, 0),
    }
    sales = uow.logs("receipt_logs", type="sale")
    assert sorted((e["batch_name"], e["quantity"]) for e in sales) == [("EARLY", 10), ("LATE", 5)]


async def test_shipment_id_generated_or_taken_from_caller(uow, all_or_nothing):
    first = await _approved_requirement(uow, all_or_nothing)
    generated = await shipment_service.create_shipment(uow, "wh-1", shipment_request(first.requirement_id),
                                                       policy=all_or_nothing)
    assert generated.shipment_id.startswith("SHP")

    second = await make_requirement(uow, [("med-para", 10)])
    await requirement_service.approve_requirement(uow, second.requirement_id, "wh-1", policy=all_or_nothing)
    with pytest.raises(ValidationError):
        await shipment_service.create_shipment(
            uow, "wh-1", shipment_request(second.requirement_id, shipment_id=generated.shipment_id),
            policy=all_or_nothing,
        )
    custom = await shipment_service.create_shipment(
        uow, "wh-1", shipment_request(second.requirement_id, shipment_id="TRUCK-7"), policy=all_or_nothing,
    )
    assert custom.shipment_id == "TRUCK-7"


async def test_blank_shipment_id_falls_back_to_generated(uow, all_or_nothing):
    first = await _approved_requirement(uow, all_or_nothing)
    logistic = await shipment_service.create_shipment(
        uow, "wh-1", shipment_request(first.requirement_id, shipment_id="   "), policy=all_or_nothing,
    )
    assert logistic.shipment_id.startswith("SHP")

    second = await make_requirement(uow, [("med-para", 10)])
    await requirement_service.approve_requirement(uow, second.requirement_id, "wh-1", policy=all_or_nothing)
    other = await shipment_service.create_shipment(
        uow, "wh-1", shipment_request(second.requirement_id, shipment_id=""), policy=all_or_nothing,
    )
    assert other.shipment_id.startswith("SHP")
    assert other.shipment_id != logistic.shipment_id


async def test_shipment_preconditions(uow, all_or_nothing):
    pending = await make_requirement(uow, [("med-para", 10)])
    with pytest.raises(InvalidStateTransition):
        await shipment_service.create_shipment(uow, "wh-1", shipment_request(pending.requirement_id),
                                               policy=all_or_nothing)

    req = await _approved_requirement(uow, all_or_nothing)
    with pytest.raises(Forbidden):
        await shipment_service.create_shipment(uow, "wh-2", shipment_request(req.requirement_id),
                                               policy=all_or_nothing)
    with pytest.raises(NotFound):
        await shipment_service.create_shipment(uow, "wh-1", shipment_request("missing"), policy=all_or_nothing)

    no_vehicles = shipment_request(req.requirement_id)
    no_vehicles.vehicles = []
    with pytest.raises(ValidationError):
        await shipment_service.create_shipment(uow, "wh-1", no_vehicles, policy=all_or_nothing)

    await shipment_service.create_shipment(uow, "wh-1", shipment_request(req.requirement_id), policy=all_or_nothing)
    with pytest.raises(InvalidStateTransition):
        await shipment_service.create_shipment(uow, "wh-1", shipment_request(req.requirement_id),
                                               policy=all_or_nothing)


async def test_missing_reservation_aborts_whole_shipment(uow, all_or_nothing):
    req = await _approved_requirement(uow, all_or_nothing, lines=(("med-para", 40), ("med-amox", 10)))

    # simulate an accounting bug: the amox reservation disappeared behind the allocator's back
    doc = next(d for d in uow.state["warehouse_stocks"].values() if d["medicine_id"] == "med-amox")
    doc["batches"][0]["reserved_quantity"] = 4

    with pytest.raises(StockInconsistency):
        await shipment_service.create_shipment(uow, "wh-1", shipment_request(req.requirement_id),
                                               policy=all_or_nothing)

    para = uow.warehouse_stock("wh-1", "med-para").batches[0]
    assert (para.quantity, para.reserved_quantity) == (100, 40)
    assert uow.state["logistics"] == {}
    assert uow.logs("receipt_logs", type="sale") == []
    assert uow.state["requirements"][req.requirement_id]["overall_status"] == "Approved"


async def test_line_item_ships_only_approved_lines(uow, line_item):
    await seed_warehouse_batch(uow, medicine_id="med-para", quantity=100)
    await seed_warehouse_batch(uow, medicine_id="med-amox", quantity=100)
    req = await make_requirement(uow, [("med-para", 40), ("med-amox", 20)])
    await requirement_service.approve_requirement(
        uow, req.requirement_id, "wh-1",
        ApproveRequirement(medicines=[
            LineDecision(medicine_id="med-para", status="Approved", approved_quantity=30),
            LineDecision(medicine_id="med-amox", status="Rejected"),
        ]),
        policy=line_item,
    )

    logistic = await shipment_service.create_shipment(uow, "wh-1", shipment_request(req.requirement_id),
                                                      policy=line_item)

    assert [(m.medicine_id, m.total_quantity()) for m in logistic.medicines] == [("med-para", 30)]
    assert uow.warehouse_stock("wh-1", "med-amox").on_hand_quantity() == 100


# ---------------- transport status ----------------
async def test_transport_status_moves_forward_only(uow, all_or_nothing):
    req = await _approved_requirement(uow, all_or_nothing)
    logistic = await shipment_service.create_shipment(uow, "wh-1", shipment_request(req.requirement_id),
                                                      policy=all_or_nothing)

    with pytest.raises(InvalidStateTransition):
        await shipment_service.update_shipment_status(uow, logistic.logistic_id, "wh-1",
                                                      UpdateShipmentStatus(status="Pending"))
    with pytest.raises(Forbidden):
        await shipment_service.update_shipment_status(uow, logistic.logistic_id, "wh-2",
                                                      UpdateShipmentStatus(status="Delivered"))

    delivered = await shipment_service.update_shipment_status(uow, logistic.logistic_id, "wh-1",
                                                              UpdateShipmentStatus(status="Delivered"))
    assert delivered.status == "Delivered"
    assert all(v.timestamps.arrived_at is not None for v in delivered.vehicles)
    assert uow.state["requirements"][req.requirement_id]["overall_status"] == "Delivered"

    with pytest.raises(InvalidStateTransition):
        await shipment_service.update_shipment_status(uow, logistic.logistic_id, "wh-1",
                                                      UpdateShipmentStatus(status="In Transit"))

    await receive_shipment(uow, logistic.logistic_id, "inst-1")
    with pytest.raises(InvalidStateTransition):
        await shipment_service.update_shipment_status(uow, logistic.logistic_id, "wh-1",
                                                      UpdateShipmentStatus(status="Delivered"))


async def test_get_logistic_visibility(uow, all_or_nothing):
    req = await _approved_requirement(uow, all_or_nothing)
    logistic = await shipment_service.create_shipment(uow, "wh-1", shipment_request(req.requirement_id),
                                                      policy=all_or_nothing)
    for principal in (Principal(id="wh-1", role=Role.WAREHOUSE), Principal(id="inst-1", role=Role.INSTITUTION),
                      Principal(id="root", role=Role.ADMIN)):
        assert (await shipment_service.get_logistic(uow, principal, logistic.logistic_id)).shipment_id
    with pytest.raises(Forbidden):
        await shipment_service.get_logistic(uow, Principal(id="inst-2", role=Role.INSTITUTION), logistic.logistic_id)


# ---------------- receipt ----------------
async def test_receive_twice_is_refused_without_duplicates(uow, all_or_nothing):
    req = await _approved_requirement(uow, all_or_nothing)
    logistic = await shipment_service.create_shipment(uow, "wh-1", shipment_request(req.requirement_id),
                                                      policy=all_or_nothing)

    await receive_shipment(uow, logistic.logistic_id, "inst-1")
    with pytest.raises(AlreadyReceived):
        await receive_shipment(uow, logistic.logistic_id, "inst-1")

    assert len(uow.institution_stock("inst-1", "med-para").batches) == 1
    assert len(uow.logs("usage_logs", type="addition")) == 1


async def test_receive_checks_owner_and_stamps_unload(uow, all_or_nothing):
    req = await _approved_requirement(uow, all_or_nothing)
    logistic = await shipment_service.create_shipment(uow, "wh-1", shipment_request(req.requirement_id),
                                                      policy=all_or_nothing)

    with pytest.raises(Forbidden):
        await receive_shipment(uow, logistic.logistic_id, "inst-2")
    with pytest.raises(NotFound):
        await receive_shipment(uow, "missing", "inst-1")

    received = await receive_shipment(uow, logistic.logistic_id, "inst-1")
    assert received.received_status == "Received"
    assert received.status == "In Transit"
    assert all(v.timestamps.unloaded_at is not None for v in received.vehicles)


async def test_ship_then_receive_moves_exact_quantity(uow, all_or_nothing):
    await seed_warehouse_batch(uow, batch_name="A", quantity=30, expiry=date(2030, 1, 1))
    await seed_warehouse_batch(uow, batch_name="B", quantity=30, expiry=date(2030, 6, 1))
    req = await make_requirement(uow, [("med-para", 45)])
    await requirement_service.approve_requirement(uow, req.requirement_id, "wh-1", policy=all_or_nothing)
    before_on_hand = uow.warehouse_stock("wh-1", "med-para").on_hand_quantity()

    logistic = await shipment_service.create_shipment(uow, "wh-1", shipment_request(req.requirement_id),
                                                      policy=all_or_nothing)
    await receive_shipment(uow, logistic.logistic_id, "inst-1")

    assert before_on_hand - uow.warehouse_stock("wh-1", "med-para").on_hand_quantity() == 45
    assert uow.warehouse_stock("wh-1", "med-para").reserved_quantity() == 0
    assert uow.institution_stock("inst-1", "med-para").total_current_quantity() == 45
    assert len(uow.institution_stock("inst-1", "med-para").batches) == 2


# ---------------- usage ----------------
async def test_usage_over_draw_changes_nothing(uow, all_or_nothing):
    req = await _approved_requirement(uow, all_or_nothing)
    logistic = await shipment_service.create_shipment(uow, "wh-1", shipment_request(req.requirement_id),
                                                      policy=all_or_nothing)
    await receive_shipment(uow, logistic.logistic_id, "inst-1")

    with pytest.raises(InsufficientStock):
        await log_usage(uow, "inst-1", LogUsage(medicine_id="med-para", quantity=41))

    assert uow.institution_stock("inst-1", "med-para").total_current_quantity() == 40
    assert uow.logs("usage_logs", type="usage") == []


async def test_usage_by_stock_id_checks_owner(uow, all_or_nothing):
    req = await _approved_requirement(uow, all_or_nothing)
    logistic = await shipment_service.create_shipment(uow, "wh-1", shipment_request(req.requirement_id),
                                                      policy=all_or_nothing)
    await receive_shipment(uow, logistic.logistic_id, "inst-1")
    stock_id = uow.institution_stock("inst-1", "med-para").stock_id

    with pytest.raises(Forbidden):
        await log_usage(uow, "inst-2", LogUsage(stock_id=stock_id, quantity=1))
    with pytest.raises(ValidationError):
        await log_usage(uow, "inst-1", LogUsage(quantity=1))
    with pytest.raises(ValidationError):
        await log_usage(uow, "inst-1", LogUsage(stock_id=stock_id, quantity=0))
    with pytest.raises(NotFound):
        await log_usage(uow, "inst-1", LogUsage(medicine_id="med-amox", quantity=1))

    res = await log_usage(uow, "inst-1", LogUsage(stock_id=stock_id, quantity=40))
    assert res["remaining_quantity"] == 0
    # depleted batches stay on the record
    assert len(uow.institution_stock("inst-1", "med-para").batches) == 1
