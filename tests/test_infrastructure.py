# tests/test_infrastructure.py
"""Unit of work semantics, the HTTP error decorator and mail notifications."""
import pytest
from fastapi import HTTPException

from app.services.notification_service import (
    REQUIREMENT_STATUS, SHIPMENT_DISPATCHED, Notifier, render,
)
from app.utiles.decoratores import handle_exceptions
from app.utiles.exceptions import (
    AlreadyReceived, ConcurrentUpdate, InsufficientStock, NotFound, StockInconsistency,
)
from tests.factories import seed_warehouse_batch


# ---------------- unit of work ----------------
@pytest.mark.asyncio
async def test_exception_rolls_back_every_write(uow):
    with pytest.raises(NotFound):
        async with uow.transaction():
            await seed_warehouse_batch(uow)
            raise NotFound("boom")
    assert uow.state["warehouse_stocks"] == {}
    assert uow.rollbacks == 1


@pytest.mark.asyncio
async def test_nested_transaction_joins_outer_one(uow):
    async with uow.transaction():
        await seed_warehouse_batch(uow, medicine_id="med-para")
        await seed_warehouse_batch(uow, medicine_id="med-amox")
        assert uow.state["warehouse_stocks"] == {}
    assert uow.commits == 1
    assert len(uow.state["warehouse_stocks"]) == 2


@pytest.mark.asyncio
async def test_stale_save_is_a_concurrent_update(uow):
    await seed_warehouse_batch(uow)
    stale = await uow.warehouse_stocks.find_by_owner_and_medicine("wh-1", "med-para")
    fresh = await uow.warehouse_stocks.find_by_owner_and_medicine("wh-1", "med-para")

    fresh.reserve_on(0, 10)
    await uow.warehouse_stocks.save(fresh)

    stale.reserve_on(0, 95)
    with pytest.raises(ConcurrentUpdate):
        await uow.warehouse_stocks.save(stale)
    record = uow.warehouse_stock("wh-1", "med-para")
    assert record.reserved_quantity() == 10
    assert record.version == 1


# ---------------- decorator ----------------
@pytest.mark.asyncio
@pytest.mark.parametrize("error, status", [
    (NotFound("gone"), 404),
    (InsufficientStock("med-para", 5, 1), 409),
    (AlreadyReceived("again"), 409),
    (ConcurrentUpdate("race"), 409),
    (StockInconsistency("bug"), 500),
    (RuntimeError("unexpected"), 500),
])
async def test_handle_exceptions_maps_errors(error, status):
    @handle_exceptions
    async def endpoint():
        raise error

    with pytest.raises(HTTPException) as exc:
        await endpoint()
    assert exc.value.status_code == status


def test_handle_exceptions_wraps_sync_functions():
    @handle_exceptions
    def endpoint():
        raise NotFound("gone")

    with pytest.raises(HTTPException) as exc:
        endpoint()
    assert exc.value.detail == "gone"


# ---------------- notifications ----------------
def test_render_templates():
    subject, body = render(REQUIREMENT_STATUS, {"requirement_id": "R1", "status": "Rejected", "recipient_name": "City"})
    assert "R1" in subject and "Rejected" in subject
    assert body.startswith("Hi City")
    assert "contact the warehouse" in body

    subject, _ = render(SHIPMENT_DISPATCHED, {"shipment_id": "SHP1", "requirement_id": "R1", "logistic_id": "L1"})
    assert "SHP1" in subject

    with pytest.raises(ValueError):
        render("unknown", {})


@pytest.mark.asyncio
async def test_notify_swallows_delivery_failures(monkeypatch):
    notifier = Notifier(host="smtp.invalid")

    def _broken(*args):
        raise OSError("connection refused")

    monkeypatch.setattr(notifier, "_send", _broken)
    await notifier.notify("a@example.org", REQUIREMENT_STATUS, {"requirement_id": "R1", "status": "Approved"})


@pytest.mark.asyncio
async def test_notify_sends_rendered_mail(monkeypatch):
    notifier = Notifier(host="smtp.example.org")
    sent = []
    monkeypatch.setattr(notifier, "_send", lambda to, subject, body: sent.append((to, subject)))

    await notifier.notify("a@example.org", REQUIREMENT_STATUS, {"requirement_id": "R1", "status": "Approved"})
    await notifier.notify(None, REQUIREMENT_STATUS, {"requirement_id": "R1", "status": "Approved"})

    assert sent == [("a@example.org", "Requirement R1 is Approved")]


@pytest.mark.asyncio
async def test_dispatch_skips_without_smtp_host(monkeypatch):
    notifier = Notifier(host="")
    monkeypatch.setattr(notifier, "_send", lambda *a: pytest.fail("must not send"))
    notifier.dispatch("a@example.org", REQUIREMENT_STATUS, {"requirement_id": "R1", "status": "Approved"})
