"""Periodic expiry sweep."""

from decimal import Decimal

import pytest

from orderpay.services.payment.sweeper import ExpirySweeper


@pytest.fixture
def sweeper(engine):
    return ExpirySweeper(engine, interval_seconds=0)


@pytest.mark.asyncio
async def test_sweep_expires_only_stale_online_payments(engine, sweeper, store, clock, bus):
    stale = await engine.initiate("O-stale", Decimal("10"), "ONLINE")
    cod = await engine.initiate("O-cod", Decimal("10"), "COD")
    clock.advance(minutes=4)
    fresh = await engine.initiate("O-fresh", Decimal("10"), "ONLINE")
    clock.advance(minutes=2)

    expired = await sweeper.sweep_once()

    assert expired == 1
    assert store.get(stale.payment_id).status == "EXPIRED"
    assert store.get(stale.payment_id).reason == "payment link expired"
    assert store.get(cod.payment_id).status == "PENDING"
    assert store.get(fresh.payment_id).status == "PENDING"
    assert [e.model_dump(by_alias=True) for e in bus.events] == [
        {"orderId": "O-stale", "status": "PAYMENT_FAILED", "reason": "payment link expired"}
    ]


@pytest.mark.asyncio
async def test_sweep_never_touches_cod_even_when_old(engine, sweeper, store, clock):
    cod = await engine.initiate("O-cod-old", Decimal("10"), "COD")
    clock.advance(days=3)

    assert await sweeper.sweep_once() == 0
    assert store.get(cod.payment_id).status == "PENDING"


@pytest.mark.asyncio
async def test_sweep_is_idempotent(engine, sweeper, clock, bus):
    await engine.initiate("O-once", Decimal("10"), "ONLINE")
    clock.advance(minutes=10)

    assert await sweeper.sweep_once() == 1
    assert await sweeper.sweep_once() == 0
    assert len(bus.published) == 1


@pytest.mark.asyncio
async def test_sweep_failure_on_one_payment_does_not_abort_scan(engine, sweeper, store, clock, monkeypatch):
    first = await engine.initiate("O-a", Decimal("10"), "ONLINE")
    second = await engine.initiate("O-b", Decimal("10"), "ONLINE")
    clock.advance(minutes=6)
    real_expire = engine.expire

    async def flaky_expire(payment):
        if payment.payment_id == first.payment_id:
            raise RuntimeError("unexpected")
        return await real_expire(payment)

    monkeypatch.setattr(engine, "expire", flaky_expire)

    assert await sweeper.sweep_once() == 1
    assert store.get(first.payment_id).status == "PENDING"
    assert store.get(second.payment_id).status == "EXPIRED"


@pytest.mark.asyncio
async def test_sweep_skips_payment_confirmed_after_scan(engine, sweeper, store, clock, monkeypatch, bus):
    """A payment finalized between the scan read and the guarded write is left alone."""

    payment = await engine.initiate("O-race", Decimal("10"), "ONLINE")
    clock.advance(minutes=6)
    stale_scan = store.list_by_status("PENDING")
    store.transition(payment.payment_id, "PENDING", "SUCCESS")
    monkeypatch.setattr(store, "list_by_status", lambda status: stale_scan)

    assert await sweeper.sweep_once() == 0
    monkeypatch.undo()
    assert store.get(payment.payment_id).status == "SUCCESS"
    assert bus.published == []
