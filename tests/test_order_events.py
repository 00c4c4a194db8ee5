"""Order lifecycle notifications: refunds, COD completion and redelivery."""

from decimal import Decimal

import pytest
from prometheus_client import REGISTRY

from orderpay.common.errors import ConflictError, NotFoundError, TransientInfrastructureError
from orderpay.services.payment.schemas import OrderEvent


async def _successful_online(engine, order_id):
    payment = await engine.initiate(order_id, Decimal("75.00"), "ONLINE")
    return await engine.process(payment.payment_id, True, None)


@pytest.mark.asyncio
async def test_scenario_b_cod_delivered_completes_without_event(engine, store, bus):
    payment = await engine.initiate("O2", Decimal("50.00"), "COD")

    await engine.handle_order_event("O2", "DELIVERED")

    assert store.get(payment.payment_id).status == "SUCCESS"
    assert bus.published == []


@pytest.mark.asyncio
async def test_scenario_c_return_after_success_refunds(engine, store, bus):
    payment = await _successful_online(engine, "O3")
    assert [e.status for e in bus.events] == ["PAYMENT_RECEIVED"]

    await engine.handle_order_event("O3", "RETURNED")

    assert store.get(payment.payment_id).status == "REFUNDED"
    assert len(bus.published) == 1


@pytest.mark.asyncio
async def test_duplicate_cancellation_is_silent_noop(engine, store, bus):
    """Redelivered CANCELLED after a refund leaves REFUNDED and raises nothing."""

    payment = await _successful_online(engine, "O10")

    await engine.handle_order_event("O10", "CANCELLED")
    await engine.handle_order_event("O10", "CANCELLED")

    refunded = store.get(payment.payment_id)
    assert refunded.status == "REFUNDED"
    assert refunded.state_version == 2
    assert len(bus.published) == 1


@pytest.mark.asyncio
async def test_concurrent_duplicate_refund_is_noop(engine, store, monkeypatch):
    """Two deliveries both read SUCCESS; the one that loses the guarded write is a no-op."""

    payment = await _successful_online(engine, "O11")
    stale_read = store.get_by_order_id("O11")
    store.transition(payment.payment_id, "SUCCESS", "REFUNDED")
    monkeypatch.setattr(store, "get_by_order_id", lambda order_id: stale_read)

    await engine.handle_order_event("O11", "CANCELLED")

    monkeypatch.undo()
    assert store.get(payment.payment_id).status == "REFUNDED"


@pytest.mark.asyncio
@pytest.mark.parametrize("order_status", ["CANCELLED", "RETURNED"])
async def test_cancellation_of_unpaid_payment_does_nothing(engine, store, order_status):
    payment = await engine.initiate("O12", Decimal("10"), "ONLINE")
    await engine.process(payment.payment_id, False, "declined")

    await engine.handle_order_event("O12", order_status)

    assert store.get(payment.payment_id).status == "FAILED"


@pytest.mark.asyncio
async def test_cancellation_of_pending_payment_does_nothing(engine, store):
    payment = await engine.initiate("O13", Decimal("10"), "COD")

    await engine.handle_order_event("O13", "CANCELLED")

    assert store.get(payment.payment_id).status == "PENDING"


@pytest.mark.asyncio
async def test_delivered_for_online_payment_is_ignored(engine, store, bus):
    payment = await engine.initiate("O14", Decimal("10"), "ONLINE")

    await engine.handle_order_event("O14", "DELIVERED")

    assert store.get(payment.payment_id).status == "PENDING"
    assert bus.published == []


@pytest.mark.asyncio
async def test_duplicate_delivered_for_cod_is_noop(engine, store):
    payment = await engine.initiate("O15", Decimal("10"), "COD")

    await engine.handle_order_event("O15", "DELIVERED")
    await engine.handle_order_event("O15", "DELIVERED")

    completed = store.get(payment.payment_id)
    assert completed.status == "SUCCESS"
    assert completed.state_version == 1


@pytest.mark.asyncio
async def test_unknown_order_is_not_found(engine):
    with pytest.raises(NotFoundError):
        await engine.handle_order_event("missing", "CANCELLED")


@pytest.mark.asyncio
async def test_consumer_entrypoint_accepts_wire_payload(engine, store):
    payment = await engine.initiate("O16", Decimal("10"), "COD")

    await engine.on_order_event(OrderEvent.model_validate({"orderId": "O16", "status": "DELIVERED"}))

    assert store.get(payment.payment_id).status == "SUCCESS"


@pytest.mark.asyncio
async def test_compensator_rejects_non_successful_payment(engine):
    payment = await engine.initiate("O17", Decimal("10"), "COD")

    with pytest.raises(ConflictError) as excinfo:
        await engine.compensator.refund(payment)
    assert excinfo.value.current_status == "PENDING"


@pytest.mark.asyncio
async def test_compensator_retries_transient_store_failure(engine, store, monkeypatch):
    payment = await _successful_online(engine, "O18")
    real_transition = store.transition
    calls = []

    def flaky_transition(*args, **kwargs):
        calls.append(args)
        if len(calls) < 3:
            raise TransientInfrastructureError("connection reset")
        return real_transition(*args, **kwargs)

    monkeypatch.setattr(store, "transition", flaky_transition)

    refunded = await engine.compensator.refund(payment)

    assert refunded.status == "REFUNDED"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_compensator_surfaces_exhausted_retries(engine, store, monkeypatch):
    payment = await _successful_online(engine, "O19")

    def down(*args, **kwargs):
        raise TransientInfrastructureError("database down")

    monkeypatch.setattr(store, "transition", down)

    with pytest.raises(TransientInfrastructureError):
        await engine.handle_order_event("O19", "CANCELLED")
    monkeypatch.undo()
    assert store.get(payment.payment_id).status == "SUCCESS"


@pytest.mark.asyncio
async def test_events_for_unknown_orders_are_counted_as_consumed(engine):
    labels = {"service": "test", "status": "RETURNED"}
    before = REGISTRY.get_sample_value("order_events_consumed_total", labels) or 0.0

    with pytest.raises(NotFoundError):
        await engine.handle_order_event("missing-order", "RETURNED")

    assert REGISTRY.get_sample_value("order_events_consumed_total", labels) == before + 1
