"""Kafka producer/consumer helpers.

Payloads on both topics are bare JSON objects (no envelope) so they stay
wire-compatible with the order service. Messages are keyed by order id to keep
per-order ordering within a partition.
"""

import asyncio
import json

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.errors import KafkaError
from pydantic import BaseModel, ValidationError

from orderpay.common.config import settings
from orderpay.common.errors import TransientInfrastructureError
from orderpay.common.logging import logger, payment_log_context
from orderpay.common.tracing import worker_span


class KafkaBus:
    """Lazy Kafka producer wrapper used to publish outcome events."""

    def __init__(self) -> None:
        self._producer: AIOKafkaProducer | None = None
        self._start_lock = asyncio.Lock()

    def _make_producer(self) -> AIOKafkaProducer:
        return AIOKafkaProducer(bootstrap_servers=settings.kafka_bootstrap_servers)

    async def producer(self) -> AIOKafkaProducer:
        # HTTP handlers and the sweeper publish concurrently; only one may start the producer.
        async with self._start_lock:
            if self._producer is None:
                producer = self._make_producer()
                await producer.start()
                self._producer = producer
        return self._producer

    async def publish(self, topic: str, event: BaseModel, key: str | None = None) -> None:
        try:
            producer = await self.producer()
            await producer.send_and_wait(
                topic,
                json.dumps(event.model_dump(mode="json", by_alias=True)).encode("utf-8"),
                key=key.encode("utf-8") if key else None,
            )
        except (KafkaError, OSError, asyncio.TimeoutError) as exc:
            raise TransientInfrastructureError(f"publish to {topic} failed: {exc}") from exc

    async def close(self) -> None:
        if self._producer:
            await self._producer.stop()
            self._producer = None


async def make_consumer(topic: str, group_id: str) -> AIOKafkaConsumer:
    """Create a configured Kafka consumer for one topic/group."""

    consumer = AIOKafkaConsumer(
        topic,
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id=group_id,
        auto_offset_reset="earliest",
        enable_auto_commit=False,
    )
    await consumer.start()
    return consumer


async def dispatch_message(topic: str, raw: bytes, model: type[BaseModel], handler) -> bool:
    """Decode one record into `model` and hand it to `handler`.

    Returns False when the record was dropped. Undecodable payloads and handler
    failures are logged and dropped; redelivery is not requested.
    """

    try:
        event = model.model_validate(json.loads(raw.decode("utf-8")))
    except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
        logger.error("invalid_event topic=%s error=%s", topic, exc)
        return False

    order_id = getattr(event, "order_id", None)
    with payment_log_context(order_id=order_id), worker_span("consume " + topic, order_id=order_id):
        try:
            logger.info("event_received topic=%s event=%s", topic, event.model_dump(mode="json", by_alias=True))
            await handler(event)
            return True
        except Exception as exc:
            logger.error("handler_error topic=%s event=%s error=%s", topic, event, exc)
            return False


async def consume_forever(
    topic: str,
    group_id: str,
    model: type[BaseModel],
    handler,
) -> None:
    """Continuously consume one topic and pass parsed events to `handler`.

    Errors in individual messages are logged and processing continues; commit is
    done in batches to keep throughput reasonable.
    """

    while True:
        consumer = None
        try:
            consumer = await make_consumer(topic, group_id)
            while True:
                results = await consumer.getmany(timeout_ms=500, max_records=50)
                for _, messages in results.items():
                    for msg in messages:
                        await dispatch_message(topic, msg.value, model, handler)
                await consumer.commit()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("consumer_loop_error topic=%s group=%s error=%s", topic, group_id, exc)
            await asyncio.sleep(2)
        finally:
            if consumer is not None:
                await consumer.stop()
            await asyncio.sleep(0)
