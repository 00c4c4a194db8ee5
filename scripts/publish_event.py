"""Publish an order lifecycle event directly to the inbound Kafka topic.

Useful for manual duplicate-delivery and late-event testing.
"""

import argparse
import asyncio
import json
from pathlib import Path

from aiokafka import AIOKafkaProducer


async def publish(bootstrap_servers: str, topic: str, payload: dict) -> None:
    """Open producer, publish one message keyed by order id, close producer."""

    producer = AIOKafkaProducer(bootstrap_servers=bootstrap_servers)
    await producer.start()
    try:
        key = payload.get("orderId")
        await producer.send_and_wait(
            topic,
            json.dumps(payload).encode("utf-8"),
            key=key.encode("utf-8") if key else None,
        )
    finally:
        await producer.stop()


def main() -> None:
    """Parse CLI args and publish one order event, optionally several times."""

    parser = argparse.ArgumentParser(description="Publish an order event to Kafka.")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--topic", default="ORDER_EVENTS")
    parser.add_argument("--order-id", default=None)
    parser.add_argument("--status", choices=["CANCELLED", "RETURNED", "DELIVERED"], default=None)
    parser.add_argument("--file", dest="json_file", default=None, help="Path to raw JSON payload")
    parser.add_argument("--repeat", type=int, default=1, help="Publish the same payload N times")
    args = parser.parse_args()

    if args.json_file:
        payload = json.loads(Path(args.json_file).read_text())
    elif args.order_id and args.status:
        payload = {"orderId": args.order_id, "status": args.status}
    else:
        raise SystemExit("Provide --order-id and --status, or --file")

    for _ in range(max(1, args.repeat)):
        asyncio.run(publish(args.bootstrap_servers, args.topic, payload))
    print(f"Published {args.repeat}x to topic={args.topic}: {payload}")


if __name__ == "__main__":
    main()
