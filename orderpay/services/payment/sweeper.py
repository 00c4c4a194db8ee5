"""Periodic expiry of ONLINE payments whose link deadline has passed."""

import asyncio
import time

from orderpay.common.errors import ConflictError
from orderpay.common.logging import logger, payment_log_context
from orderpay.common.metrics import expiry_sweep_duration_seconds
from orderpay.common.retry import call_with_retry
from orderpay.common.state_machine import PENDING
from orderpay.common.tracing import worker_span
from orderpay.services.payment.service import PaymentLifecycleEngine


class ExpirySweeper:
    """Scans PENDING payments every `interval_seconds` and expires stale links."""

    def __init__(self, engine: PaymentLifecycleEngine, interval_seconds: float = 60.0) -> None:
        self.engine = engine
        self.interval_seconds = interval_seconds

    async def sweep_once(self) -> int:
        """Run one scan and return how many payments were expired."""

        start = time.perf_counter()
        with worker_span("expiry_sweep") as span:
            pending = await call_with_retry(
                self.engine.retry_policy, self.engine.store.list_by_status, PENDING, dependency="store"
            )
            now = self.engine.clock()
            expired = 0
            for payment in pending:
                if not payment.link_expired(now):
                    continue
                with payment_log_context(order_id=payment.order_id, payment_id=payment.payment_id):
                    try:
                        await self.engine.expire(payment)
                        expired += 1
                    except ConflictError as exc:
                        # Another actor committed first.
                        logger.info("sweep skipped payment_id=%s status=%s", payment.payment_id, exc.current_status)
                    except Exception as exc:
                        logger.exception("sweep failed payment_id=%s error=%s", payment.payment_id, exc)
            span.set_attribute("orderpay.scanned", len(pending))
            span.set_attribute("orderpay.expired", expired)
        expiry_sweep_duration_seconds.labels(service=self.engine.service_name).observe(time.perf_counter() - start)
        if expired:
            logger.info("expiry sweep expired=%s scanned=%s", expired, len(pending))
        return expired

    async def run_forever(self) -> None:
        while True:
            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("expiry sweep error=%s", exc)
            await asyncio.sleep(self.interval_seconds)
