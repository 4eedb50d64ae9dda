"""
Fire-and-forget delivery of deal events to notification consumers.

The service hands every persisted change to NotificationDispatcher.emit(),
which schedules delivery and returns immediately. Each consumer gets its own
retried delivery; consumers run concurrently with
asyncio.gather(return_exceptions=True) so one failing consumer never blocks
another.

Fault isolation guarantee: a delivery failure is logged and dropped. It can
never fail, delay or roll back the transition that produced the event.
"""

import asyncio
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

import structlog
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from .config import config
from .models.events import DealEvent

logger = structlog.get_logger(__name__)


@runtime_checkable
class NotificationConsumer(Protocol):
    """Outbound port for deal events (socket gateway, queue, mailer...)."""

    async def on_deal_event(self, event: DealEvent) -> None:
        ...


class NotificationDispatcher:
    """
    Schedules event delivery to registered consumers.

    Delivery tasks are tracked until they finish so drain() can await them
    on shutdown and in tests.
    """

    def __init__(
        self,
        consumers: Iterable[NotificationConsumer] = (),
        max_attempts: int | None = None,
        wait: wait_base | None = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            consumers: Initial consumers
            max_attempts: Delivery attempts per consumer (defaults to
                          config.NOTIFY_MAX_ATTEMPTS)
            wait: tenacity wait strategy between attempts
        """
        self.consumers: list[NotificationConsumer] = list(consumers)
        self.max_attempts = max_attempts or config.NOTIFY_MAX_ATTEMPTS
        self.wait = wait or wait_exponential(multiplier=1, min=1, max=10)
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, consumer: NotificationConsumer) -> None:
        self.consumers.append(consumer)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def emit(self, event: DealEvent) -> None:
        """
        Schedule delivery of event to every consumer and return immediately.

        Must be called from a running event loop.
        """
        if not self.consumers:
            return
        task = asyncio.create_task(self._deliver_all(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver_all(self, event: DealEvent) -> None:
        consumers = list(self.consumers)
        outcomes = await asyncio.gather(
            *(self._deliver(consumer, event) for consumer in consumers),
            return_exceptions=True,
        )
        for consumer, outcome in zip(consumers, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    'notifications.delivery_failed',
                    event_id=str(event.id),
                    event_type=event.type.value,
                    deal_id=event.deal_id,
                    consumer=type(consumer).__name__,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                    attempts=self.max_attempts,
                )
            else:
                logger.debug(
                    'notifications.delivered',
                    event_type=event.type.value,
                    deal_id=event.deal_id,
                    consumer=type(consumer).__name__,
                )

    async def _deliver(self, consumer: NotificationConsumer, event: DealEvent) -> None:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            reraise=True,
        ):
            with attempt:
                await consumer.on_deal_event(event)
