from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .channel import TransportError
from .events import Event
from .metrics import DELIVERIES, EVENTS
from .registry import SubscriberRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryFailure:
    channel_id: str
    reason: str


@dataclass
class DeliveryReport:
    event_type: str
    attempted: int = 0
    succeeded: int = 0
    failed: List[DeliveryFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class BroadcastDispatcher:
    """Fan an event out to every registered subscriber.

    Subscribers are written to concurrently from a snapshot of the registry.
    A subscriber whose write fails is unregistered on the spot and recorded
    in the report; the others still receive the event.
    """

    def __init__(self, registry: SubscriberRegistry) -> None:
        self.registry = registry

    async def publish(self, event: Event) -> DeliveryReport:
        subscribers = self.registry.snapshot()
        EVENTS.labels(event.type).inc()
        report = DeliveryReport(event_type=event.type, attempted=len(subscribers))
        if not subscribers:
            logger.debug("no subscribers for %s event", event.type)
            return report

        results = await asyncio.gather(
            *[self._deliver(subscriber, event) for subscriber in subscribers]
        )
        for error in results:
            if error is None:
                report.succeeded += 1
            else:
                report.failed.append(DeliveryFailure(error.channel_id, error.reason))
        DELIVERIES.labels("ok").inc(report.succeeded)
        DELIVERIES.labels("failed").inc(len(report.failed))
        logger.info(
            "published %s event to %d/%d subscriber(s)",
            event.type,
            report.succeeded,
            report.attempted,
        )
        return report

    async def _deliver(self, subscriber, event: Event) -> Optional[TransportError]:
        channel_id = str(getattr(subscriber, "id", id(subscriber)))
        try:
            error = await subscriber.send(event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            error = TransportError(channel_id, f"send raised {exc!r}")
        if error is not None:
            self.registry.unregister(subscriber)
            logger.warning(
                "dropping subscriber %s after failed delivery: %s",
                error.channel_id,
                error.reason,
            )
        return error
