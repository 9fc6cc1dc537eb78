"""Process-wide set of open push channels."""

from __future__ import annotations

import logging
import threading
from typing import Generic, Hashable, TypeVar

from .metrics import SUBSCRIBERS

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=Hashable)


class SubscriberRegistry(Generic[S]):
    """Identity set of subscribers.

    Members are compared by identity (``PushChannel`` does not override
    ``__eq__``), so registering the same handle twice has no extra effect.
    Iteration happens over :meth:`snapshot`, never over the live set.
    """

    def __init__(self, track_metrics: bool = True) -> None:
        self._members: set[S] = set()
        self._lock = threading.Lock()
        self._track_metrics = track_metrics

    def register(self, subscriber: S) -> None:
        with self._lock:
            self._members.add(subscriber)
            count = len(self._members)
        self._publish_size(count)

    def unregister(self, subscriber: S) -> None:
        with self._lock:
            self._members.discard(subscriber)
            count = len(self._members)
        self._publish_size(count)

    def size(self) -> int:
        with self._lock:
            return len(self._members)

    def snapshot(self) -> frozenset[S]:
        with self._lock:
            return frozenset(self._members)

    def close_all(self, reason: str = "server shutdown") -> int:
        """Close every member; their close handlers unregister them."""

        members = self.snapshot()
        for subscriber in members:
            close = getattr(subscriber, "close", None)
            if close is not None:
                close(reason)
            self.unregister(subscriber)
        if members:
            logger.info("closed %d push channel(s): %s", len(members), reason)
        return len(members)

    def clear(self) -> None:
        with self._lock:
            self._members.clear()
        self._publish_size(0)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, subscriber: object) -> bool:
        with self._lock:
            return subscriber in self._members

    def _publish_size(self, count: int) -> None:
        if self._track_metrics:
            SUBSCRIBERS.set(count)
