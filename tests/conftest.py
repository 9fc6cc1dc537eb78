from __future__ import annotations

import asyncio
from typing import Callable, List, Optional

import pytest

from toolrelay.channel import TransportError
from toolrelay.events import Event


class FakeChannel:
    """In-memory subscriber recording every event it is sent."""

    def __init__(self, name: str, fail: bool = False, raises: bool = False) -> None:
        self.id = name
        self.fail = fail
        self.raises = raises
        self.received: List[Event] = []
        self.on_send: Optional[Callable[["FakeChannel"], None]] = None

    async def send(self, event: Event) -> Optional[TransportError]:
        if self.on_send is not None:
            self.on_send(self)
        if self.raises:
            raise BrokenPipeError("socket gone")
        if self.fail:
            return TransportError(self.id, "broken pipe")
        self.received.append(event)
        return None


@pytest.fixture
def make_channel():
    return FakeChannel


@pytest.fixture
def app_registry():
    from toolrelay.main import registry

    registry.clear()
    yield registry
    registry.clear()


async def wait_until(predicate: Callable[[], bool], attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.005)
    raise AssertionError("condition not reached")


@pytest.fixture
def until():
    return wait_until
