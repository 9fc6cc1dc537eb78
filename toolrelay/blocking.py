from __future__ import annotations

import inspect
from typing import Any, Callable

import anyio


async def to_thread(fn, *a, **kw):
    return await anyio.to_thread.run_sync(lambda: fn(*a, **kw))


async def call_handler(fn: Callable[..., Any], *a, **kw) -> Any:
    """Await coroutine functions; run plain callables in a worker thread."""

    if inspect.iscoroutinefunction(fn):
        return await fn(*a, **kw)
    return await to_thread(fn, *a, **kw)
