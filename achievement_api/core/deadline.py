# achievement_api/core/deadline.py
"""
Request deadlines for store calls.

A request sets an absolute deadline once; every gateway call runs through
``bounded`` and gets whatever time is left. Compensation steps run in their
own task with a fresh deadline so request cancellation does not stop them.
"""
import asyncio
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Awaitable, Callable, Iterator, Optional, TypeVar

from achievement_api.core.errors import DeadlineExceeded

T = TypeVar("T")

_deadline: ContextVar[Optional[float]] = ContextVar("request_deadline", default=None)


def _now() -> float:
    return asyncio.get_running_loop().time()


@contextmanager
def request_deadline(timeout: Optional[float]) -> Iterator[None]:
    """Set the deadline for everything awaited inside the block."""
    token = _deadline.set(None if timeout is None else _now() + timeout)
    try:
        yield
    finally:
        _deadline.reset(token)


def remaining() -> Optional[float]:
    deadline = _deadline.get()
    if deadline is None:
        return None
    return deadline - _now()


async def bounded(awaitable: Awaitable[T], operation: str) -> T:
    left = remaining()
    if left is None:
        return await awaitable
    if left <= 0:
        # never started; close it so no "was never awaited" warning fires
        close = getattr(awaitable, "close", None)
        if close is not None:
            close()
        raise DeadlineExceeded(operation)
    try:
        return await asyncio.wait_for(awaitable, timeout=left)
    except asyncio.TimeoutError as exc:
        raise DeadlineExceeded(operation) from exc


async def run_compensation(action: Callable[[], Awaitable[T]], timeout: float) -> T:
    async def _run() -> T:
        with request_deadline(timeout):
            return await action()

    task = asyncio.ensure_future(_run())
    return await asyncio.shield(task)
