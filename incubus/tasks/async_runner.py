from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable
from typing import TypeVar

from celery.signals import worker_process_shutdown

from incubus.core.database import DatabaseManager

T = TypeVar("T")

logger = logging.getLogger(__name__)

_loop_lock = threading.Lock()
_worker_loop: asyncio.AbstractEventLoop | None = None


def _event_loop() -> asyncio.AbstractEventLoop:
    global _worker_loop
    with _loop_lock:
        if _worker_loop is None or _worker_loop.is_closed():
            _worker_loop = asyncio.new_event_loop()
        return _worker_loop


def run_async(coro: Awaitable[T]) -> T:
    """Drive a coroutine to completion on the worker's long-lived loop.

    The async engine's pooled connections are bound to the loop that opened
    them, so every task in a worker process shares one loop.
    """
    return _event_loop().run_until_complete(coro)


@worker_process_shutdown.connect
def _close_worker_loop(**_: object) -> None:
    global _worker_loop
    with _loop_lock:
        loop, _worker_loop = _worker_loop, None
    if loop is None or loop.is_closed():
        return
    loop.run_until_complete(DatabaseManager.close())
    loop.close()
    logger.info("Worker event loop closed")
