"""
Thread pool for the synchronous SDKs in the payment flow.

stripe-python and smtplib only expose blocking calls. run_blocking() moves
them onto one shared pool and bounds how long the awaiting request waits;
on expiry the caller sees asyncio.TimeoutError while the worker thread
runs to completion on its own.
"""
import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, TypeVar

from config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_pool: Optional[ThreadPoolExecutor] = None


def get_executor() -> ThreadPoolExecutor:
    global _pool
    if _pool is None:
        _pool = ThreadPoolExecutor(
            max_workers=settings.blocking_pool_size,
            thread_name_prefix="vendor_",
        )
        logger.info(f"Blocking-call pool started ({settings.blocking_pool_size} workers)")
    return _pool


def _default_timeout() -> float:
    # One full vendor attempt plus the SDK's own connect/read slack
    return settings.vendor_timeout_seconds * 2


async def run_blocking(
    func: Callable[..., T],
    *args: Any,
    wait_timeout: Optional[float] = None,
    **kwargs: Any,
) -> T:
    """
    Await `func(*args, **kwargs)` on the shared pool.

    Raises:
        asyncio.TimeoutError: no result within `wait_timeout` seconds
    """
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(get_executor(), functools.partial(func, *args, **kwargs))
    return await asyncio.wait_for(future, timeout=wait_timeout or _default_timeout())


def shutdown_executor() -> None:
    """Drain the pool on application shutdown."""
    global _pool
    if _pool is not None:
        _pool.shutdown(wait=True)
        _pool = None
        logger.info("Blocking-call pool stopped")
