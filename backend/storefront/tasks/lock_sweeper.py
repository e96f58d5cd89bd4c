"""
Payment Lock Sweeper
====================
Background task that deletes abandoned payment locks on a fixed interval,
independent of acquire/release traffic. Bounds how long a crashed request
can keep a client locked out even if that client never retries.
"""

import asyncio
from typing import Optional

import structlog

from storefront.payments.locks import PaymentLockManager

logger = structlog.get_logger(component="lock_sweeper")


async def lock_sweep_loop(locks: PaymentLockManager, interval_seconds: float = 60.0) -> None:
    logger.info("lock_sweeper_started", interval=interval_seconds, ttl=locks.ttl_seconds)

    while True:
        await asyncio.sleep(interval_seconds)
        try:
            locks.sweep()
        except Exception as e:
            # a failed pass is logged and the loop keeps running
            logger.error("lock_sweep_failed", error=str(e), exc_info=True)


def start_lock_sweeper(
    locks: PaymentLockManager,
    interval_seconds: float = 60.0,
) -> "asyncio.Task[None]":
    return asyncio.create_task(lock_sweep_loop(locks, interval_seconds), name="payment-lock-sweeper")


async def stop_lock_sweeper(task: Optional["asyncio.Task[None]"]) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    logger.info("lock_sweeper_stopped")
