# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Coalescing of concurrent identical async calls."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


def _retrieve_exception(task: asyncio.Future[Any]) -> None:
    # nobody may be awaiting a task whose leader timed out
    if not task.cancelled():
        task.exception()


class SingleFlight:
    """Run at most one call per key at a time.

    While a call for a key is in flight, later callers for the same key await
    its result (or its exception) instead of starting their own. Used to keep
    concurrent requests for an expired pivot from each spending provider
    quota.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Future[Any]] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def do(self, key: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        pending = self._inflight.get(key)
        if pending is not None:
            logger.debug(f"Joining in-flight call for {key}")
            # shield: a cancelled follower must not cancel the leader's call
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(fn())
        task.add_done_callback(_retrieve_exception)
        self._inflight[key] = task
        try:
            return await asyncio.shield(task)
        finally:
            if task.done():
                self._inflight.pop(key, None)
            else:
                task.add_done_callback(lambda _: self._inflight.pop(key, None))
