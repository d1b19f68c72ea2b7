"""Cancellable recurring task used to poll a generation job."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from geoimage.metrics.prometheus_exporter import active_polls

logger = logging.getLogger(__name__)


class PollingTimer:
    """Runs ``callback`` every ``interval`` seconds until cancelled.

    The first call happens one interval after :meth:`start`. ``start`` always
    cancels a running task before scheduling a new one, so one timer object
    never owns more than one task.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], Awaitable[None]],
        *,
        name: str = "poll",
    ) -> None:
        self._interval = interval
        self._callback = callback
        self._name = name
        self._task: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.cancel()
        self._task = asyncio.create_task(self._run(), name=self._name)
        active_polls.inc()

    def cancel(self) -> None:
        """Stop the timer. Safe to call from inside the callback."""

        task, self._task = self._task, None
        if task is None or task.done():
            return
        active_polls.dec()
        if task is not asyncio.current_task():
            task.cancel()

    async def _run(self) -> None:
        me = asyncio.current_task()
        while self._task is me:
            await asyncio.sleep(self._interval)
            if self._task is not me:
                break
            try:
                await self._callback()
            except Exception:  # noqa: BLE001
                logger.exception("Poll callback %s raised", self._name)
