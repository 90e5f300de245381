"""
StatusPoller — keeps ServiceStatus fresh while the service is up.

A background task calls refresh_status() every POLL_INTERVAL seconds. It is
started the moment the controller reports is_running=True and cancelled the
moment it reports False (or on close()). Poll failures land in the shared
error slot via the controller; the cadence never changes and there is no
back-off.
"""

from __future__ import annotations

import asyncio
import logging

from llamadeck.clock import Clock
from llamadeck.controller import ServiceController
from llamadeck.models import ServiceStatus

logger = logging.getLogger(__name__)

POLL_INTERVAL = 5.0


class StatusPoller:
    """Recurring status refresh bound to service liveness."""

    def __init__(
        self,
        controller: ServiceController,
        clock: Clock | None = None,
        interval: float = POLL_INTERVAL,
    ):
        self.controller = controller
        self.clock = clock or Clock()
        self.interval = interval
        self._task: asyncio.Task | None = None
        self._closed = False
        controller.add_status_listener(self._on_status_change)
        if controller.is_running:
            self._start()

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def _on_status_change(self, old: ServiceStatus, new: ServiceStatus):
        if new.is_running:
            self._start()
        else:
            self._cancel()

    def _start(self):
        if self._closed or self.active:
            return
        logger.debug("Status poller started (every %.1fs)", self.interval)
        self._task = asyncio.get_running_loop().create_task(self._loop())

    def _cancel(self):
        task, self._task = self._task, None
        if task is None:
            return
        # A refresh from inside the loop may be what reported the stop
        if task is not asyncio.current_task():
            task.cancel()
        logger.debug("Status poller stopped")

    async def _loop(self):
        while True:
            await self.clock.sleep(self.interval)
            try:
                await self.controller.refresh_status()
            except Exception as e:
                logger.warning("Status poll failed: %s", e)
            if not self.controller.is_running:
                return

    async def close(self):
        """Stop polling for good and wait for the task to finish."""
        self._closed = True
        self.controller.remove_status_listener(self._on_status_change)
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
