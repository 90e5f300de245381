"""
LlamaDeckContext — the explicitly constructed owner of every component.

There are no module-level singletons: build one context, hand it (or its
parts) to whatever needs them, and close it on the way out.
"""

from __future__ import annotations

import logging

from llamadeck.autostart import AutoStartPolicy
from llamadeck.backends.base import CommandInterface
from llamadeck.backends.http import HttpCommandInterface
from llamadeck.chat import ChatOrchestrator
from llamadeck.clock import Clock
from llamadeck.config import ConfigStore, apply_env_overrides
from llamadeck.controller import ServiceController
from llamadeck.conversations import ConversationStore
from llamadeck.models import AppConfig
from llamadeck.poller import StatusPoller

logger = logging.getLogger(__name__)


class LlamaDeckContext:
    """Wires controller, poller, auto-start, conversations and chat together."""

    def __init__(
        self,
        config_store: ConfigStore | None = None,
        interface: CommandInterface | None = None,
        clock: Clock | None = None,
        app_config: AppConfig | None = None,
    ):
        self.config_store = config_store or ConfigStore()
        self.app_config = app_config or apply_env_overrides(self.config_store.load_config())
        self.clock = clock or Clock()
        self.interface = interface or HttpCommandInterface(
            url=self.app_config.service_url,
            timeout=self.app_config.request_timeout,
        )
        self.controller = ServiceController(
            self.interface,
            config=self.app_config.default_service_config,
        )
        self.autostart = AutoStartPolicy(self.controller, self.config_store, clock=self.clock)
        self.conversations = ConversationStore()
        self.chat = ChatOrchestrator(self.controller, self.conversations)
        self.poller: StatusPoller | None = None

    async def startup(self, auto_start: bool = True, delay: float = 0.0):
        """
        Attach the status poller (needs a running loop), take an initial
        status snapshot, and run the auto-start policy.
        """
        if self.poller is None:
            self.poller = StatusPoller(self.controller, clock=self.clock)
        try:
            await self.controller.refresh_status()
        except Exception as e:
            logger.info("Service not reachable yet: %s", e)
        if auto_start and not self.controller.is_running:
            if delay:
                await self.autostart.schedule(delay)
            else:
                await self.autostart.run()

    async def shutdown(self):
        if self.poller is not None:
            await self.poller.close()
        await self.interface.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.shutdown()
        return False
