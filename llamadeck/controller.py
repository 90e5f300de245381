"""
ServiceController — canonical status, config and error slot for the service.

Wraps the command interface and owns the only copy of "is the service
usable". Lifecycle:

    UNINITIALIZED --initialize ok--> STOPPED --start ok--> RUNNING
                                        ^                      |
                                        +------stop ok---------+

Failed operations leave the state alone and write their text into a single
shared error slot. The slot holds the most recent error only: every
operation's outcome overwrites it, and nothing accumulates. Callers clear it
explicitly with clear_error().

The controller does not serialize start/stop. Callers must not issue a new
lifecycle call while `busy` is true (see can_start / can_stop).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from enum import Enum
from typing import Callable

from llamadeck.backends.base import CommandInterface
from llamadeck.errors import ConfigError, LlamaDeckError, ServiceLifecycleError, TransportError
from llamadeck.models import ChatRequest, ChatResponse, ServiceConfig, ServiceStatus

logger = logging.getLogger(__name__)

StatusListener = Callable[[ServiceStatus, ServiceStatus], None]


class ServiceState(str, Enum):
    UNINITIALIZED = "uninitialized"
    STOPPED = "stopped"
    RUNNING = "running"


class ErrorSlot:
    """Last-error-wins holder shared by the controller and its consumers."""

    def __init__(self):
        self._value: str | None = None
        self._lock = threading.Lock()

    def set(self, message: str | None):
        with self._lock:
            self._value = message

    def clear(self):
        self.set(None)

    @property
    def value(self) -> str | None:
        with self._lock:
            return self._value


def _as_error(e: Exception) -> LlamaDeckError:
    if isinstance(e, LlamaDeckError):
        return e
    return TransportError(str(e) or e.__class__.__name__)


class ServiceController:
    """Drives the inference service through its command interface."""

    def __init__(
        self,
        interface: CommandInterface,
        config: ServiceConfig | None = None,
        error_slot: ErrorSlot | None = None,
    ):
        self.interface = interface
        self.config = config or ServiceConfig()
        self.errors = error_slot or ErrorSlot()
        self._status = ServiceStatus(model_name=self.config.model_name)
        self._status_lock = threading.Lock()
        self._initialized = False
        self._busy = 0
        self._listeners: list[StatusListener] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def status(self) -> ServiceStatus:
        with self._status_lock:
            return replace(self._status)

    @property
    def state(self) -> ServiceState:
        if not self._initialized:
            return ServiceState.UNINITIALIZED
        return ServiceState.RUNNING if self.is_running else ServiceState.STOPPED

    @property
    def is_running(self) -> bool:
        with self._status_lock:
            return self._status.is_running

    @property
    def busy(self) -> bool:
        """True while any lifecycle or chat call is outstanding."""
        return self._busy > 0

    @property
    def can_start(self) -> bool:
        return self._initialized and not self.is_running and not self.busy

    @property
    def can_stop(self) -> bool:
        return self.is_running and not self.busy

    @property
    def error(self) -> str | None:
        return self.errors.value

    def set_error(self, message: str | None):
        self.errors.set(message)

    def clear_error(self):
        self.errors.clear()

    def add_status_listener(self, listener: StatusListener):
        """Call listener(old, new) whenever is_running changes."""
        self._listeners.append(listener)

    def remove_status_listener(self, listener: StatusListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _replace_status(self, status: ServiceStatus):
        with self._status_lock:
            old = self._status
            self._status = status
        if old.is_running != status.is_running:
            logger.info("Service is now %s", "running" if status.is_running else "stopped")
            for listener in list(self._listeners):
                listener(old, status)

    def _fail(self, op: str, e: Exception) -> LlamaDeckError:
        err = _as_error(e)
        logger.warning("%s failed: %s", op, err)
        self.errors.set(str(err))
        return err

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def initialize(self, config: ServiceConfig) -> str:
        """Send config to the service. On success the controller is STOPPED."""
        problems = config.validate()
        if problems:
            raise self._fail("initialize", ConfigError("; ".join(problems)))

        self._busy += 1
        try:
            message = await self.interface.initialize(config)
        except Exception as e:
            raise self._fail("initialize", e)
        finally:
            self._busy -= 1

        self.config = config
        self._initialized = True
        self.errors.clear()
        logger.info("Service initialized with model '%s': %s", config.model_name, message)
        return message

    async def start(self) -> str:
        if not self._initialized:
            raise self._fail("start", ServiceLifecycleError("Service not initialized"))

        self._busy += 1
        try:
            message = await self.interface.start()
        except Exception as e:
            raise self._fail("start", e)
        finally:
            self._busy -= 1

        logger.info("Service started: %s", message)
        await self.refresh_status()
        return message

    async def stop(self) -> str:
        self._busy += 1
        try:
            message = await self.interface.stop()
        except Exception as e:
            raise self._fail("stop", e)
        finally:
            self._busy -= 1

        logger.info("Service stopped: %s", message)
        await self.refresh_status()
        return message

    async def refresh_status(self) -> ServiceStatus:
        """Replace the canonical status with a fresh snapshot."""
        try:
            status = await self.interface.get_status()
        except Exception as e:
            raise self._fail("refresh_status", e)

        self._replace_status(status)
        self.errors.clear()
        return status

    async def health_check(self) -> str:
        """Diagnostic only; never touches status."""
        try:
            return await self.interface.check_health()
        except Exception as e:
            raise self._fail("health_check", e)

    async def list_models(self) -> list[str]:
        try:
            response = await self.interface.list_models()
        except Exception as e:
            raise self._fail("list_models", e)
        return response.ids

    async def chat(self, request: ChatRequest) -> ChatResponse:
        self._busy += 1
        try:
            return await self.interface.chat(request)
        except Exception as e:
            raise self._fail("chat", e)
        finally:
            self._busy -= 1
