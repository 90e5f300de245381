"""
AutoStartPolicy — bring the service up once per process, with bounded retries.

Each attempt:
  1. reconcile: if the configured model isn't among list_models(), switch to
     the first model the service offers and persist that choice
  2. advisory health probe (result ignored)
  3. initialize(config), then start()

A failed initialize or start consumes one attempt; if any remain the policy
backs off for retry_delay_ms and tries again from step 1. After the last
attempt fails, a diagnostic is composed and written to the controller's error
slot. The policy itself never raises.

States:

    IDLE -> ATTEMPTING <-> BACKOFF
               |
               +-> SUCCEEDED | FAILED        (DISABLED when auto-start is off)

`attempted` is true while ATTEMPTING and in every terminal state; it drops
back to false only during BACKOFF. run() is a no-op unless the policy is
IDLE, which is what keeps two runs from overlapping.
"""

from __future__ import annotations

import asyncio
import logging
import re
from enum import Enum

from llamadeck.clock import Clock
from llamadeck.config import ConfigStore
from llamadeck.controller import ServiceController
from llamadeck.models import AppConfig

logger = logging.getLogger(__name__)

_AVAILABLE_MODELS_RE = re.compile(r"Available models: \[(.*?)\]")

_STEPS_WITH_MODELS = (
    "Troubleshooting steps:\n"
    "1. Update the model name in configuration to match an available model\n"
    "2. Or download the required GGUF model file to the models/ directory\n"
    "3. Ensure the model file name matches the configured model name\n"
    "4. Check that the models directory exists in the project root\n"
    "5. Restart this application"
)

_STEPS_NO_MODELS = (
    "Troubleshooting steps:\n"
    "1. Download GGUF model files to the models/ directory\n"
    "2. Ensure the model file name matches the configured model name\n"
    "3. Check that the models directory exists in the project root\n"
    "4. Verify the model file is not corrupted\n"
    "5. Restart this application"
)


class PolicyState(str, Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    BACKOFF = "backoff"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DISABLED = "disabled"


TERMINAL_STATES = (PolicyState.SUCCEEDED, PolicyState.FAILED, PolicyState.DISABLED)


def is_missing_model_error(text: str) -> bool:
    lowered = text.lower()
    return "model" in lowered and "not found" in lowered


def compose_failure_message(attempts: int, last_error: str, known_models: list[str] | None = None) -> str:
    """Diagnostic for an exhausted retry budget."""
    message = f"Auto-start failed after {attempts} attempts: {last_error}"
    if not is_missing_model_error(last_error):
        return message

    match = _AVAILABLE_MODELS_RE.search(last_error)
    if match:
        available = match.group(1)
    elif known_models:
        available = ", ".join(known_models)
    else:
        available = ""

    if available:
        return f"{message}\n\nAvailable models: {available}\n\n{_STEPS_WITH_MODELS}"
    return f"{message}\n\n{_STEPS_NO_MODELS}"


class AutoStartPolicy:
    """One-shot startup sequence layered on a ServiceController."""

    def __init__(
        self,
        controller: ServiceController,
        config_store: ConfigStore,
        clock: Clock | None = None,
    ):
        self.controller = controller
        self.config_store = config_store
        self.clock = clock or Clock()
        self.state = PolicyState.IDLE
        self.attempts_made = 0
        self.last_error: str | None = None
        self._known_models: list[str] = []
        self._task: asyncio.Task | None = None

    @property
    def attempted(self) -> bool:
        return self.state is PolicyState.ATTEMPTING or self.state in TERMINAL_STATES

    def _transition(self, state: PolicyState):
        logger.debug("Auto-start: %s -> %s", self.state.value, state.value)
        self.state = state

    async def run(self) -> PolicyState:
        """Run the policy to a terminal state. Never raises."""
        if self.state is not PolicyState.IDLE:
            return self.state

        app_config = self.config_store.load_config()
        if not app_config.auto_start_enabled:
            logger.info("Auto-start disabled in configuration")
            self._transition(PolicyState.DISABLED)
            return self.state

        max_attempts = app_config.retry_attempts
        if max_attempts <= 0:
            # No attempts means no error either; just make sure it can't re-run
            logger.warning("Auto-start enabled with retry_attempts=%d, nothing to do", max_attempts)
            self._transition(PolicyState.FAILED)
            return self.state

        while self.attempts_made < max_attempts:
            self._transition(PolicyState.ATTEMPTING)
            logger.info("Auto-starting service (attempt %d/%d)...", self.attempts_made + 1, max_attempts)
            try:
                await self._attempt(app_config)
            except Exception as e:
                self.attempts_made += 1
                self.last_error = str(e)
                logger.error("Auto-start attempt %d failed: %s", self.attempts_made, e)
                if self.attempts_made < max_attempts:
                    self._transition(PolicyState.BACKOFF)
                    logger.info("Retrying in %dms...", app_config.retry_delay_ms)
                    await self.clock.sleep(app_config.retry_delay_ms / 1000)
                continue

            self._transition(PolicyState.SUCCEEDED)
            logger.info("Service auto-started with model '%s'", app_config.default_service_config.model_name)
            return self.state

        message = compose_failure_message(max_attempts, self.last_error or "", self._known_models)
        self.controller.set_error(message)
        self._transition(PolicyState.FAILED)
        return self.state

    async def _attempt(self, app_config: AppConfig):
        await self._reconcile(app_config)

        try:
            summary = await self.controller.health_check()
            logger.info("Health check passed: %s", summary)
        except Exception as e:
            logger.warning("Health check failed: %s", e)

        await self.controller.initialize(app_config.default_service_config)
        await self.controller.start()

    async def _reconcile(self, app_config: AppConfig):
        """Point the config at a model the service actually has."""
        try:
            available = await self.controller.list_models()
        except Exception as e:
            logger.warning("Failed to list models: %s", e)
            return

        if not available:
            return
        self._known_models = available
        logger.info("Available models: %s", available)

        configured = app_config.default_service_config.model_name
        if configured not in available:
            logger.info("Configured model '%s' not found. Using '%s'", configured, available[0])
            app_config.default_service_config.model_name = available[0]
            self.config_store.save_config(app_config)

    def schedule(self, delay: float = 1.0) -> asyncio.Task:
        """Run the policy in the background after a short settle delay."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._delayed_run(delay))
        return self._task

    async def _delayed_run(self, delay: float) -> PolicyState:
        await self.clock.sleep(delay)
        return await self.run()
