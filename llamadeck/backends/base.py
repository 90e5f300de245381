"""
Command interface abstraction.
The inference service is reachable only through these seven commands; every
implementation speaks the same contract so the controller can treat them
uniformly.
"""

from __future__ import annotations

import abc
import logging

from llamadeck.models import ChatRequest, ChatResponse, ModelsResponse, ServiceConfig, ServiceStatus

logger = logging.getLogger(__name__)


class CommandInterface(abc.ABC):
    """
    Abstract request/response channel to the inference service.
    One round trip per call, no streaming. Failures raise a LlamaDeckError
    subclass carrying the service's human-readable text.
    """

    def __init__(self, name: str = "local", timeout: float = 120):
        self.name = name
        self.timeout = timeout

    @abc.abstractmethod
    async def initialize(self, config: ServiceConfig) -> str:
        """Send configuration to the service. Returns its message."""
        ...

    @abc.abstractmethod
    async def start(self) -> str:
        """Load the configured model and start serving."""
        ...

    @abc.abstractmethod
    async def stop(self) -> str:
        """Unload the model."""
        ...

    @abc.abstractmethod
    async def get_status(self) -> ServiceStatus:
        ...

    @abc.abstractmethod
    async def chat(self, request: ChatRequest) -> ChatResponse:
        ...

    @abc.abstractmethod
    async def list_models(self) -> ModelsResponse:
        ...

    @abc.abstractmethod
    async def check_health(self) -> str:
        """Check model files are present and readable. Returns a summary."""
        ...

    async def aclose(self) -> None:
        """Release any held connections."""
        return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
