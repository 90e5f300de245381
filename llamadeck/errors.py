"""
Error taxonomy for llamadeck.

Every error carries human-readable text only; str(err) is what ends up in
the controller's shared error slot.
"""

from __future__ import annotations


class LlamaDeckError(Exception):
    """Base class for everything llamadeck raises on purpose."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ConfigError(LlamaDeckError):
    """Invalid model identifier or out-of-range numeric parameter."""


class ServiceLifecycleError(LlamaDeckError):
    """initialize/start/stop rejected by the service (e.g. missing model file)."""


class NotRunningError(LlamaDeckError):
    """Chat attempted while the service is down."""

    def __init__(self, message: str = "LLM service is not running"):
        super().__init__(message)


class EmptyResponseError(LlamaDeckError):
    """The service answered a chat request with zero choices."""

    def __init__(self, message: str = "No response received from LLM service"):
        super().__init__(message)


class TransportError(LlamaDeckError):
    """Opaque wrapper around a remote call that failed or never completed."""
