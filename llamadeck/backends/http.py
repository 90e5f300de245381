"""
HTTP command interface — talks to the local inference service over httpx.

Chat and model listing use the OpenAI-compatible paths; the lifecycle
commands live under /llm. Errors come back as human-readable text, optionally
wrapped in {"error_type": ..., "message": ...}, and are mapped onto the
llamadeck error taxonomy here so callers never see raw httpx exceptions.
"""

from __future__ import annotations

import logging
import time

import httpx

from llamadeck.backends.base import CommandInterface
from llamadeck.errors import (
    ConfigError,
    LlamaDeckError,
    NotRunningError,
    ServiceLifecycleError,
    TransportError,
)
from llamadeck.models import ChatRequest, ChatResponse, ModelsResponse, ServiceConfig, ServiceStatus

logger = logging.getLogger(__name__)

# Typed error bodies from the service → taxonomy
_LIFECYCLE_ERROR_TYPES = {"NotInitialized", "ModelError", "LlamaCppError", "IoError"}


def _error_text(resp: httpx.Response) -> tuple[str, str]:
    """Return (error_type, message) from an error response body."""
    try:
        data = resp.json()
    except ValueError:
        return "", resp.text[:500] or f"HTTP {resp.status_code}"
    if isinstance(data, dict):
        message = data.get("message") or data.get("error") or data.get("detail") or ""
        if isinstance(message, dict):
            message = message.get("message", "")
        return data.get("error_type", ""), str(message) or f"HTTP {resp.status_code}"
    return "", str(data)


def _map_error(resp: httpx.Response, lifecycle: bool) -> LlamaDeckError:
    error_type, message = _error_text(resp)

    if error_type == "ConfigError":
        return ConfigError(message)
    if error_type == "NotRunning":
        return ServiceLifecycleError(message) if lifecycle else NotRunningError(message)
    if error_type in _LIFECYCLE_ERROR_TYPES:
        return ServiceLifecycleError(message)
    if error_type:
        return TransportError(message)

    if resp.status_code in (400, 422):
        return ConfigError(message)
    if lifecycle:
        return ServiceLifecycleError(message)
    return TransportError(f"HTTP {resp.status_code}: {message}")


def _message(data) -> str:
    if isinstance(data, dict):
        return str(data.get("message", ""))
    return str(data)


class HttpCommandInterface(CommandInterface):
    """Command interface for a service exposing HTTP endpoints."""

    def __init__(
        self,
        url: str,
        name: str = "local",
        timeout: float = 120,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(name=name, timeout=timeout)
        self.url = url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.url, timeout=timeout)

    async def _request(self, method: str, path: str, lifecycle: bool = False, **kwargs):
        t0 = time.monotonic()
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException:
            latency = (time.monotonic() - t0) * 1000
            logger.warning("Service '%s' %s %s timed out after %.0fms", self.name, method, path, latency)
            raise TransportError(f"Timeout after {self.timeout}s")
        except httpx.HTTPError as e:
            logger.warning("Service '%s' %s %s failed: %s", self.name, method, path, e)
            raise TransportError(str(e) or e.__class__.__name__) from e

        latency = (time.monotonic() - t0) * 1000
        logger.debug("Service '%s' %s %s -> %d in %.0fms", self.name, method, path, resp.status_code, latency)

        if resp.status_code >= 400:
            raise _map_error(resp, lifecycle)
        try:
            return resp.json()
        except ValueError as e:
            raise TransportError(f"Invalid response from {path}: {resp.text[:200]}") from e

    async def initialize(self, config: ServiceConfig) -> str:
        data = await self._request("POST", "/llm/initialize", lifecycle=True, json={"config": config.to_dict()})
        return _message(data)

    async def start(self) -> str:
        return _message(await self._request("POST", "/llm/start", lifecycle=True))

    async def stop(self) -> str:
        return _message(await self._request("POST", "/llm/stop", lifecycle=True))

    async def get_status(self) -> ServiceStatus:
        data = await self._request("GET", "/llm/status")
        if not isinstance(data, dict):
            raise TransportError(f"Unexpected status payload: {data!r}")
        return ServiceStatus.from_dict(data)

    async def chat(self, request: ChatRequest) -> ChatResponse:
        data = await self._request("POST", "/v1/chat/completions", json=request.to_dict())
        if not isinstance(data, dict):
            raise TransportError(f"Unexpected chat payload: {data!r}")
        try:
            return ChatResponse.from_dict(data)
        except (AttributeError, TypeError, ValueError) as e:
            raise TransportError(f"Malformed chat response: {e}") from e

    async def list_models(self) -> ModelsResponse:
        data = await self._request("GET", "/v1/models")
        if not isinstance(data, dict):
            raise TransportError(f"Unexpected models payload: {data!r}")
        return ModelsResponse.from_dict(data)

    async def check_health(self) -> str:
        return _message(await self._request("GET", "/llm/health", lifecycle=True))

    async def aclose(self) -> None:
        await self._client.aclose()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} url={self.url!r}>"
