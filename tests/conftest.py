"""
Shared fixtures: a scriptable command interface and hand-driven clocks.
"""

import asyncio

import pytest

from llamadeck.backends.base import CommandInterface
from llamadeck.config import ConfigStore
from llamadeck.controller import ServiceController
from llamadeck.conversations import ConversationStore
from llamadeck.errors import ServiceLifecycleError
from llamadeck.models import (
    ChatChoice,
    ChatResponse,
    Message,
    ModelInfo,
    ModelsResponse,
    ServiceStatus,
)


class FakeInterface(CommandInterface):
    """
    In-memory service. Set *_errors to a list of exceptions to have the next
    calls fail in order; set status_error / models_error / chat_error for a
    persistent failure.
    """

    def __init__(self, models=None):
        super().__init__(name="fake")
        self.models = list(models) if models is not None else ["Llama-3.2-1B-Instruct-Q5_K_M"]
        self.running = False
        self.loaded_model = "Llama-3.2-1B-Instruct-Q5_K_M"
        self.calls: list[str] = []
        self.initialized_with = []
        self.chat_requests = []
        self.init_errors: list[Exception] = []
        self.start_errors: list[Exception] = []
        self.stop_errors: list[Exception] = []
        self.status_error: Exception | None = None
        self.models_error: Exception | None = None
        self.health_error: Exception | None = None
        self.chat_error: Exception | None = None
        self.chat_reply: ChatResponse | None = None
        self.chat_gate: asyncio.Event | None = None
        self.closed = False

    async def initialize(self, config):
        self.calls.append("initialize")
        if self.init_errors:
            raise self.init_errors.pop(0)
        self.initialized_with.append(config)
        self.loaded_model = config.model_name
        return "LLM service initialized"

    async def start(self):
        self.calls.append("start")
        if self.start_errors:
            raise self.start_errors.pop(0)
        self.running = True
        return "LLM service started"

    async def stop(self):
        self.calls.append("stop")
        if self.stop_errors:
            raise self.stop_errors.pop(0)
        if not self.running:
            raise ServiceLifecycleError("LLM service is not running")
        self.running = False
        return "LLM service stopped successfully"

    async def get_status(self):
        self.calls.append("get_status")
        if self.status_error:
            raise self.status_error
        return ServiceStatus(is_running=self.running, port=0, model_name=self.loaded_model, base_url="local")

    async def chat(self, request):
        self.calls.append("chat")
        self.chat_requests.append(request)
        if self.chat_gate is not None:
            await self.chat_gate.wait()
        if self.chat_error:
            raise self.chat_error
        if self.chat_reply is not None:
            return self.chat_reply
        return reply("hi")

    async def list_models(self):
        self.calls.append("list_models")
        if self.models_error:
            raise self.models_error
        return ModelsResponse(data=[ModelInfo(id=m) for m in self.models])

    async def check_health(self):
        self.calls.append("check_health")
        if self.health_error:
            raise self.health_error
        return f"Found {len(self.models)} model(s)"

    async def aclose(self):
        self.closed = True


def reply(*contents) -> ChatResponse:
    return ChatResponse(
        id="chatcmpl-1",
        model="fake",
        choices=[
            ChatChoice(index=i, message=Message("assistant", c), finish_reason="stop")
            for i, c in enumerate(contents)
        ],
    )


async def settle(rounds: int = 20):
    for _ in range(rounds):
        await asyncio.sleep(0)


class InstantClock:
    """Records requested sleeps and returns straight away."""

    def __init__(self):
        self.sleeps: list[float] = []

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        await asyncio.sleep(0)


class ManualClock:
    """Sleepers only wake when the test calls advance()."""

    def __init__(self):
        self.now = 0.0
        self._sleepers: list[tuple[float, asyncio.Future]] = []

    async def sleep(self, seconds):
        fut = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now + seconds, fut))
        await fut

    @property
    def pending(self) -> int:
        return sum(1 for _, fut in self._sleepers if not fut.done())

    async def advance(self, seconds):
        target = self.now + seconds
        while True:
            await settle()
            self._sleepers = [(t, f) for t, f in self._sleepers if not f.done()]
            due = [s for s in self._sleepers if s[0] <= target]
            if not due:
                break
            deadline, fut = min(due, key=lambda s: s[0])
            self._sleepers.remove((deadline, fut))
            self.now = deadline
            fut.set_result(None)
        self.now = target
        await settle()


@pytest.fixture
def iface():
    return FakeInterface()


@pytest.fixture
def controller(iface):
    return ServiceController(iface)


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def config_store(tmp_path):
    return ConfigStore(tmp_path / "config.yaml")
