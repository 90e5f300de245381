"""
Data models for service state, conversations and the command-interface wire.
These define the shape of data flowing between the controller, the chat
orchestrator and the inference service.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, fields, asdict
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

logger = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "Llama-3.2-1B-Instruct-Q5_K_M"

_INVALID_MODEL_CHARS = re.compile(r'[<>:"|?*]')


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce(value, default, kind):
    """Convert value to kind, falling back to default when it can't be."""
    if value is None:
        return default
    if kind is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false", "yes", "no", "1", "0"):
            return value.lower() in ("true", "yes", "1")
        return default
    try:
        return kind(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid value %r (expected %s)", value, kind.__name__)
        return default


# ---------------------------------------------------------------------------
# Service state
# ---------------------------------------------------------------------------

@dataclass
class ServiceStatus:
    """Snapshot of the service as last reported by get_status."""
    is_running: bool = False
    port: int = 0
    model_name: str = DEFAULT_MODEL_NAME
    base_url: str = "local"

    @classmethod
    def from_dict(cls, data: dict) -> ServiceStatus:
        d = cls()
        return cls(
            is_running=_coerce(data.get("is_running"), d.is_running, bool),
            port=_coerce(data.get("port"), d.port, int),
            model_name=_coerce(data.get("model_name"), d.model_name, str),
            base_url=_coerce(data.get("base_url"), d.base_url, str),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ServiceConfig:
    """Model and sampling configuration sent to the service on initialize."""
    model_name: str = DEFAULT_MODEL_NAME
    model_path: str | None = None
    temperature: float = 0.8
    top_p: float = 0.9
    max_tokens: int = 512
    ctx_size: int = 4096
    n_threads: int | None = None
    n_gpu_layers: int = 0

    def validate(self) -> list[str]:
        """Return a list of human-readable problems; empty means valid."""
        errors: list[str] = []
        if not self.model_name or not self.model_name.strip() or _INVALID_MODEL_CHARS.search(self.model_name):
            errors.append("Model name must be a valid identifier")
        if self.ctx_size <= 0:
            errors.append("Context size must be greater than 0")
        if self.temperature < 0 or self.temperature > 2:
            errors.append("Temperature must be between 0 and 2")
        if self.top_p < 0 or self.top_p > 1:
            errors.append("Top P must be between 0 and 1")
        if self.max_tokens <= 0:
            errors.append("Max tokens must be greater than 0")
        if self.n_gpu_layers < 0:
            errors.append("GPU layers must be 0 or greater")
        if self.n_threads is not None and self.n_threads <= 0:
            errors.append("Thread count must be greater than 0")
        return errors

    @classmethod
    def from_dict(cls, data: dict | None) -> ServiceConfig:
        if not isinstance(data, dict):
            data = {}
        d = cls()
        n_threads = data.get("n_threads")
        model_path = data.get("model_path")
        return cls(
            model_name=_coerce(data.get("model_name"), d.model_name, str),
            model_path=str(model_path) if model_path is not None else None,
            temperature=_coerce(data.get("temperature"), d.temperature, float),
            top_p=_coerce(data.get("top_p"), d.top_p, float),
            max_tokens=_coerce(data.get("max_tokens"), d.max_tokens, int),
            ctx_size=_coerce(data.get("ctx_size"), d.ctx_size, int),
            n_threads=_coerce(n_threads, None, int) if n_threads is not None else None,
            n_gpu_layers=_coerce(data.get("n_gpu_layers"), d.n_gpu_layers, int),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AppConfig:
    """Persisted application settings: auto-start policy plus ambient knobs."""
    auto_start_enabled: bool = True
    default_service_config: ServiceConfig = field(default_factory=ServiceConfig)
    retry_attempts: int = 3
    retry_delay_ms: int = 2000
    service_url: str = "http://127.0.0.1:8080"
    request_timeout: float = 120.0
    log_level: str = "INFO"
    log_file: str | None = None

    def is_valid(self) -> bool:
        if not isinstance(self.auto_start_enabled, bool):
            return False
        if not isinstance(self.retry_attempts, int) or self.retry_attempts < 0:
            return False
        if not isinstance(self.retry_delay_ms, int) or self.retry_delay_ms < 0:
            return False
        return not self.default_service_config.validate()

    @classmethod
    def from_dict(cls, data: dict | None) -> AppConfig:
        """Build from a partial dict; missing or unknown keys are tolerated."""
        if not isinstance(data, dict):
            data = {}
        d = cls()
        log_file = data.get("log_file")
        return cls(
            auto_start_enabled=_coerce(data.get("auto_start_enabled"), d.auto_start_enabled, bool),
            default_service_config=ServiceConfig.from_dict(data.get("default_service_config")),
            retry_attempts=_coerce(data.get("retry_attempts"), d.retry_attempts, int),
            retry_delay_ms=_coerce(data.get("retry_delay_ms"), d.retry_delay_ms, int),
            service_url=_coerce(data.get("service_url"), d.service_url, str),
            request_timeout=_coerce(data.get("request_timeout"), d.request_timeout, float),
            log_level=_coerce(data.get("log_level"), d.log_level, str),
            log_file=str(log_file) if log_file else None,
        )

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------

class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    """A single role-tagged turn."""
    role: Role
    content: str

    def __post_init__(self):
        self.role = Role(self.role)

    @classmethod
    def from_dict(cls, data: dict) -> Message:
        return cls(role=data.get("role", "assistant"), content=data.get("content") or "")

    def to_dict(self) -> dict:
        """Export in OpenAI messages array format."""
        return {"role": self.role.value, "content": self.content}


@dataclass
class Conversation:
    """An ordered, named, append-only sequence of messages."""
    id: str = field(default_factory=lambda: str(uuid4()))
    title: str = "New Conversation"
    messages: list[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "messages": [m.to_dict() for m in self.messages],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


# ---------------------------------------------------------------------------
# Command-interface wire shapes
# ---------------------------------------------------------------------------

@dataclass
class ChatRequest:
    model: str
    messages: list[Message]
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    stream: bool | None = None

    def to_dict(self) -> dict:
        body: dict = {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
        }
        for name in ("temperature", "top_p", "max_tokens", "stream"):
            value = getattr(self, name)
            if value is not None:
                body[name] = value
        return body


@dataclass
class ChatChoice:
    index: int
    message: Message
    finish_reason: str | None = None


@dataclass
class ChatUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatResponse:
    id: str = ""
    object: str = "chat.completion"
    created: int = 0
    model: str = ""
    choices: list[ChatChoice] = field(default_factory=list)
    usage: ChatUsage | None = None

    @property
    def content(self) -> str:
        """Assistant content of the first choice, or empty."""
        if self.choices:
            return self.choices[0].message.content
        return ""

    @classmethod
    def from_dict(cls, data: dict) -> ChatResponse:
        choices = [
            ChatChoice(
                index=c.get("index", i),
                message=Message.from_dict(c.get("message", {})),
                finish_reason=c.get("finish_reason"),
            )
            for i, c in enumerate(data.get("choices") or [])
        ]
        usage = data.get("usage")
        if usage:
            known = {f.name for f in fields(ChatUsage)}
            usage = ChatUsage(**{k: v for k, v in usage.items() if k in known})
        return cls(
            id=data.get("id", ""),
            object=data.get("object", "chat.completion"),
            created=data.get("created", 0),
            model=data.get("model", ""),
            choices=choices,
            usage=usage,
        )


@dataclass
class ModelInfo:
    id: str
    object: str = "model"
    created: int = 0
    owned_by: str = "local"


@dataclass
class ModelsResponse:
    object: str = "list"
    data: list[ModelInfo] = field(default_factory=list)

    @property
    def ids(self) -> list[str]:
        return [m.id for m in self.data if m.id]

    @classmethod
    def from_dict(cls, data: dict) -> ModelsResponse:
        models = []
        for m in data.get("data") or []:
            model_id = m.get("id", m.get("name", ""))
            if model_id:
                models.append(ModelInfo(
                    id=model_id,
                    object=m.get("object", "model"),
                    created=m.get("created", 0),
                    owned_by=m.get("owned_by", "local"),
                ))
        return cls(object=data.get("object", "list"), data=models)
