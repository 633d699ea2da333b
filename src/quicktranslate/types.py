import uuid
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderFamily(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    OLLAMA = "ollama"
    CUSTOM = "custom"


def _new_id() -> str:
    return uuid.uuid4().hex


class ProviderProfile(BaseModel):
    """One configured chat-completion backend.

    Profiles are frozen: edits go through ``model_copy(update=...)`` and the
    resulting profile replaces the old one wholesale.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(default_factory=_new_id, min_length=1)
    name: str = Field(default="New Provider", min_length=1, max_length=100)
    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = Field(default="gpt-4o-mini", min_length=1, max_length=100)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4096, gt=0, le=32000)
    timeout_seconds: float = Field(default=60.0, gt=0, le=300)
    family: ProviderFamily = ProviderFamily.OPENAI

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        stripped = value.strip()
        lowered = stripped.lower()
        if not (lowered.startswith("http://") or lowered.startswith("https://")):
            raise ValueError("base_url must be an absolute http(s) URL")
        if len(stripped.split("://", 1)[1].strip("/")) == 0:
            raise ValueError("base_url must include a host")
        return stripped

    @property
    def requires_api_key(self) -> bool:
        return self.family is not ProviderFamily.OLLAMA

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key.strip())


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    model: str
    messages: List[ChatMessage]
    temperature: float
    max_tokens: int


class ApiError(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: Optional[str] = None
    type: Optional[str] = None


class ChatChoice(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: Optional[dict[str, Any]] = None
    finish_reason: Optional[str] = None

    @property
    def content(self) -> str | None:
        if self.message is None:
            return None
        value = self.message.get("content")
        return value if isinstance(value, str) else None


class ChatResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    choices: Optional[List[ChatChoice]] = None
    data: Optional[List[ChatChoice]] = None
    error: Optional[ApiError] = None

    def choice_list(self) -> list[ChatChoice]:
        # some providers only populate ``data``
        if self.choices:
            return list(self.choices)
        if self.data:
            return list(self.data)
        return []


class TranslationOutcome(BaseModel):
    success: bool
    translated_text: str = ""
    detected_language: Optional[str] = None
    error_message: Optional[str] = None
    cancelled: bool = False

    @classmethod
    def succeeded(cls, text: str, detected_language: str | None = None) -> "TranslationOutcome":
        return cls(success=True, translated_text=text, detected_language=detected_language)

    @classmethod
    def failed(cls, message: str, *, cancelled: bool = False) -> "TranslationOutcome":
        return cls(success=False, error_message=message, cancelled=cancelled)


class HealthStatus(BaseModel):
    healthy: bool
    reason: str

    @classmethod
    def ok(cls, reason: str) -> "HealthStatus":
        return cls(healthy=True, reason=reason)

    @classmethod
    def unhealthy(cls, reason: str) -> "HealthStatus":
        return cls(healthy=False, reason=reason)


__all__ = [
    "ProviderFamily",
    "ProviderProfile",
    "ChatMessage",
    "ChatRequest",
    "ApiError",
    "ChatChoice",
    "ChatResponse",
    "TranslationOutcome",
    "HealthStatus",
]
