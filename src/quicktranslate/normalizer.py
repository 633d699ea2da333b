"""Canonical chat-completion request/response handling.

Every provider family is currently spoken to in the OpenAI-compatible dialect;
the differences between families are limited to what ``FAMILY_POLICIES``
records (whether a bearer token may be omitted and which path suffix the
endpoint carries).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from .types import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ProviderFamily,
    ProviderProfile,
)

CHAT_COMPLETIONS_SUFFIX = "/chat/completions"

_QUOTE_PAIRS: tuple[tuple[str, str], ...] = (
    ('"', '"'),
    ("'", "'"),
    ("“", "”"),
    ("«", "»"),
)


class ResponseFormatError(ValueError):
    """Raised when a response body cannot be read as a chat completion."""


@dataclass(frozen=True)
class FamilyPolicy:
    auth_optional: bool = False
    endpoint_suffix: str = CHAT_COMPLETIONS_SUFFIX


FAMILY_POLICIES: dict[ProviderFamily, FamilyPolicy] = {
    ProviderFamily.OPENAI: FamilyPolicy(),
    ProviderFamily.ANTHROPIC: FamilyPolicy(),
    ProviderFamily.GOOGLE: FamilyPolicy(),
    ProviderFamily.OLLAMA: FamilyPolicy(auth_optional=True),
    ProviderFamily.CUSTOM: FamilyPolicy(),
}


def policy_for(family: ProviderFamily) -> FamilyPolicy:
    return FAMILY_POLICIES.get(family, FamilyPolicy())


def build_request(profile: ProviderProfile, system_prompt: str, user_prompt: str) -> ChatRequest:
    return ChatRequest(
        model=profile.model,
        messages=[
            ChatMessage(role="system", content=system_prompt.strip()),
            ChatMessage(role="user", content=user_prompt.strip()),
        ],
        temperature=profile.temperature,
        max_tokens=profile.max_tokens,
    )


def build_endpoint(base_url: str, suffix: str = CHAT_COMPLETIONS_SUFFIX) -> str:
    base = base_url.strip().rstrip("/")
    if base.lower().endswith(suffix.lower()):
        return base
    return f"{base}{suffix}"


def endpoint_for(profile: ProviderProfile) -> str:
    return build_endpoint(profile.base_url, policy_for(profile.family).endpoint_suffix)


def build_headers(profile: ProviderProfile) -> dict[str, str]:
    headers: dict[str, str] = {"Content-Type": "application/json"}
    key = profile.api_key.strip()
    if not key and policy_for(profile.family).auth_optional:
        return headers
    headers["Authorization"] = f"Bearer {key}"
    return headers


def _load_json(raw: str | bytes) -> Any:
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ResponseFormatError("response body is not valid JSON") from exc


def parse_response(raw: str | bytes) -> ChatResponse:
    data = _load_json(raw)
    if not isinstance(data, dict):
        raise ResponseFormatError("response body must be a JSON object")
    try:
        return ChatResponse.model_validate(data)
    except ValidationError as exc:
        raise ResponseFormatError(f"unexpected response shape: {exc.error_count()} error(s)") from exc


def extract_text(response: ChatResponse) -> str | None:
    for choice in response.choice_list():
        content = choice.content
        if content and content.strip():
            return content
    return None


def describe_error(response: ChatResponse) -> str | None:
    if response.error is None:
        return None
    error_type = response.error.type or "Unknown"
    message = response.error.message or "no error message provided"
    return f"API Error ({error_type}): {message}"


def probe_error(raw: str | bytes) -> str | None:
    """Return an error description for a probe reply, or ``None``.

    Bodies that are not JSON are treated as healthy.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict) or data.get("error") is None:
        return None
    error = data["error"]
    if isinstance(error, dict) and "message" in error:
        return f"API Error: {error['message']}"
    return f"API Error: {json.dumps(error, ensure_ascii=False)}"


def error_message_from_body(raw: str) -> str:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message:
                return message
        elif isinstance(error, str) and error:
            return error
    return raw


def clean_translation(text: str) -> str:
    cleaned = text.strip()
    if len(cleaned) > 2:
        for opening, closing in _QUOTE_PAIRS:
            if cleaned.startswith(opening) and cleaned.endswith(closing):
                return cleaned[1:-1].strip()
    return cleaned


__all__ = [
    "CHAT_COMPLETIONS_SUFFIX",
    "FAMILY_POLICIES",
    "FamilyPolicy",
    "ResponseFormatError",
    "build_endpoint",
    "build_headers",
    "build_request",
    "clean_translation",
    "describe_error",
    "endpoint_for",
    "error_message_from_body",
    "extract_text",
    "parse_response",
    "policy_for",
    "probe_error",
]
