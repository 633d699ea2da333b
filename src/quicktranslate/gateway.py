from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass

import httpx

from .cancellation import CancellationToken
from .classifier import FailureClass, classify_status
from .events import EventSink, LoggingEventSink, emit_safely, make_record
from .normalizer import (
    ResponseFormatError,
    build_headers,
    build_request,
    clean_translation,
    describe_error,
    endpoint_for,
    error_message_from_body,
    extract_text,
    parse_response,
)
from .retry import CANCELLED_REASON, AttemptResult, RetryDriver, RetryPolicy
from .types import ProviderProfile, TranslationOutcome

logger = logging.getLogger(__name__)

MISSING_API_KEY_MESSAGE = "API key not configured. Please set up a provider in Settings."


class GatewayNotConfiguredError(RuntimeError):
    """Raised when ``translate`` is called before any provider profile was set."""


@dataclass(frozen=True)
class _RawReply:
    status_code: int
    body: str


class ProviderGateway:
    """Translate through the active provider profile.

    The active profile is the only mutable state. Each call captures it once on
    entry, so a concurrent ``update_profile`` only affects calls that start
    afterwards.
    """

    def __init__(
        self,
        profile: ProviderProfile | None = None,
        *,
        events: EventSink | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        policy: RetryPolicy | None = None,
    ) -> None:
        self._profile = profile
        self._lock = threading.Lock()
        self._events = events or LoggingEventSink()
        self._transport = transport
        self._driver = RetryDriver(policy, events=self._events)

    @property
    def current_profile(self) -> ProviderProfile | None:
        with self._lock:
            return self._profile

    def update_profile(self, profile: ProviderProfile) -> None:
        with self._lock:
            self._profile = profile
        logger.info(
            "provider updated name=%s family=%s model=%s",
            profile.name,
            profile.family.value,
            profile.model,
        )

    async def translate(
        self,
        system_prompt: str,
        user_prompt: str,
        token: CancellationToken | None = None,
    ) -> TranslationOutcome:
        profile = self.current_profile
        if profile is None:
            raise GatewayNotConfiguredError("no provider profile has been configured")

        req_id = uuid.uuid4().hex[:12]
        start = time.perf_counter()
        if profile.requires_api_key and not profile.has_credential:
            outcome = TranslationOutcome.failed(MISSING_API_KEY_MESSAGE)
            await self._emit_outcome(req_id, profile, outcome, attempts=0, start=start)
            return outcome

        token = token or CancellationToken()
        request = build_request(profile, system_prompt, user_prompt)
        payload = request.model_dump(mode="json")
        url = endpoint_for(profile)
        headers = build_headers(profile)

        async def attempt() -> AttemptResult[_RawReply]:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=profile.timeout_seconds
            ) as client:
                response = await client.post(url, headers=headers, json=payload)
            reply = _RawReply(status_code=response.status_code, body=response.text)
            failure = classify_status(response.status_code)
            if failure is None:
                return AttemptResult.success(reply)
            reason = f"HTTP {response.status_code}: {error_message_from_body(reply.body)}"
            if failure is FailureClass.RETRYABLE:
                return AttemptResult.retryable(reason, value=reply)
            return AttemptResult.permanent(reason, value=reply)

        result = await self._driver.execute(
            attempt,
            token,
            context={"req_id": req_id, "provider": profile.name, "url": url},
        )
        outcome = self._to_outcome(result)
        await self._emit_outcome(req_id, profile, outcome, attempts=result.attempts, start=start)
        return outcome

    def _to_outcome(self, result: AttemptResult[_RawReply]) -> TranslationOutcome:
        if result.failure is FailureClass.CANCELLED:
            return TranslationOutcome.failed(CANCELLED_REASON, cancelled=True)
        reply = result.value
        if result.failure is not None:
            # exhausted retries keep the last retryable reply; report the budget instead
            if reply is not None and classify_status(reply.status_code) is FailureClass.PERMANENT:
                return TranslationOutcome.failed(
                    f"API Error ({reply.status_code}): {error_message_from_body(reply.body)}"
                )
            return TranslationOutcome.failed(result.reason or "Request failed")
        if reply is None:
            return TranslationOutcome.failed("Empty response from API")

        try:
            response = parse_response(reply.body)
        except ResponseFormatError as exc:
            logger.error("invalid response format detail=%s", exc)
            return TranslationOutcome.failed("Invalid response format from API")
        error_text = describe_error(response)
        if error_text is not None:
            return TranslationOutcome.failed(error_text)
        text = extract_text(response)
        if text is None:
            logger.warning(
                "empty translation choices=%d data=%d",
                len(response.choices or []),
                len(response.data or []),
            )
            return TranslationOutcome.failed("Empty response from API")
        return TranslationOutcome.succeeded(clean_translation(text))

    async def _emit_outcome(
        self,
        req_id: str,
        profile: ProviderProfile,
        outcome: TranslationOutcome,
        *,
        attempts: int,
        start: float,
    ) -> None:
        latency_ms = int((time.perf_counter() - start) * 1000)
        await emit_safely(
            self._events,
            make_record(
                "outcome",
                req_id=req_id,
                provider=profile.name,
                model=profile.model,
                attempt=attempts,
                ok=outcome.success,
                cancelled=outcome.cancelled,
                latency_ms=latency_ms,
                error=outcome.error_message,
            )
        )


__all__ = [
    "GatewayNotConfiguredError",
    "MISSING_API_KEY_MESSAGE",
    "ProviderGateway",
]
