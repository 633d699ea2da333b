from __future__ import annotations

import asyncio
import logging
from typing import Iterable

import httpx

from .cancellation import CancellationToken, OperationCancelled
from .events import EventSink, LoggingEventSink, emit_safely, make_record
from .normalizer import build_headers, endpoint_for, probe_error
from .types import ChatMessage, ChatRequest, HealthStatus, ProviderProfile

logger = logging.getLogger(__name__)

DEFAULT_TTS_URL = "https://tts.rox-net.ru"
TTS_HEALTH_PATH = "ru/api/health"
PROBE_TIMEOUT_CAP_SECONDS = 30.0
SIDE_SERVICE_TIMEOUT_SECONDS = 10.0
SIDE_SERVICE_KEY = "TTS"

PROBE_SYSTEM_PROMPT = "You are a health check assistant."
PROBE_USER_PROMPT = "Respond with exactly 'OK' and nothing else."
PROBE_MAX_TOKENS = 10


def build_probe_request(profile: ProviderProfile) -> ChatRequest:
    return ChatRequest(
        model=profile.model,
        messages=[
            ChatMessage(role="system", content=PROBE_SYSTEM_PROMPT),
            ChatMessage(role="user", content=PROBE_USER_PROMPT),
        ],
        temperature=0,
        max_tokens=PROBE_MAX_TOKENS,
    )


def probe_timeout(profile: ProviderProfile) -> float:
    return min(profile.timeout_seconds, PROBE_TIMEOUT_CAP_SECONDS)


class HealthProber:
    """Single-shot reachability checks for providers and the TTS service.

    Probes share the gateway's endpoint and auth rules but never retry.
    """

    def __init__(
        self,
        *,
        events: EventSink | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        tts_base_url: str = DEFAULT_TTS_URL,
    ) -> None:
        self._events = events or LoggingEventSink()
        self._transport = transport
        self.tts_base_url = tts_base_url

    async def probe_provider(
        self,
        profile: ProviderProfile,
        token: CancellationToken | None = None,
    ) -> HealthStatus:
        if profile.requires_api_key and not profile.has_credential:
            status = HealthStatus.unhealthy("API key is not configured")
            await self._record(profile.name, status)
            return status

        token = token or CancellationToken()
        url = endpoint_for(profile)
        headers = build_headers(profile)
        payload = build_probe_request(profile).model_dump(mode="json")
        logger.debug("provider probe url=%s provider=%s", url, profile.name)

        async def send() -> httpx.Response:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=probe_timeout(profile)
            ) as client:
                return await client.post(url, headers=headers, json=payload)

        try:
            response = await token.run(send())
        except OperationCancelled:
            status = HealthStatus.unhealthy("Request was cancelled")
        except httpx.TimeoutException:
            status = HealthStatus.unhealthy("Request timed out")
        except httpx.TransportError as exc:
            status = HealthStatus.unhealthy(f"Network error: {exc}")
        except Exception as exc:
            logger.exception("provider probe failed provider=%s", profile.name)
            status = HealthStatus.unhealthy(f"Unexpected error: {exc}")
        else:
            status = self._judge_provider_reply(profile, response)
        await self._record(profile.name, status)
        return status

    @staticmethod
    def _judge_provider_reply(profile: ProviderProfile, response: httpx.Response) -> HealthStatus:
        if not response.is_success:
            return HealthStatus.unhealthy(f"API returned status {response.status_code}")
        body = response.text
        if not body.strip():
            return HealthStatus.unhealthy("Empty response from API")
        error = probe_error(body)
        if error is not None:
            return HealthStatus.unhealthy(error)
        return HealthStatus.ok(f"Provider '{profile.name}' is responding normally")

    async def probe_side_service(
        self,
        endpoint: str | None = None,
        token: CancellationToken | None = None,
    ) -> HealthStatus:
        token = token or CancellationToken()
        base = (endpoint or self.tts_base_url).rstrip("/")
        url = f"{base}/{TTS_HEALTH_PATH}"

        async def send() -> httpx.Response:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=SIDE_SERVICE_TIMEOUT_SECONDS
            ) as client:
                return await client.get(url)

        try:
            response = await token.run(send())
        except OperationCancelled:
            status = HealthStatus.unhealthy("TTS service request was cancelled")
        except httpx.TimeoutException:
            status = HealthStatus.unhealthy("TTS service request timed out")
        except httpx.TransportError as exc:
            status = HealthStatus.unhealthy(f"Network error: {exc}")
        except Exception as exc:
            logger.exception("tts probe failed url=%s", url)
            status = HealthStatus.unhealthy(f"Unexpected error: {exc}")
        else:
            if response.is_success:
                status = HealthStatus.ok("TTS service is available")
            else:
                status = HealthStatus.unhealthy(
                    f"TTS service returned status {response.status_code}"
                )
        await self._record(SIDE_SERVICE_KEY, status)
        return status

    async def probe_all(
        self,
        profiles: Iterable[ProviderProfile],
        token: CancellationToken | None = None,
    ) -> dict[str, HealthStatus]:
        targets = list(profiles)
        results = await asyncio.gather(
            self.probe_side_service(token=token),
            *(self.probe_provider(profile, token) for profile in targets),
        )
        statuses: dict[str, HealthStatus] = {SIDE_SERVICE_KEY: results[0]}
        for profile, status in zip(targets, results[1:]):
            statuses[profile.name] = status
        return statuses

    async def _record(self, target: str, status: HealthStatus) -> None:
        await emit_safely(
            self._events,
            make_record("probe", provider=target, ok=status.healthy, reason=status.reason),
        )


__all__ = [
    "DEFAULT_TTS_URL",
    "HealthProber",
    "PROBE_TIMEOUT_CAP_SECONDS",
    "SIDE_SERVICE_TIMEOUT_SECONDS",
    "build_probe_request",
    "probe_timeout",
]
