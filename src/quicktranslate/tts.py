from __future__ import annotations

import logging

import httpx

from .cancellation import CancellationToken, OperationCancelled
from .health import DEFAULT_TTS_URL
from .languages import DEFAULT_LANGUAGE, SUPPORTED_TTS_LANGUAGES, normalize_language

logger = logging.getLogger(__name__)

SYNTHESIS_TIMEOUT_SECONDS = 30.0


class SpeechClient:
    """Client for the Piper-style TTS service (``{base}/{lang}/api/tts``)."""

    def __init__(
        self,
        base_url: str = DEFAULT_TTS_URL,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def endpoint(self, language: str) -> str:
        code = normalize_language(language)
        if code not in SUPPORTED_TTS_LANGUAGES:
            logger.warning("tts unsupported language=%s fallback=%s", language, DEFAULT_LANGUAGE)
            code = DEFAULT_LANGUAGE
        return f"{self.base_url}/{code}/api/tts"

    async def synthesize(
        self,
        text: str,
        language: str,
        token: CancellationToken | None = None,
    ) -> bytes | None:
        if not text or not text.strip():
            logger.warning("tts empty text")
            return None
        token = token or CancellationToken()
        url = self.endpoint(language)
        payload = {"text": text, "audio_format": "wav"}
        logger.info("tts synthesize chars=%d url=%s", len(text), url)

        async def send() -> httpx.Response:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=SYNTHESIS_TIMEOUT_SECONDS
            ) as client:
                return await client.post(url, json=payload)

        try:
            response = await token.run(send())
        except OperationCancelled:
            logger.info("tts request cancelled")
            return None
        except httpx.HTTPError as exc:
            logger.error("tts synthesis failed detail=%s", exc)
            return None
        if not response.is_success:
            logger.error("tts request failed status=%d", response.status_code)
            return None
        audio = response.content
        logger.info("tts received bytes=%d", len(audio))
        return audio


__all__ = ["SpeechClient", "SYNTHESIS_TIMEOUT_SECONDS"]
