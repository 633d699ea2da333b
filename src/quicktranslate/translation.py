from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel, Field

from .cancellation import CancellationToken
from .gateway import ProviderGateway
from .settings import DEFAULT_TARGET_LANGUAGE
from .types import TranslationOutcome

logger = logging.getLogger(__name__)


class TranslationProfile(BaseModel):
    id: str
    name: str
    system_prompt_hint: str = ""
    built_in: bool = False


BUILT_IN_PROFILES: tuple[TranslationProfile, ...] = (
    TranslationProfile(id="general", name="General", built_in=True),
    TranslationProfile(
        id="technical",
        name="Technical",
        system_prompt_hint=(
            "This is technical documentation. Preserve code snippets, API names, variable names, "
            "and technical terms without translation. Use precise technical terminology."
        ),
        built_in=True,
    ),
    TranslationProfile(
        id="literary",
        name="Literary",
        system_prompt_hint=(
            "This is literary/fiction text. Preserve the author's style, tone, and voice. "
            "Adapt idioms and metaphors naturally to the target language while maintaining "
            "emotional impact."
        ),
        built_in=True,
    ),
    TranslationProfile(
        id="legal",
        name="Legal",
        system_prompt_hint=(
            "This is a legal document. Use formal legal terminology. Maintain precise wording "
            "and structure. Preserve legal terms in their standard translated form."
        ),
        built_in=True,
    ),
    TranslationProfile(
        id="medical",
        name="Medical",
        system_prompt_hint=(
            "This is medical/scientific text. Use proper medical terminology. Keep Latin terms "
            "where conventionally used. Accuracy is critical."
        ),
        built_in=True,
    ),
    TranslationProfile(
        id="casual",
        name="Casual",
        system_prompt_hint=(
            "This is casual/informal text. Use conversational tone. Slang and colloquialisms "
            "are acceptable. Make it sound natural."
        ),
        built_in=True,
    ),
)


def find_profile(profile_id: str | None) -> TranslationProfile | None:
    if not profile_id:
        return None
    return next((profile for profile in BUILT_IN_PROFILES if profile.id == profile_id), None)


class TranslationRequest(BaseModel):
    source_text: str
    source_language: Optional[str] = None
    target_language: str = Field(default=DEFAULT_TARGET_LANGUAGE, min_length=1)
    profile_id: Optional[str] = None


_RULES = (
    "Provide ONLY the translation without any explanations, notes, or additional text.\n"
    "Preserve the original formatting, including line breaks and paragraphs.\n"
    "If the text contains technical terms, translate them appropriately for the context."
)


def build_system_prompt(request: TranslationRequest, profile: TranslationProfile | None = None) -> str:
    target = request.target_language
    if request.source_language:
        prompt = (
            "You are a professional translator. Translate the following text from "
            f"{request.source_language} to {target}.\n{_RULES}"
        )
    else:
        prompt = (
            "You are a professional translator. Detect the language of the following text "
            f"and translate it to {target}.\n"
            f"If the text is already in {target}, translate it to English instead.\n{_RULES}"
        )
    if profile is not None and profile.system_prompt_hint:
        prompt = f"{prompt}\n\nAdditional context: {profile.system_prompt_hint}"
    return prompt


class TranslationService:
    def __init__(self, gateway: ProviderGateway):
        self.gateway = gateway

    async def translate(
        self,
        request: TranslationRequest,
        token: CancellationToken | None = None,
    ) -> TranslationOutcome:
        if not request.source_text.strip():
            return TranslationOutcome.failed("Source text is empty")
        logger.info("translation started target=%s profile=%s", request.target_language, request.profile_id)
        system_prompt = build_system_prompt(request, find_profile(request.profile_id))
        return await self.gateway.translate(system_prompt, request.source_text, token)


__all__ = [
    "BUILT_IN_PROFILES",
    "TranslationProfile",
    "TranslationRequest",
    "TranslationService",
    "build_system_prompt",
    "find_profile",
]
