"""Application settings and their YAML-backed store.

The gateway never reads the store itself: whoever owns the store picks the
active provider and hands it to ``ProviderGateway.update_profile``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .health import DEFAULT_TTS_URL
from .types import ProviderFamily, ProviderProfile

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "QTRANSLATE_CONFIG_DIR"
SETTINGS_FILE = "settings.yaml"
DEFAULT_TARGET_LANGUAGE = "Russian"

TRUTHY_VALUES: frozenset[str] = frozenset({"1", "true", "yes", "on"})
FALSY_VALUES: frozenset[str] = frozenset({"0", "false", "no", "off"})


def env_var_as_bool(name: str, *, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if not normalized:
        return default
    if normalized in TRUTHY_VALUES:
        return True
    if normalized in FALSY_VALUES:
        return False
    return default


def default_settings_path() -> Path:
    configured = os.environ.get(CONFIG_DIR_ENV, "").strip()
    if configured:
        return Path(configured) / SETTINGS_FILE
    return Path.home() / ".config" / "quicktranslate" / SETTINGS_FILE


def default_provider() -> ProviderProfile:
    return ProviderProfile(
        name="OpenAI",
        base_url="https://api.openai.com/v1",
        model="gpt-4o-mini",
        temperature=0.3,
        max_tokens=4096,
        timeout_seconds=60,
        family=ProviderFamily.OPENAI,
    )


class AppSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    providers: list[ProviderProfile] = Field(default_factory=list)
    active_provider_id: str | None = None
    target_language: str = DEFAULT_TARGET_LANGUAGE
    active_profile_id: str = "general"
    tts_base_url: str = DEFAULT_TTS_URL

    def active_provider(self) -> ProviderProfile | None:
        if not self.providers:
            return None
        if self.active_provider_id:
            for provider in self.providers:
                if provider.id == self.active_provider_id:
                    return provider
        return self.providers[0]

    def find_provider(self, provider_id: str) -> ProviderProfile | None:
        return next((p for p in self.providers if p.id == provider_id), None)

    def set_active_provider(self, provider_id: str) -> bool:
        if self.find_provider(provider_id) is None:
            return False
        self.active_provider_id = provider_id
        return True

    def replace_provider(self, profile: ProviderProfile) -> None:
        for index, existing in enumerate(self.providers):
            if existing.id == profile.id:
                self.providers[index] = profile
                return
        self.providers.append(profile)

    def remove_provider(self, provider_id: str) -> bool:
        remaining = [p for p in self.providers if p.id != provider_id]
        if len(remaining) == len(self.providers):
            return False
        self.providers = remaining
        if self.active_provider_id == provider_id:
            self.active_provider_id = remaining[0].id if remaining else None
        return True


def default_settings() -> AppSettings:
    provider = default_provider()
    return AppSettings(providers=[provider], active_provider_id=provider.id)


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = " -> ".join(str(item) for item in error.get("loc", ())) or "<root>"
        problems.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(problems)


class SettingsStore:
    def __init__(self, path: str | os.PathLike[str] | None = None):
        self.path = Path(path) if path is not None else default_settings_path()

    def load(self) -> AppSettings:
        if not self.path.exists():
            logger.info("settings file not found path=%s; writing defaults", self.path)
            settings = default_settings()
            self.save(settings)
            return settings
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                raw: Any = yaml.safe_load(handle) or {}
            if not isinstance(raw, dict):
                raise ValueError("settings file must contain a mapping")
            settings = AppSettings.model_validate(raw)
        except ValidationError as exc:
            logger.error(
                "invalid settings path=%s detail=%s", self.path, _describe_validation_error(exc)
            )
            return default_settings()
        except (OSError, ValueError, yaml.YAMLError) as exc:
            logger.error("failed to load settings path=%s detail=%s", self.path, exc)
            return default_settings()
        if not settings.providers:
            provider = default_provider()
            settings.providers.append(provider)
            settings.active_provider_id = provider.id
        logger.info("settings loaded providers=%d", len(settings.providers))
        return settings

    def save(self, settings: AppSettings) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = settings.model_dump(mode="json")
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as handle:
            yaml.safe_dump(data, handle, allow_unicode=True, sort_keys=False)
        os.replace(tmp_path, self.path)
        logger.info("settings saved providers=%d", len(settings.providers))


__all__ = [
    "AppSettings",
    "CONFIG_DIR_ENV",
    "SettingsStore",
    "default_provider",
    "default_settings",
    "default_settings_path",
    "env_var_as_bool",
]
