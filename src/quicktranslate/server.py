"""Local HTTP surface consumed by the desktop shell.

Run with ``uvicorn --factory src.quicktranslate.server:create_app``.
"""

import logging
import os
from typing import Any, Optional

import httpx
from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from .events import EventSink, FanOutEventSink, JsonlEventSink, LoggingEventSink
from .gateway import GatewayNotConfiguredError, ProviderGateway
from .health import HealthProber
from .history import TranslationHistory
from .settings import AppSettings, SettingsStore, env_var_as_bool
from .translation import TranslationRequest, TranslationService
from .types import HealthStatus, ProviderProfile, TranslationOutcome

logger = logging.getLogger(__name__)

EVENT_LOG_DIR_ENV = "QTRANSLATE_EVENT_LOG_DIR"
LOG_EVENTS_ENV = "QTRANSLATE_LOG_EVENTS"
HISTORY_FILE = "history.json"


class ActiveProviderBody(BaseModel):
    provider_id: str


class ProviderSummary(BaseModel):
    id: str
    name: str
    base_url: str
    model: str
    family: str
    has_api_key: bool
    active: bool


class ProvidersResponse(BaseModel):
    active_provider_id: Optional[str]
    providers: list[ProviderSummary]


def _events_from_env() -> EventSink:
    sinks: list[EventSink] = []
    if env_var_as_bool(LOG_EVENTS_ENV, default=True):
        sinks.append(LoggingEventSink())
    event_dir = os.environ.get(EVENT_LOG_DIR_ENV, "").strip()
    if event_dir:
        sinks.append(JsonlEventSink(event_dir))
    return FanOutEventSink(sinks)


def _summaries(settings: AppSettings) -> ProvidersResponse:
    active = settings.active_provider()
    active_id = active.id if active is not None else None
    return ProvidersResponse(
        active_provider_id=active_id,
        providers=[
            ProviderSummary(
                id=provider.id,
                name=provider.name,
                base_url=provider.base_url,
                model=provider.model,
                family=provider.family.value,
                has_api_key=provider.has_credential,
                active=provider.id == active_id,
            )
            for provider in settings.providers
        ],
    )


def create_app(
    store: SettingsStore | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    events: EventSink | None = None,
    history: TranslationHistory | None = None,
) -> FastAPI:
    store = store or SettingsStore()
    events = events or _events_from_env()
    settings = store.load()
    gateway = ProviderGateway(settings.active_provider(), events=events, transport=transport)
    prober = HealthProber(events=events, transport=transport, tts_base_url=settings.tts_base_url)
    service = TranslationService(gateway)
    if history is None:
        history = TranslationHistory(store.path.with_name(HISTORY_FILE))

    active = settings.active_provider()
    logger.info(
        "app created providers=%d active=%s settings=%s",
        len(settings.providers),
        active.name if active is not None else None,
        store.path,
    )

    app = FastAPI(title="quicktranslate")
    app.state.settings = settings
    app.state.gateway = gateway
    app.state.prober = prober
    app.state.history = history

    @app.get("/healthz")
    async def healthz() -> dict[str, Any]:
        profile = gateway.current_profile
        return {"status": "ok", "provider": profile.name if profile is not None else None}

    @app.post("/v1/translate", response_model=TranslationOutcome)
    async def translate(body: TranslationRequest) -> TranslationOutcome:
        request = body
        if request.profile_id is None:
            request = body.model_copy(update={"profile_id": app.state.settings.active_profile_id})
        # the gateway snapshots the same profile before its first await
        profile = gateway.current_profile
        try:
            outcome = await service.translate(request)
        except GatewayNotConfiguredError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        history.record(request, outcome, profile.name if profile is not None else None)
        return outcome

    @app.get("/v1/providers", response_model=ProvidersResponse)
    async def list_providers() -> ProvidersResponse:
        return _summaries(app.state.settings)

    @app.put("/v1/providers/active", response_model=ProvidersResponse)
    async def set_active_provider(body: ActiveProviderBody) -> ProvidersResponse:
        current: AppSettings = app.state.settings
        if not current.set_active_provider(body.provider_id):
            raise HTTPException(status_code=404, detail=f"unknown provider '{body.provider_id}'")
        profile = current.active_provider()
        if profile is not None:
            gateway.update_profile(profile)
        store.save(current)
        return _summaries(current)

    @app.put("/v1/providers/{provider_id}", response_model=ProvidersResponse)
    async def upsert_provider(provider_id: str, body: ProviderProfile) -> ProvidersResponse:
        current: AppSettings = app.state.settings
        profile = body.model_copy(update={"id": provider_id})
        current.replace_provider(profile)
        active = current.active_provider()
        if active is not None and active.id == provider_id:
            gateway.update_profile(active)
        store.save(current)
        return _summaries(current)

    @app.delete("/v1/providers/{provider_id}", response_model=ProvidersResponse)
    async def delete_provider(provider_id: str) -> ProvidersResponse:
        current: AppSettings = app.state.settings
        if current.find_provider(provider_id) is None:
            raise HTTPException(status_code=404, detail=f"unknown provider '{provider_id}'")
        if len(current.providers) == 1:
            raise HTTPException(status_code=409, detail="cannot remove the last provider")
        previous = current.active_provider()
        current.remove_provider(provider_id)
        active = current.active_provider()
        if active is not None and active != previous:
            gateway.update_profile(active)
        store.save(current)
        return _summaries(current)

    @app.post("/v1/providers/{provider_id}/probe", response_model=HealthStatus)
    async def probe_provider(provider_id: str) -> HealthStatus:
        profile = app.state.settings.find_provider(provider_id)
        if profile is None:
            raise HTTPException(status_code=404, detail=f"unknown provider '{provider_id}'")
        return await prober.probe_provider(profile)

    @app.get("/v1/tts/probe", response_model=HealthStatus)
    async def probe_tts() -> HealthStatus:
        return await prober.probe_side_service()

    @app.get("/v1/history")
    async def list_history(limit: int = Query(default=50, ge=1, le=500)) -> list[dict[str, Any]]:
        return [item.model_dump(mode="json") for item in history.recent(limit)]

    return app


__all__ = ["create_app"]
