import asyncio
import json

import httpx
import pytest

from src.quicktranslate.cancellation import CancellationToken
from src.quicktranslate.events import MemoryEventSink
from src.quicktranslate.health import HealthProber, probe_timeout
from src.quicktranslate.types import ProviderFamily, ProviderProfile


def make_profile(**overrides: object) -> ProviderProfile:
    data: dict[str, object] = {
        "name": "primary",
        "base_url": "https://api.example.com/v1",
        "api_key": "sk-x",
        "model": "gpt-4o-mini",
    }
    data.update(overrides)
    return ProviderProfile(**data)


def make_prober(handler, **kwargs) -> tuple[HealthProber, list[httpx.Request], MemoryEventSink]:
    seen: list[httpx.Request] = []

    async def recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return await handler(request)

    sink = MemoryEventSink()
    prober = HealthProber(events=sink, transport=httpx.MockTransport(recording), **kwargs)
    return prober, seen, sink


def test_probe_timeout_is_capped() -> None:
    assert probe_timeout(make_profile(timeout_seconds=120)) == 30
    assert probe_timeout(make_profile(timeout_seconds=5)) == 5


@pytest.mark.anyio
async def test_healthy_provider(anyio_backend: str) -> None:
    _ = anyio_backend

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": "OK"}}]})

    prober, seen, sink = make_prober(handler)
    status = await prober.probe_provider(make_profile())

    assert status.healthy
    assert status.reason == "Provider 'primary' is responding normally"
    [request] = seen
    assert str(request.url) == "https://api.example.com/v1/chat/completions"
    payload = json.loads(request.content)
    assert payload["max_tokens"] == 10
    assert payload["temperature"] == 0
    assert payload["messages"][0]["content"] == "You are a health check assistant."
    [record] = sink.of("probe")
    assert record["provider"] == "primary"
    assert record["ok"] is True


@pytest.mark.anyio
async def test_probe_never_retries(anyio_backend: str) -> None:
    _ = anyio_backend

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    prober, seen, _sink = make_prober(handler)
    status = await prober.probe_provider(make_profile())

    assert not status.healthy
    assert status.reason == "API returned status 503"
    assert len(seen) == 1


@pytest.mark.anyio
async def test_missing_key_is_unhealthy_without_network(anyio_backend: str) -> None:
    _ = anyio_backend

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={})

    prober, seen, _sink = make_prober(handler)
    status = await prober.probe_provider(make_profile(api_key=""))

    assert not status.healthy
    assert status.reason == "API key is not configured"
    assert seen == []


@pytest.mark.anyio
async def test_local_provider_without_key_is_probed(anyio_backend: str) -> None:
    _ = anyio_backend

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": "OK"}}]})

    prober, seen, _sink = make_prober(handler)
    status = await prober.probe_provider(
        make_profile(api_key="", family=ProviderFamily.OLLAMA, base_url="http://localhost:11434/v1")
    )

    assert status.healthy
    assert "Authorization" not in seen[0].headers


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("body", "healthy", "reason"),
    [
        ("", False, "Empty response from API"),
        ('{"error": {"message": "model not found"}}', False, "API Error: model not found"),
        ("<html>not json</html>", True, "Provider 'primary' is responding normally"),
    ],
)
async def test_provider_reply_judgement(
    anyio_backend: str, body: str, healthy: bool, reason: str
) -> None:
    _ = anyio_backend

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body)

    prober, _seen, _sink = make_prober(handler)
    status = await prober.probe_provider(make_profile())

    assert status.healthy is healthy
    assert status.reason == reason


@pytest.mark.anyio
async def test_timeout_is_reported(anyio_backend: str) -> None:
    _ = anyio_backend

    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    prober, _seen, _sink = make_prober(handler)
    status = await prober.probe_provider(make_profile())

    assert not status.healthy
    assert status.reason == "Request timed out"


@pytest.mark.anyio
async def test_network_error_is_reported(anyio_backend: str) -> None:
    _ = anyio_backend

    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    prober, _seen, _sink = make_prober(handler)
    status = await prober.probe_provider(make_profile())

    assert not status.healthy
    assert status.reason == "Network error: connection refused"


@pytest.mark.anyio
async def test_cancelled_probe(anyio_backend: str) -> None:
    _ = anyio_backend

    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(30)
        return httpx.Response(200, text="{}")

    prober, _seen, _sink = make_prober(handler)
    token = CancellationToken()
    token.cancel_after(0.05)
    status = await prober.probe_provider(make_profile(), token)

    assert not status.healthy
    assert status.reason == "Request was cancelled"


@pytest.mark.anyio
async def test_side_service_probe(anyio_backend: str) -> None:
    _ = anyio_backend

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "ok"})

    prober, seen, sink = make_prober(handler, tts_base_url="https://tts.example.com/")
    status = await prober.probe_side_service()

    assert status.healthy
    assert status.reason == "TTS service is available"
    assert seen[0].method == "GET"
    assert str(seen[0].url) == "https://tts.example.com/ru/api/health"
    assert sink.of("probe")[0]["provider"] == "TTS"


@pytest.mark.anyio
async def test_side_service_failure_status(anyio_backend: str) -> None:
    _ = anyio_backend

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502)

    prober, seen, _sink = make_prober(handler)
    status = await prober.probe_side_service("https://other.example.com")

    assert not status.healthy
    assert status.reason == "TTS service returned status 502"
    assert str(seen[0].url) == "https://other.example.com/ru/api/health"


@pytest.mark.anyio
async def test_side_service_timeout(anyio_backend: str) -> None:
    _ = anyio_backend

    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("slow", request=request)

    prober, _seen, _sink = make_prober(handler)
    status = await prober.probe_side_service()

    assert status.reason == "TTS service request timed out"


@pytest.mark.anyio
async def test_probe_all_keys_results(anyio_backend: str) -> None:
    _ = anyio_backend

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/api/health"):
            return httpx.Response(200)
        if request.url.host == "down.example.com":
            return httpx.Response(500)
        return httpx.Response(200, json={"choices": [{"message": {"content": "OK"}}]})

    prober, _seen, _sink = make_prober(handler)
    statuses = await prober.probe_all(
        [
            make_profile(name="up"),
            make_profile(name="down", base_url="https://down.example.com/v1"),
        ]
    )

    assert set(statuses) == {"TTS", "up", "down"}
    assert statuses["TTS"].healthy
    assert statuses["up"].healthy
    assert not statuses["down"].healthy


class FailingSink:
    async def emit(self, record: dict) -> None:
        raise OSError("disk full")


@pytest.mark.anyio
async def test_failing_event_sink_does_not_change_status(anyio_backend: str) -> None:
    _ = anyio_backend

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": "OK"}}]})

    prober = HealthProber(events=FailingSink(), transport=httpx.MockTransport(handler))

    assert (await prober.probe_provider(make_profile())).healthy
    assert (await prober.probe_side_service()).healthy
