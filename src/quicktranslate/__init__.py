from .cancellation import CancellationToken, OperationCancelled
from .classifier import FailureClass, classify
from .gateway import GatewayNotConfiguredError, ProviderGateway
from .health import HealthProber
from .retry import AttemptResult, RetryDriver, RetryPolicy
from .types import (
    ChatRequest,
    ChatResponse,
    HealthStatus,
    ProviderFamily,
    ProviderProfile,
    TranslationOutcome,
)

__all__ = [
    "AttemptResult",
    "CancellationToken",
    "ChatRequest",
    "ChatResponse",
    "FailureClass",
    "GatewayNotConfiguredError",
    "HealthProber",
    "HealthStatus",
    "OperationCancelled",
    "ProviderFamily",
    "ProviderGateway",
    "ProviderProfile",
    "RetryDriver",
    "RetryPolicy",
    "TranslationOutcome",
    "classify",
]
