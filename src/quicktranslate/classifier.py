import asyncio
from enum import Enum
from typing import Union

import httpx

from .cancellation import OperationCancelled
from .types import ChatResponse

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})


class FailureClass(str, Enum):
    RETRYABLE = "retryable"
    PERMANENT = "permanent"
    CANCELLED = "cancelled"


def classify_status(status_code: int) -> FailureClass | None:
    if 200 <= status_code < 300:
        return None
    if status_code in RETRYABLE_STATUS_CODES:
        return FailureClass.RETRYABLE
    return FailureClass.PERMANENT


def classify_exception(exc: BaseException) -> FailureClass:
    if isinstance(exc, (asyncio.CancelledError, OperationCancelled)):
        return FailureClass.CANCELLED
    cause = exc.__cause__ or exc.__context__
    if isinstance(cause, (asyncio.CancelledError, OperationCancelled)):
        return FailureClass.CANCELLED
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return FailureClass.RETRYABLE
    return FailureClass.PERMANENT


def classify_response(response: ChatResponse) -> FailureClass | None:
    if response.error is not None:
        return FailureClass.PERMANENT
    return None


Outcome = Union[int, BaseException, ChatResponse]


def classify(outcome: Outcome) -> FailureClass | None:
    """Classify a transport outcome; ``None`` means it was not a failure."""
    if isinstance(outcome, bool):
        raise TypeError("status codes must be integers")
    if isinstance(outcome, int):
        return classify_status(outcome)
    if isinstance(outcome, BaseException):
        return classify_exception(outcome)
    if isinstance(outcome, ChatResponse):
        return classify_response(outcome)
    raise TypeError(f"cannot classify outcome of type {type(outcome).__name__}")


__all__ = [
    "FailureClass",
    "RETRYABLE_STATUS_CODES",
    "classify",
    "classify_exception",
    "classify_response",
    "classify_status",
]
