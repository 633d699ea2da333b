import asyncio

import httpx
import pytest

from src.quicktranslate.cancellation import OperationCancelled
from src.quicktranslate.classifier import (
    FailureClass,
    classify,
    classify_exception,
    classify_status,
)
from src.quicktranslate.normalizer import ResponseFormatError
from src.quicktranslate.types import ApiError, ChatResponse


@pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
def test_retryable_statuses(status: int) -> None:
    assert classify_status(status) is FailureClass.RETRYABLE


@pytest.mark.parametrize("status", [400, 401, 403, 404, 422, 501, 505])
def test_permanent_statuses(status: int) -> None:
    assert classify_status(status) is FailureClass.PERMANENT


@pytest.mark.parametrize("status", [200, 201, 204])
def test_success_statuses_are_not_failures(status: int) -> None:
    assert classify_status(status) is None


def test_transport_errors_are_retryable() -> None:
    request = httpx.Request("POST", "https://api.example.com/v1/chat/completions")
    assert classify_exception(httpx.ConnectError("refused", request=request)) is FailureClass.RETRYABLE
    assert classify_exception(httpx.ReadTimeout("slow", request=request)) is FailureClass.RETRYABLE
    assert classify_exception(httpx.RemoteProtocolError("eof", request=request)) is FailureClass.RETRYABLE


def test_cancellation_is_its_own_class() -> None:
    assert classify_exception(asyncio.CancelledError()) is FailureClass.CANCELLED
    assert classify_exception(OperationCancelled()) is FailureClass.CANCELLED


def test_transport_error_caused_by_cancellation_is_cancelled() -> None:
    request = httpx.Request("GET", "https://api.example.com")
    error = httpx.ConnectError("aborted", request=request)
    error.__cause__ = OperationCancelled()
    assert classify_exception(error) is FailureClass.CANCELLED


def test_shape_errors_are_permanent() -> None:
    assert classify_exception(ResponseFormatError("bad json")) is FailureClass.PERMANENT
    assert classify_exception(KeyError("choices")) is FailureClass.PERMANENT


def test_classify_dispatches_on_outcome_type() -> None:
    assert classify(503) is FailureClass.RETRYABLE
    assert classify(200) is None
    assert classify(ChatResponse(error=ApiError(message="x", type="y"))) is FailureClass.PERMANENT
    assert classify(ChatResponse(choices=[])) is None
    with pytest.raises(TypeError):
        classify(True)
    with pytest.raises(TypeError):
        classify("503")  # type: ignore[arg-type]
