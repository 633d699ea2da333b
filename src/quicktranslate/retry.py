from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar

from .cancellation import CancellationToken, OperationCancelled
from .classifier import FailureClass, classify_exception
from .events import EventSink, LoggingEventSink, emit_safely, make_record

T = TypeVar("T")

CANCELLED_REASON = "Request was cancelled"


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    backoff_base: float = 2.0
    backoff_scale: float = 1.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry_index: int) -> float:
        return self.backoff_scale * (self.backoff_base ** retry_index)


@dataclass
class AttemptResult(Generic[T]):
    failure: FailureClass | None = None
    value: T | None = None
    reason: str = ""
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> "AttemptResult[T]":
        return cls(value=value)

    @classmethod
    def retryable(cls, reason: str, value: T | None = None) -> "AttemptResult[T]":
        return cls(failure=FailureClass.RETRYABLE, reason=reason, value=value)

    @classmethod
    def permanent(cls, reason: str, value: T | None = None) -> "AttemptResult[T]":
        return cls(failure=FailureClass.PERMANENT, reason=reason, value=value)

    @classmethod
    def cancelled(cls) -> "AttemptResult[T]":
        return cls(failure=FailureClass.CANCELLED, reason=CANCELLED_REASON)


@dataclass
class RetryState:
    attempt: int = 0
    last_reason: str | None = None
    delays: list[float] = field(default_factory=list)


class RetryDriver:
    """Run a unit of work with bounded exponential backoff.

    Attempts are strictly sequential. The loop ends on the first success, on a
    permanent failure, or as soon as the cancellation token fires (including
    during an in-flight attempt or a backoff sleep). Exhausting the budget with
    retryable failures yields a permanent result naming the budget.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        events: EventSink | None = None,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._events = events or LoggingEventSink()

    async def execute(
        self,
        work: Callable[[], Awaitable[AttemptResult[T]]],
        token: CancellationToken | None = None,
        *,
        context: dict[str, Any] | None = None,
    ) -> AttemptResult[T]:
        token = token or CancellationToken()
        fields = dict(context or {})
        state = RetryState()
        last_result: AttemptResult[T] | None = None

        while state.attempt < self.policy.max_attempts:
            if token.cancelled:
                return self._finish(AttemptResult.cancelled(), state)
            state.attempt += 1
            await emit_safely(self._events, make_record("attempt", attempt=state.attempt, **fields))
            result = await self._run_attempt(work, token)
            if result.failure is not FailureClass.RETRYABLE:
                return self._finish(result, state)

            last_result = result
            state.last_reason = result.reason
            if state.attempt >= self.policy.max_attempts:
                break

            delay = self.policy.delay_for(state.attempt)
            state.delays.append(delay)
            await emit_safely(
                self._events,
                make_record(
                    "retry",
                    attempt=state.attempt,
                    delay_s=delay,
                    reason=result.reason,
                    **fields,
                )
            )
            if not await token.sleep(delay):
                return self._finish(AttemptResult.cancelled(), state)

        exhausted: AttemptResult[T] = AttemptResult.permanent(
            f"Request failed after {self.policy.max_retries} retries: {state.last_reason}",
            value=last_result.value if last_result is not None else None,
        )
        return self._finish(exhausted, state)

    async def _run_attempt(
        self,
        work: Callable[[], Awaitable[AttemptResult[T]]],
        token: CancellationToken,
    ) -> AttemptResult[T]:
        try:
            return await token.run(work())
        except OperationCancelled:
            return AttemptResult.cancelled()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            failure = classify_exception(exc)
            if failure is FailureClass.CANCELLED:
                return AttemptResult.cancelled()
            return AttemptResult(failure=failure, reason=str(exc) or type(exc).__name__)

    @staticmethod
    def _finish(result: AttemptResult[T], state: RetryState) -> AttemptResult[T]:
        result.attempts = state.attempt
        return result


__all__ = [
    "AttemptResult",
    "CANCELLED_REASON",
    "RetryDriver",
    "RetryPolicy",
    "RetryState",
]
