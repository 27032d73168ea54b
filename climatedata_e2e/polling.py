"""
Condition polling for asynchronous test assertions.

Network responses and UI state in the portal settle eventually, so assertions
on them are wrapped in a probe that is retried until it stops raising or the
time budget runs out.

Usage:
    async def probe():
        exchange = await recorder.wait()
        assert exchange.json()["numberMatched"] > 87000
        return exchange

    exchange = await poll(probe, timeout_ms=6500, interval_ms=2000, verbose=True)
"""
import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_MS = 6500
DEFAULT_INTERVAL_MS = 2000
DEFAULT_ERROR_MESSAGE = "Timeout reached"


@dataclass(frozen=True)
class PollAttempt:
    """Result of a single probe evaluation. ``error`` is None on success."""

    index: int
    elapsed_ms: float
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class PollConfig:
    """
    Options for a poll invocation.

    Args:
        timeout_ms: Total time budget in milliseconds
        interval_ms: Delay between attempts in milliseconds
        error_message: Message used when the budget is exhausted
        verbose: Log one line per attempt
        check_message: Text logged on every attempt
        on_each_attempt: Called with the PollAttempt after every attempt
    """

    timeout_ms: float = DEFAULT_TIMEOUT_MS
    interval_ms: float = DEFAULT_INTERVAL_MS
    error_message: str = DEFAULT_ERROR_MESSAGE
    verbose: bool = False
    check_message: Optional[str] = None
    on_each_attempt: Optional[Callable[[PollAttempt], None]] = None

    def __post_init__(self):
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {self.interval_ms}")


@dataclass(frozen=True)
class PollOutcome(Generic[T]):
    """Terminal result of a poll: resolved with a value, or timed out."""

    resolved: bool
    attempts: int
    elapsed_ms: float
    value: Optional[T] = None
    last_cause: Optional[BaseException] = None


class PollTimeoutError(TimeoutError):
    """Raised when no attempt succeeded within the time budget."""

    def __init__(self, message: str, last_cause: Optional[BaseException], attempts: int, elapsed_ms: float):
        self.message = message
        self.last_cause = last_cause
        self.attempts = attempts
        self.elapsed_ms = elapsed_ms
        detail = f"{message} after {attempts} attempt(s) in {elapsed_ms:.0f}ms"
        if last_cause is not None:
            detail = f"{detail}; last error: {type(last_cause).__name__}: {last_cause}"
        super().__init__(detail)


class ConditionPoller(Generic[T]):
    """
    Evaluates a probe sequentially until it succeeds or the budget is spent.

    One instance serves one invocation; the attempt counter and start time are
    reset by every call to ``run``. ``clock`` returns seconds and ``sleep``
    takes seconds, matching ``time.monotonic`` and ``asyncio.sleep``.
    """

    def __init__(
        self,
        config: PollConfig,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self._clock = clock
        self._sleep = sleep
        self._attempts = 0
        self._started = 0.0

    def _elapsed_ms(self) -> float:
        return (self._clock() - self._started) * 1000.0

    def _report(self, attempt: PollAttempt) -> None:
        config = self.config
        if config.verbose:
            if attempt.succeeded:
                message, args = "poll attempt %d succeeded at %.0fms", [attempt.index, attempt.elapsed_ms]
            else:
                message, args = "poll attempt %d failed at %.0fms: %s", [attempt.index, attempt.elapsed_ms, attempt.error]
            # One record per attempt, with the check message folded in
            if config.check_message:
                message += " [%s]"
                args.append(config.check_message)
            logger.info(message, *args)
        elif config.check_message:
            logger.info(config.check_message)

        if config.on_each_attempt is not None:
            try:
                config.on_each_attempt(attempt)
            except Exception:
                logger.exception("on_each_attempt callback failed on attempt %d", attempt.index)

    async def run(self, probe: Callable[[], Awaitable[T]]) -> PollOutcome[T]:
        """Poll ``probe`` and return the outcome without raising on timeout."""
        self._attempts = 0
        self._started = self._clock()
        last_cause: Optional[BaseException] = None

        while True:
            self._attempts += 1
            try:
                value = await probe()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                last_cause = exc
                self._report(PollAttempt(self._attempts, self._elapsed_ms(), exc))
            else:
                elapsed = self._elapsed_ms()
                self._report(PollAttempt(self._attempts, elapsed))
                return PollOutcome(True, self._attempts, elapsed, value=value)

            if self._elapsed_ms() >= self.config.timeout_ms:
                break
            await self._sleep(self.config.interval_ms / 1000.0)
            if self._elapsed_ms() >= self.config.timeout_ms:
                break

        return PollOutcome(False, self._attempts, self._elapsed_ms(), last_cause=last_cause)


async def poll(
    probe: Callable[[], Awaitable[T]],
    config: Optional[PollConfig] = None,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **overrides: Any,
) -> T:
    """
    Retry ``probe`` until it returns without raising.

    Keyword overrides (``timeout_ms``, ``interval_ms``, ``error_message``,
    ``verbose``, ``check_message``, ``on_each_attempt``) replace the matching
    fields of ``config``.

    Returns:
        The value returned by the first successful attempt

    Raises:
        PollTimeoutError: If no attempt succeeded before ``timeout_ms`` elapsed
    """
    config = config or PollConfig()
    if overrides:
        config = replace(config, **overrides)

    outcome = await ConditionPoller(config, clock=clock, sleep=sleep).run(probe)
    if outcome.resolved:
        return outcome.value

    raise PollTimeoutError(
        config.error_message, outcome.last_cause, outcome.attempts, outcome.elapsed_ms
    ) from outcome.last_cause
