"""Bounded retries with exponential backoff around one logical request."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from error_classifier import classify, log_error
from errors import DECODE_FAILED, REQUEST_CANCELLED, AppError, ErrorKind
from logger import get_logger
from models import RequestAttempt, ResultEnvelope

_logger = get_logger("resilience")

_POLL_INTERVAL_S = 0.05

AttemptCallback = Callable[[RequestAttempt], None]


@dataclass(frozen=True)
class BackoffPolicy:
    """``delay(n) = min(base_delay_s * 2**n, max_delay_s)``, without jitter."""

    base_delay_s: float = 1.0
    max_delay_s: float = 30.0

    def delay(self, attempt: int) -> float:
        if attempt < 0:
            raise ValueError(f"attempt must be non-negative, got {attempt}")
        # Keeps 2 ** attempt within float range.
        if attempt >= 64:
            return self.max_delay_s
        return min(self.base_delay_s * (2 ** attempt), self.max_delay_s)


DEFAULT_BACKOFF = BackoffPolicy()


def get_retry_delay(attempt: int) -> float:
    return DEFAULT_BACKOFF.delay(attempt)


class _AttemptRunner:
    """Runs one attempt on a daemon thread so the caller can time it out."""

    def __init__(self, issue_attempt: Callable[[], Any]) -> None:
        self._issue_attempt = issue_attempt
        self.done = threading.Event()
        self.result: Any = None
        self.error: Optional[BaseException] = None

    def start(self) -> None:
        threading.Thread(target=self._run, daemon=True).start()

    def _run(self) -> None:
        try:
            self.result = self._issue_attempt()
        except Exception as exc:
            self.error = exc
        finally:
            self.done.set()


class ResilientCaller:
    def __init__(
        self,
        backoff: BackoffPolicy = DEFAULT_BACKOFF,
        max_retries: int = 3,
        timeout_s: float = 30.0,
        sleep: Optional[Callable[[float], None]] = None,
        drain_timeout_s: float = 5.0,
    ) -> None:
        self._backoff = backoff
        self._max_retries = max_retries
        self._timeout_s = timeout_s
        self._sleep = sleep
        self._drain_timeout_s = drain_timeout_s

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def call(
        self,
        issue_attempt: Callable[[], Any],
        decode: Optional[Callable[[Any], Any]] = None,
        max_retries: Optional[int] = None,
        timeout_s: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
        context: Optional[str] = None,
        on_attempt: Optional[AttemptCallback] = None,
    ) -> ResultEnvelope:
        """Issue ``issue_attempt`` until it succeeds or retrying stops.

        ``issue_attempt`` returns a raw response or raises. A response whose
        ``status_code`` is 400 or above counts as a failure; anything else is
        passed through ``decode``. Retryable failures are retried at most
        ``max_retries`` times with backoff between attempts. A timed-out
        attempt must return within ``drain_timeout_s`` before the next one
        starts; otherwise the call fails without retrying. Setting
        ``cancel`` stops the in-flight wait and any pending backoff sleep.
        Never raises.
        """
        retries = self._max_retries if max_retries is None else max_retries
        timeout = self._timeout_s if timeout_s is None else timeout_s
        cancel = cancel or threading.Event()

        attempt = 0
        while True:
            record = RequestAttempt(index=attempt, timeout_s=timeout)
            started = time.monotonic()
            payload, error = self._run_attempt(issue_attempt, decode, timeout, cancel)
            record.elapsed_s = time.monotonic() - started
            record.success = error is None
            if on_attempt:
                on_attempt(record)

            if error is None:
                if attempt > 0:
                    _logger.info("%s succeeded on attempt %d", context or "request", attempt + 1)
                return ResultEnvelope.ok(payload)

            if error.is_retryable and attempt < retries and not cancel.is_set():
                delay = self._backoff.delay(attempt)
                _logger.warning(
                    "Attempt %d of %s failed (%s: %s), retrying in %.1fs",
                    attempt + 1, context or "request", error.kind.value, error.message, delay,
                )
                if self._wait(delay, cancel):
                    error = _cancelled()
                else:
                    attempt += 1
                    continue

            log_error(error, context)
            return ResultEnvelope.fail(error)

    def _run_attempt(
        self,
        issue_attempt: Callable[[], Any],
        decode: Optional[Callable[[Any], Any]],
        timeout: float,
        cancel: threading.Event,
    ) -> tuple[Any, Optional[AppError]]:
        if cancel.is_set():
            return None, _cancelled()

        runner = _AttemptRunner(issue_attempt)
        runner.start()
        deadline = time.monotonic() + timeout
        while not runner.done.is_set():
            if cancel.is_set():
                return None, _cancelled()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None, self._timed_out(runner, timeout, cancel)
            runner.done.wait(min(_POLL_INTERVAL_S, remaining))

        if runner.error is not None:
            return None, classify(runner.error)

        raw = runner.result
        status = getattr(raw, "status_code", None)
        if not isinstance(status, int):
            status = None
        elif status >= 400:
            return None, classify(raw)

        if decode is None:
            return raw, None
        try:
            return decode(raw), None
        except Exception as exc:
            return None, AppError(ErrorKind.UNKNOWN, DECODE_FAILED, False, status, str(exc))

    def _timed_out(
        self,
        runner: _AttemptRunner,
        timeout: float,
        cancel: threading.Event,
    ) -> AppError:
        error = classify(TimeoutError(f"attempt timed out after {timeout:.1f}s"))
        # Attempts never overlap: the next one waits for this one to return.
        deadline = time.monotonic() + self._drain_timeout_s
        while not runner.done.is_set():
            if cancel.is_set():
                return _cancelled()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                _logger.warning(
                    "Timed-out attempt still running after %.1fs, not retrying",
                    self._drain_timeout_s,
                )
                return replace(error, is_retryable=False)
            runner.done.wait(min(_POLL_INTERVAL_S, remaining))
        return error

    def _wait(self, delay: float, cancel: threading.Event) -> bool:
        """Sleep between attempts; True when the turn was cancelled."""
        if self._sleep is None:
            return cancel.wait(delay)
        self._sleep(delay)
        return cancel.is_set()


def _cancelled() -> AppError:
    return AppError(ErrorKind.UNKNOWN, REQUEST_CANCELLED, False)
