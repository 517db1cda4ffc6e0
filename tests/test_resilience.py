from __future__ import annotations

import threading
import time

import pytest

from errors import CompletionError, ErrorKind
from models import RequestAttempt
from resilience import BackoffPolicy, ResilientCaller, get_retry_delay


class FakeResponse:
    def __init__(self, status_code: int, payload: object = None) -> None:
        self.status_code = status_code
        self.payload = payload


class ScriptedEndpoint:
    """Returns (or raises) the scripted outcomes in order, repeating the last."""

    def __init__(self, *outcomes: object) -> None:
        self._outcomes = list(outcomes)
        self.calls = 0

    def __call__(self) -> object:
        outcome = self._outcomes[min(self.calls, len(self._outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _caller(sleeps: list[float], **kwargs: object) -> ResilientCaller:
    return ResilientCaller(sleep=sleeps.append, **kwargs)


# ---------------------------------------------------------------
# BackoffPolicy
# ---------------------------------------------------------------

def test_backoff_known_values() -> None:
    policy = BackoffPolicy()
    assert policy.delay(0) == 1.0
    assert policy.delay(1) == 2.0
    assert policy.delay(4) == 16.0
    assert policy.delay(5) == 30.0
    assert policy.delay(10) == 30.0


def test_backoff_is_monotonic_and_capped() -> None:
    policy = BackoffPolicy()
    delays = [policy.delay(n) for n in range(200)]
    assert delays == sorted(delays)
    assert max(delays) == 30.0


def test_backoff_rejects_negative_attempt() -> None:
    with pytest.raises(ValueError):
        BackoffPolicy().delay(-1)


def test_module_level_retry_delay_uses_defaults() -> None:
    assert get_retry_delay(3) == 8.0


# ---------------------------------------------------------------
# Success and decoding
# ---------------------------------------------------------------

def test_success_returns_decoded_payload() -> None:
    sleeps: list[float] = []
    endpoint = ScriptedEndpoint(FakeResponse(200, {"answer": 42}))

    envelope = _caller(sleeps).call(endpoint, decode=lambda r: r.payload)

    assert envelope.success is True
    assert envelope.data == {"answer": 42}
    assert envelope.error_kind is None
    assert endpoint.calls == 1
    assert sleeps == []


def test_plain_return_value_passes_through_without_decode() -> None:
    envelope = _caller([]).call(lambda: "hello")
    assert envelope.success is True
    assert envelope.data == "hello"


def test_decode_failure_is_terminal_unknown() -> None:
    sleeps: list[float] = []
    endpoint = ScriptedEndpoint(FakeResponse(200))

    def bad_decode(_: object) -> object:
        raise ValueError("not json")

    envelope = _caller(sleeps).call(endpoint, decode=bad_decode)

    assert envelope.success is False
    assert envelope.error_kind == ErrorKind.UNKNOWN
    assert endpoint.calls == 1
    assert sleeps == []


# ---------------------------------------------------------------
# Retry bounds
# ---------------------------------------------------------------

def test_always_503_makes_four_attempts() -> None:
    sleeps: list[float] = []
    endpoint = ScriptedEndpoint(FakeResponse(503))

    envelope = _caller(sleeps).call(endpoint, max_retries=3)

    assert endpoint.calls == 4
    assert envelope.success is False
    assert envelope.error_kind == ErrorKind.API_ERROR
    assert envelope.data is None
    assert sleeps == [1.0, 2.0, 4.0]


def test_401_stops_after_one_attempt() -> None:
    sleeps: list[float] = []
    endpoint = ScriptedEndpoint(FakeResponse(401))

    envelope = _caller(sleeps).call(endpoint)

    assert endpoint.calls == 1
    assert envelope.error_kind == ErrorKind.API_ERROR
    assert sleeps == []


def test_two_500s_then_success() -> None:
    sleeps: list[float] = []
    endpoint = ScriptedEndpoint(FakeResponse(500), FakeResponse(500), FakeResponse(200, "third"))
    policy = BackoffPolicy()

    envelope = _caller(sleeps).call(endpoint, decode=lambda r: r.payload)

    assert envelope.success is True
    assert envelope.data == "third"
    assert endpoint.calls == 3
    assert sum(sleeps) == policy.delay(0) + policy.delay(1)


def test_exceptions_are_classified_and_retried() -> None:
    sleeps: list[float] = []
    endpoint = ScriptedEndpoint(ConnectionError("reset"), "ok")

    envelope = _caller(sleeps).call(endpoint)

    assert envelope.success is True
    assert envelope.data == "ok"
    assert sleeps == [1.0]


def test_non_retryable_exception_fails_fast() -> None:
    sleeps: list[float] = []
    endpoint = ScriptedEndpoint(CompletionError("invalid api key"))

    envelope = _caller(sleeps).call(endpoint)

    assert envelope.error_kind == ErrorKind.LLM_ERROR
    assert endpoint.calls == 1
    assert sleeps == []


def test_zero_retries_means_single_attempt() -> None:
    endpoint = ScriptedEndpoint(FakeResponse(500))
    envelope = _caller([]).call(endpoint, max_retries=0)
    assert endpoint.calls == 1
    assert envelope.success is False


def test_on_attempt_reports_each_attempt() -> None:
    attempts: list[RequestAttempt] = []
    endpoint = ScriptedEndpoint(FakeResponse(502), FakeResponse(200))

    _caller([]).call(endpoint, on_attempt=attempts.append)

    assert [a.index for a in attempts] == [0, 1]
    assert [a.success for a in attempts] == [False, True]


def test_terminal_failure_logged_once(caplog) -> None:  # noqa: ANN001
    endpoint = ScriptedEndpoint(FakeResponse(503))
    with caplog.at_level("ERROR", logger="dev_voice"):
        _caller([]).call(endpoint, max_retries=2, context="probe")

    errors = [r for r in caplog.records if r.levelname == "ERROR"]
    assert len(errors) == 1
    assert "API_ERROR" in errors[0].getMessage()


# ---------------------------------------------------------------
# Timeouts and cancellation
# ---------------------------------------------------------------

def test_attempt_timeout_is_network_failure() -> None:
    sleeps: list[float] = []
    release = threading.Event()

    def hang() -> object:
        release.wait(2.0)
        return "late"

    envelope = _caller(sleeps, drain_timeout_s=0.1).call(hang, max_retries=0, timeout_s=0.1)
    release.set()

    assert envelope.success is False
    assert envelope.error_kind == ErrorKind.NETWORK


def test_timeout_is_retried() -> None:
    sleeps: list[float] = []
    calls: list[int] = []

    def slow_then_fast() -> object:
        calls.append(1)
        if len(calls) == 1:
            time.sleep(0.5)
        return "done"

    envelope = _caller(sleeps).call(slow_then_fast, timeout_s=0.1)

    assert envelope.success is True
    assert len(calls) == 2
    assert sleeps == [1.0]


def test_timed_out_attempts_never_overlap() -> None:
    sleeps: list[float] = []
    lock = threading.Lock()
    running = [0]
    peak = [0]

    def slow() -> object:
        with lock:
            running[0] += 1
            peak[0] = max(peak[0], running[0])
        try:
            time.sleep(0.3)
        finally:
            with lock:
                running[0] -= 1
        return "late"

    envelope = _caller(sleeps).call(slow, max_retries=3, timeout_s=0.1)

    assert envelope.success is False
    assert envelope.error_kind == ErrorKind.NETWORK
    assert sleeps == [1.0, 2.0, 4.0]
    assert peak[0] == 1


def test_stuck_attempt_stops_retrying() -> None:
    sleeps: list[float] = []
    release = threading.Event()
    calls: list[int] = []

    def hang() -> object:
        calls.append(1)
        release.wait(2.0)
        return "late"

    envelope = _caller(sleeps, drain_timeout_s=0.1).call(hang, max_retries=3, timeout_s=0.1)
    release.set()

    assert envelope.success is False
    assert envelope.error_kind == ErrorKind.NETWORK
    assert len(calls) == 1
    assert sleeps == []


def test_cancel_interrupts_in_flight_attempt() -> None:
    cancel = threading.Event()
    release = threading.Event()

    def hang() -> object:
        release.wait(2.0)
        return "late"

    threading.Timer(0.1, cancel.set).start()
    started = time.monotonic()
    envelope = ResilientCaller().call(hang, timeout_s=5.0, cancel=cancel)
    elapsed = time.monotonic() - started
    release.set()

    assert envelope.success is False
    assert envelope.message == "Request cancelled."
    assert elapsed < 1.0


def test_cancel_short_circuits_backoff_sleep() -> None:
    cancel = threading.Event()
    endpoint = ScriptedEndpoint(FakeResponse(503))

    threading.Timer(0.1, cancel.set).start()
    started = time.monotonic()
    # Real sleep: first backoff is 1s, cancelled after ~0.1s.
    envelope = ResilientCaller().call(endpoint, cancel=cancel)
    elapsed = time.monotonic() - started

    assert envelope.success is False
    assert envelope.error_kind == ErrorKind.UNKNOWN
    assert endpoint.calls == 1
    assert elapsed < 0.9


def test_already_cancelled_issues_nothing() -> None:
    cancel = threading.Event()
    cancel.set()
    endpoint = ScriptedEndpoint("never")

    envelope = _caller([]).call(endpoint, cancel=cancel)

    assert envelope.success is False
    assert endpoint.calls == 0


def test_calls_do_not_share_attempt_state() -> None:
    caller = _caller([])
    first = ScriptedEndpoint(FakeResponse(500))
    second = ScriptedEndpoint(FakeResponse(500))

    caller.call(first, max_retries=2)
    caller.call(second, max_retries=2)

    assert first.calls == 3
    assert second.calls == 3
