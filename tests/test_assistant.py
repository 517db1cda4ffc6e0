from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Optional

from assistant import ANALYZE_ENDPOINT, CommandAssistant, RemoteCommandAssistant
from errors import AppError, ErrorKind
from history import InMemoryHistoryStore
from models import CommandCategory, CompletionResult, ResultEnvelope
from prompts import get_system_prompt
from resilience import ResilientCaller


class FakeCompletion:
    def __init__(self, *responses: object) -> None:
        self._responses = list(responses)
        self.requests: list[tuple[str, str]] = []

    def request(self, system_prompt: str, user_message: str) -> Any:
        self.requests.append((system_prompt, user_message))
        outcome = self._responses[min(len(self.requests), len(self._responses)) - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def parse_response(self, raw: Any) -> CompletionResult:
        return CompletionResult(text=raw.text, tokens_used=raw.tokens)

    def complete(self, system_prompt: str, user_message: str) -> CompletionResult:
        return self.parse_response(self.request(system_prompt, user_message))


class FakeClient:
    def __init__(self, envelope: ResultEnvelope) -> None:
        self._envelope = envelope
        self.posts: list[tuple[str, Any]] = []

    def post(self, endpoint: str, payload: Any, **options: Any) -> ResultEnvelope:
        self.posts.append((endpoint, payload))
        return self._envelope


def _ok(text: str, tokens: Optional[int] = 10) -> SimpleNamespace:
    return SimpleNamespace(status_code=200, text=text, tokens=tokens)


def _caller() -> ResilientCaller:
    return ResilientCaller(sleep=lambda _: None)


# ---------------------------------------------------------------
# CommandAssistant
# ---------------------------------------------------------------

def test_analyze_routes_and_records_history() -> None:
    completion = FakeCompletion(_ok("feat(auth): add login"))
    history = InMemoryHistoryStore()
    assistant = CommandAssistant(completion, caller=_caller(), history=history)

    envelope = assistant.analyze("write a commit message", "diff --git a/login.py")

    assert envelope.success is True
    assert envelope.data.response == "feat(auth): add login"
    assert envelope.data.category == CommandCategory.COMMIT_MSG
    assert envelope.data.tokens_used == 10

    system_prompt, user_message = completion.requests[0]
    assert system_prompt == get_system_prompt(CommandCategory.COMMIT_MSG)
    assert user_message.startswith("Command: write a commit message")

    records = history.records()
    assert len(records) == 1
    assert records[0].transcript == "write a commit message"
    assert records[0].context == "diff --git a/login.py"


def test_blank_transcript_is_validation_error() -> None:
    completion = FakeCompletion(_ok("unused"))
    envelope = CommandAssistant(completion, caller=_caller()).analyze("   ")

    assert envelope.success is False
    assert envelope.error_kind == ErrorKind.VALIDATION
    assert completion.requests == []


def test_server_errors_are_retried() -> None:
    completion = FakeCompletion(
        SimpleNamespace(status_code=500),
        SimpleNamespace(status_code=503),
        _ok("third time lucky"),
    )
    envelope = CommandAssistant(completion, caller=_caller()).analyze("hello there")

    assert envelope.success is True
    assert envelope.data.response == "third time lucky"
    assert len(completion.requests) == 3


def test_failure_is_not_recorded() -> None:
    completion = FakeCompletion(SimpleNamespace(status_code=401))
    history = InMemoryHistoryStore()
    envelope = CommandAssistant(completion, caller=_caller(), history=history).analyze("hello")

    assert envelope.success is False
    assert envelope.error_kind == ErrorKind.API_ERROR
    assert len(completion.requests) == 1
    assert history.records() == ()


# ---------------------------------------------------------------
# RemoteCommandAssistant
# ---------------------------------------------------------------

def test_remote_posts_transcript_and_category() -> None:
    client = FakeClient(ResultEnvelope.ok({"response": "looks good", "tokensUsed": 5}))
    history = InMemoryHistoryStore()
    envelope = RemoteCommandAssistant(client, history=history).analyze("review this", "code")

    assert envelope.success is True
    assert envelope.data.response == "looks good"
    assert envelope.data.tokens_used == 5
    assert client.posts == [
        (ANALYZE_ENDPOINT, {"transcript": "review this", "context": "code", "commandType": "code_review"})
    ]
    assert len(history.records()) == 1


def test_remote_unwraps_envelope_body() -> None:
    body = {"success": True, "data": {"response": "wrapped", "category": "default"}}
    envelope = RemoteCommandAssistant(FakeClient(ResultEnvelope.ok(body))).analyze("hello")

    assert envelope.success is True
    assert envelope.data.response == "wrapped"
    assert envelope.data.tokens_used is None


def test_remote_malformed_body_is_failure() -> None:
    envelope = RemoteCommandAssistant(FakeClient(ResultEnvelope.ok({"answer": 1}))).analyze("hello")

    assert envelope.success is False
    assert envelope.error_kind == ErrorKind.UNKNOWN


def test_remote_failure_passes_through() -> None:
    failed = ResultEnvelope.fail(AppError(ErrorKind.NETWORK, "offline", True))
    envelope = RemoteCommandAssistant(FakeClient(failed)).analyze("hello")

    assert envelope is failed
