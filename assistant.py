"""One assistant turn: route the transcript, ask for a completion, keep history."""

from __future__ import annotations

import threading
from typing import Any, Optional

from api_client import ApiClient
from error_classifier import log_error
from errors import EMPTY_TRANSCRIPT, AppError, ErrorKind
from interfaces import CompletionService, HistoryStore
from logger import get_logger
from models import AnalysisResult, CommandCategory, CommandRecord, ResultEnvelope
from prompts import build_user_message, get_system_prompt
from resilience import ResilientCaller
from router import CommandRouter

_logger = get_logger("assistant")

ANALYZE_ENDPOINT = "/api/analyze"


class CommandAssistant:
    def __init__(
        self,
        completion: CompletionService,
        router: Optional[CommandRouter] = None,
        caller: Optional[ResilientCaller] = None,
        history: Optional[HistoryStore] = None,
    ) -> None:
        self._completion = completion
        self._router = router or CommandRouter()
        self._caller = caller or ResilientCaller()
        self._history = history

    def analyze(
        self,
        transcript: str,
        context: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ResultEnvelope[AnalysisResult]:
        invalid = _validate(transcript)
        if invalid is not None:
            return invalid

        category = self._router.classify(transcript)
        system_prompt = get_system_prompt(category)
        user_message = build_user_message(transcript, context)
        _logger.info("Analyzing %s command", category.value)

        envelope = self._caller.call(
            lambda: self._completion.request(system_prompt, user_message),
            decode=self._completion.parse_response,
            cancel=cancel,
            context="analyze",
        )
        if not envelope.success:
            return envelope

        completion = envelope.data
        result = AnalysisResult(
            response=completion.text,
            category=category,
            tokens_used=completion.tokens_used,
        )
        _append_history(self._history, transcript, context, result)
        return ResultEnvelope.ok(result)


class RemoteCommandAssistant:
    """Delegates analysis to a server exposing ``POST /api/analyze``."""

    def __init__(
        self,
        client: ApiClient,
        router: Optional[CommandRouter] = None,
        history: Optional[HistoryStore] = None,
    ) -> None:
        self._client = client
        self._router = router or CommandRouter()
        self._history = history

    def analyze(
        self,
        transcript: str,
        context: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ResultEnvelope[AnalysisResult]:
        invalid = _validate(transcript)
        if invalid is not None:
            return invalid

        category = self._router.classify(transcript)
        envelope = self._client.post(
            ANALYZE_ENDPOINT,
            {"transcript": transcript, "context": context, "commandType": category.value},
            cancel=cancel,
        )
        if not envelope.success:
            return envelope

        body = _unwrap(envelope.data)
        response = body.get("response") if isinstance(body, dict) else None
        if not isinstance(response, str):
            error = AppError(ErrorKind.UNKNOWN, "Analyze response was malformed.", False,
                             details=body)
            log_error(error, "analyze")
            return ResultEnvelope.fail(error)

        tokens = body.get("tokensUsed")
        result = AnalysisResult(
            response=response,
            category=category,
            tokens_used=tokens if isinstance(tokens, int) else None,
        )
        _append_history(self._history, transcript, context, result)
        return ResultEnvelope.ok(result)


def _validate(transcript: str) -> Optional[ResultEnvelope[AnalysisResult]]:
    if transcript and transcript.strip():
        return None
    return ResultEnvelope.fail(AppError(ErrorKind.VALIDATION, EMPTY_TRANSCRIPT, False))


def _unwrap(body: Any) -> Any:
    # Servers may answer with the same {success, data} envelope.
    if isinstance(body, dict) and "success" in body and isinstance(body.get("data"), dict):
        return body["data"]
    return body


def _append_history(
    history: Optional[HistoryStore],
    transcript: str,
    context: Optional[str],
    result: AnalysisResult,
) -> None:
    if history is None:
        return
    history.append(
        CommandRecord(
            transcript=transcript,
            response=result.response,
            category=CommandCategory(result.category),
            context=context,
            tokens_used=result.tokens_used,
        )
    )
