"""Protocol interfaces for the assistant's collaborators."""

from __future__ import annotations

from queue import Queue
from typing import Any, Callable, Optional, Protocol

from models import (
    AnalysisResult,
    AudioFrame,
    CommandRecord,
    CompletionResult,
    RecognitionEvent,
    ResultEnvelope,
)

EventCallback = Callable[[RecognitionEvent], None]


class Recorder(Protocol):
    @property
    def available(self) -> bool: ...

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None: ...

    def stop(self) -> None: ...


class RecognizerAdapter(Protocol):
    def start(self, audio_queue: Queue[AudioFrame | None], on_event: EventCallback) -> None: ...

    def stop(self) -> None: ...


class SpeechCapture(Protocol):
    """Voice input device: partial/final results, errors and one end per capture."""

    @property
    def available(self) -> bool: ...

    def start(self, on_event: EventCallback) -> None: ...

    def stop(self) -> None: ...

    def abort(self) -> None: ...


class CompletionService(Protocol):
    def request(self, system_prompt: str, user_message: str) -> Any: ...

    def parse_response(self, raw: Any) -> CompletionResult: ...

    def complete(self, system_prompt: str, user_message: str) -> CompletionResult: ...


class HistoryStore(Protocol):
    def append(self, record: CommandRecord) -> None: ...


class Assistant(Protocol):
    def analyze(
        self,
        transcript: str,
        context: Optional[str] = None,
        cancel: Any = None,
    ) -> ResultEnvelope[AnalysisResult]: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...

    def get_cancel_key(self) -> str: ...

    def get_model(self) -> str: ...

    def get_asr_model(self) -> str: ...

    def get_language(self) -> str: ...

    def get_max_retries(self) -> int: ...

    def get_timeout_s(self) -> float: ...

    def get_api_url(self) -> str: ...
