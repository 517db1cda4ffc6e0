"""Core data models for the assistant."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, cast

from errors import AppError, ErrorKind

T = TypeVar("T")


class RecognitionState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    SPEAKING = "speaking"
    ERROR = "error"


class RecognitionKind(str, Enum):
    PARTIAL = "partial"
    FINAL = "final"
    ERROR = "error"
    END = "end"


class CommandCategory(str, Enum):
    GITHUB_PR = "github_pr"
    ERROR_LOG = "error_log"
    COMMIT_MSG = "commit_msg"
    CODE_REVIEW = "code_review"
    API_DOCS = "api_docs"
    DEFAULT = "default"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class RecognitionEvent:
    kind: str
    text: str = ""
    # Device error code or the exception raised by the recognition backend.
    error: Any = None


@dataclass(frozen=True)
class CaptureConfig:
    language: str = "en-US"
    continuous: bool = True
    interim_results: bool = True
    max_utterance_s: float = 15.0


@dataclass
class RequestAttempt:
    index: int
    timeout_s: float
    success: bool = False
    elapsed_s: float = 0.0


@dataclass(frozen=True)
class ResultEnvelope(Generic[T]):
    """Uniform success/failure wrapper returned by the resilient caller.

    A successful envelope carries ``data`` and never an ``error_kind``;
    a failed one carries ``error_kind`` and ``message`` and never ``data``.
    """

    success: bool
    data: Optional[T] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None

    def __post_init__(self) -> None:
        if self.success and self.error_kind is not None:
            raise ValueError("successful envelope cannot carry an error kind")
        if not self.success and (self.error_kind is None or self.data is not None):
            raise ValueError("failed envelope needs an error kind and no data")

    @classmethod
    def ok(cls, data: T) -> "ResultEnvelope[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: AppError) -> "ResultEnvelope[T]":
        return cls(success=False, error_kind=error.kind, message=error.message)

    def to_dict(self) -> dict:
        """JSON-shaped form: ``{success, data?, error?, code?}``."""
        if self.success:
            data = asdict(self.data) if is_dataclass(self.data) else self.data
            return {"success": True, "data": data}
        kind = cast(ErrorKind, self.error_kind)
        return {"success": False, "error": self.message, "code": kind.value}


@dataclass(frozen=True)
class CompletionResult:
    text: str
    tokens_used: Optional[int] = None


@dataclass(frozen=True)
class AnalysisResult:
    response: str
    category: CommandCategory
    tokens_used: Optional[int] = None


@dataclass(frozen=True)
class CommandRecord:
    transcript: str
    response: str
    category: CommandCategory
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    context: Optional[str] = None
    tokens_used: Optional[int] = None
