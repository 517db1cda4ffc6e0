"""Shared error kinds, error values and user-facing messages."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    MICROPHONE = "MICROPHONE_ERROR"
    SPEECH_RECOGNITION = "SPEECH_RECOGNITION_ERROR"
    API_ERROR = "API_ERROR"
    LLM_ERROR = "LLM_ERROR"
    NETWORK = "NETWORK_ERROR"
    VALIDATION = "VALIDATION_ERROR"
    UNKNOWN = "UNKNOWN_ERROR"


# Device error names reported by the capture backend.
NOT_ALLOWED_ERROR = "NotAllowedError"
NOT_FOUND_ERROR = "NotFoundError"

RATE_LIMITED = "Rate limited. Please wait before trying again."
INVALID_REQUEST = "Invalid request. Please check your input."
AUTH_FAILED = "API authentication failed. Please check your API key."
SERVER_ERROR = "Server error. Please try again later."
NETWORK_FAILED = "Network request failed. Please check your connection."
LLM_INVALID_KEY = "Completion API key is invalid. Please check your configuration."
LLM_RATE_LIMIT = "Completion API rate limit exceeded. Please wait."
LLM_TIMEOUT = "Completion request timeout. Please try again."
LLM_UNAVAILABLE = "Completion service is not available. Please install dashscope."
SDK_MISSING = "dashscope is not installed"
MIC_DENIED = "Microphone access denied. Please check system permissions."
MIC_NOT_FOUND = "No microphone device found. Please check your hardware."
MIC_FAILED = "Microphone error occurred. Please try again."
RECOGNITION_FAILED = "Speech recognition failed. Please try again."
DECODE_FAILED = "Response could not be decoded."
REQUEST_CANCELLED = "Request cancelled."
EMPTY_TRANSCRIPT = "Transcript is required."
UNKNOWN_FAILURE = "An unexpected error occurred."


@dataclass(frozen=True)
class AppError:
    kind: ErrorKind
    message: str
    is_retryable: bool
    status_code: Optional[int] = None
    details: Any = None


class VoiceAssistantError(Exception):
    """Raised where an AppError has to cross a call boundary."""

    def __init__(self, error: AppError) -> None:
        super().__init__(error.message)
        self.error = error


class CaptureDeviceError(Exception):
    """Microphone failure carrying a device error name."""

    def __init__(self, name: str, message: str = "") -> None:
        super().__init__(message or name)
        self.name = name


class CompletionError(Exception):
    """Failure reported by the completion service."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: str = "",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
