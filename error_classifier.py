"""Map raw failures to AppError values.

A failure source may be an HTTP status code, a response object or exception
carrying ``status_code``, a transport exception, a completion-service error
message, or a capture device error name. ``classify`` is total: anything it
does not recognise becomes a retryable ``UNKNOWN`` error.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from errors import (
    AUTH_FAILED,
    INVALID_REQUEST,
    LLM_INVALID_KEY,
    LLM_RATE_LIMIT,
    LLM_TIMEOUT,
    LLM_UNAVAILABLE,
    MIC_DENIED,
    MIC_FAILED,
    MIC_NOT_FOUND,
    NETWORK_FAILED,
    NOT_ALLOWED_ERROR,
    NOT_FOUND_ERROR,
    RATE_LIMITED,
    SDK_MISSING,
    SERVER_ERROR,
    UNKNOWN_FAILURE,
    AppError,
    ErrorKind,
)
from logger import get_logger

_logger = get_logger("errors")

# Message fragments checked in order against completion-service errors.
_LLM_TEXT_RULES: tuple[tuple[str, str, bool], ...] = (
    ("invalid api key", LLM_INVALID_KEY, False),
    ("rate limit", LLM_RATE_LIMIT, True),
    ("timeout", LLM_TIMEOUT, True),
    (SDK_MISSING, LLM_UNAVAILABLE, False),
)


def classify(source: object) -> AppError:
    status = _status_of(source)
    details = _message_of(source)
    if status is not None:
        return _classify_status(status, details)

    if isinstance(source, OSError):
        return AppError(ErrorKind.NETWORK, NETWORK_FAILED, True, details=details)

    low = details.lower()
    for fragment, message, retryable in _LLM_TEXT_RULES:
        if fragment in low:
            return AppError(ErrorKind.LLM_ERROR, message, retryable, details=details)

    device_name = _device_name_of(source)
    if device_name == NOT_ALLOWED_ERROR:
        return AppError(ErrorKind.MICROPHONE, MIC_DENIED, True, details=details)
    if device_name == NOT_FOUND_ERROR:
        return AppError(ErrorKind.MICROPHONE, MIC_NOT_FOUND, False, details=details)

    return AppError(ErrorKind.UNKNOWN, UNKNOWN_FAILURE, True, details=details)


def microphone_error(source: object) -> AppError:
    """Classify a capture failure, always yielding a MICROPHONE error."""
    error = classify(source)
    if error.kind == ErrorKind.MICROPHONE:
        return error
    return AppError(ErrorKind.MICROPHONE, MIC_FAILED, True, details=error.details)


def format_error_message(error: AppError) -> str:
    return f"{error.message}{' Try again.' if error.is_retryable else ''}"


def log_error(error: AppError, context: Optional[str] = None) -> None:
    timestamp = datetime.now(timezone.utc).isoformat()
    context_str = f" {context}" if context else ""
    _logger.error(
        "[%s%s] %s: %s", timestamp, context_str, error.kind.value, error.message,
        extra={"details": error.details},
    )


def _classify_status(status: int, details: str) -> AppError:
    if status == 429:
        return AppError(ErrorKind.API_ERROR, RATE_LIMITED, True, status, details)
    if status == 400:
        return AppError(ErrorKind.VALIDATION, INVALID_REQUEST, False, status, details)
    if status == 401:
        return AppError(ErrorKind.API_ERROR, AUTH_FAILED, False, status, details)
    if status >= 500:
        return AppError(ErrorKind.API_ERROR, SERVER_ERROR, True, status, details)
    return AppError(ErrorKind.NETWORK, NETWORK_FAILED, True, status, details)


def _status_of(source: object) -> Optional[int]:
    if isinstance(source, bool):
        return None
    if isinstance(source, int):
        return source
    status = _field(source, "status_code")
    if isinstance(status, int) and not isinstance(status, bool):
        return status
    # requests.HTTPError keeps the status on its response
    response = getattr(source, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int) and not isinstance(status, bool):
        return status
    return None


def _message_of(source: object) -> str:
    if isinstance(source, str):
        return source
    if isinstance(source, BaseException):
        return str(source)
    message = _field(source, "message")
    if isinstance(message, str):
        return message
    return ""


def _field(source: object, name: str) -> object:
    # DashScope responses and stream chunks are dicts.
    if isinstance(source, dict):
        return source.get(name)
    return getattr(source, name, None)


def _device_name_of(source: object) -> Optional[str]:
    if isinstance(source, str):
        return source.strip()
    name = getattr(source, "name", None)
    if isinstance(name, str):
        return name
    if isinstance(source, BaseException):
        return type(source).__name__
    return None
