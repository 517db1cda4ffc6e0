"""Completion service backed by the DashScope Generation API."""

from __future__ import annotations

import os
from typing import Any

from errors import SDK_MISSING, CompletionError
from logger import get_logger
from models import CompletionResult

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

_logger = get_logger("completion")

NO_RESPONSE = "No response generated"


class DashscopeCompletionService:
    def __init__(
        self,
        api_key: str = "",
        model: str = "qwen-plus",
        temperature: float = 0.7,
        max_tokens: int = 1500,
        request_timeout_s: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._request_timeout_s = request_timeout_s

    @property
    def model(self) -> str:
        return self._model

    def request(self, system_prompt: str, user_message: str) -> Any:
        """Issue one generation request and return the raw SDK response."""
        if dashscope is None:
            raise CompletionError(SDK_MISSING)
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise CompletionError("invalid api key: no API key configured")

        _logger.debug("Requesting completion from %s", self._model)
        return dashscope.Generation.call(
            api_key=api_key,
            model=self._model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            result_format="message",
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            request_timeout=self._request_timeout_s,
        )

    def parse_response(self, raw: Any) -> CompletionResult:
        """Decode a successful response; raises ValueError when malformed."""
        output = _field(raw, "output")
        choices = _field(output, "choices")
        if not isinstance(choices, (list, tuple)):
            raise ValueError("completion response has no choices")
        if not choices:
            return CompletionResult(text=NO_RESPONSE, tokens_used=_tokens_used(raw))
        message = _field(choices[0], "message")
        content = _field(message, "content")
        if content is not None and not isinstance(content, str):
            raise ValueError(f"unexpected completion content: {type(content).__name__}")
        return CompletionResult(text=content or NO_RESPONSE, tokens_used=_tokens_used(raw))

    def complete(self, system_prompt: str, user_message: str) -> CompletionResult:
        raw = self.request(system_prompt, user_message)
        status = getattr(raw, "status_code", None)
        if isinstance(status, int) and status >= 400:
            message = _field(raw, "message") or f"HTTP Error: {status}"
            raise CompletionError(str(message), status, str(_field(raw, "code") or ""))
        return self.parse_response(raw)


def _field(source: Any, name: str) -> Any:
    """Read a key from SDK dict-like objects or a plain attribute."""
    if source is None:
        return None
    if isinstance(source, dict):
        return source.get(name)
    return getattr(source, name, None)


def _tokens_used(raw: Any) -> int | None:
    total = _field(_field(raw, "usage"), "total_tokens")
    return total if isinstance(total, int) else None
