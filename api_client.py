"""JSON HTTP client whose requests go through the resilient caller."""

from __future__ import annotations

import threading
from typing import Any, Optional

import requests

from models import ResultEnvelope
from resilience import ResilientCaller

DEFAULT_HEADERS = {"Content-Type": "application/json"}


class ApiClient:
    def __init__(
        self,
        base_url: str,
        caller: Optional[ResilientCaller] = None,
        headers: Optional[dict[str, str]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._caller = caller or ResilientCaller()
        self._headers = {**DEFAULT_HEADERS, **(headers or {})}
        self._session = session or requests.Session()

    @property
    def base_url(self) -> str:
        return self._base_url

    def get(self, endpoint: str, **options: Any) -> ResultEnvelope:
        return self._send("GET", endpoint, None, **options)

    def post(self, endpoint: str, payload: Any, **options: Any) -> ResultEnvelope:
        return self._send("POST", endpoint, payload, **options)

    def put(self, endpoint: str, payload: Any, **options: Any) -> ResultEnvelope:
        return self._send("PUT", endpoint, payload, **options)

    def delete(self, endpoint: str, **options: Any) -> ResultEnvelope:
        return self._send("DELETE", endpoint, None, **options)

    def _send(
        self,
        method: str,
        endpoint: str,
        payload: Any,
        max_retries: Optional[int] = None,
        timeout_s: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> ResultEnvelope:
        url = f"{self._base_url}{endpoint}"
        merged_headers = {**self._headers, **(headers or {})}
        # Same bound on the socket as on the attempt.
        request_timeout = self._caller.timeout_s if timeout_s is None else timeout_s

        def issue_attempt() -> requests.Response:
            return self._session.request(
                method,
                url,
                headers=merged_headers,
                json=payload,
                timeout=request_timeout,
            )

        return self._caller.call(
            issue_attempt,
            decode=_decode_json,
            max_retries=max_retries,
            timeout_s=timeout_s,
            cancel=cancel,
            context=f"{method} {endpoint}",
        )


def _decode_json(response: requests.Response) -> Any:
    if not response.content:
        return None
    return response.json()
