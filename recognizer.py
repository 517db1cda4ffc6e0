"""Speech recognizer adapter using DashScope qwen3-asr-flash.

PCM frames are collected from the audio queue until the recorder's
sentinel arrives, packed into a WAV payload and streamed to the model.
Partial results are reported as they arrive; the last one becomes the
final transcript. Backend failures are forwarded as error events carrying
the original exception so the capture session can classify them.
"""

from __future__ import annotations

import base64
import io
import os
import threading
import wave
from queue import Empty, Queue
from typing import Callable, Optional

from errors import SDK_MISSING, CompletionError
from models import AudioFrame, RecognitionEvent, RecognitionKind

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore


def _pcm_to_wav_base64(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> str:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return "data:audio/wav;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def language_hint(locale: str) -> str:
    """``"en-US"`` -> ``"en"``; the model takes bare language codes."""
    return locale.replace("_", "-").split("-")[0].lower()


class DashscopeRecognizerAdapter:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen3-asr-flash",
        language: str = "en-US",
        request_timeout_s: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._language = language
        self._request_timeout_s = request_timeout_s
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._audio_queue: Optional[Queue[AudioFrame | None]] = None
        self._on_event: Optional[Callable[[RecognitionEvent], None]] = None

    def start(
        self,
        audio_queue: Queue[AudioFrame | None],
        on_event: Callable[[RecognitionEvent], None],
    ) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._audio_queue = audio_queue
        self._on_event = on_event
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._worker, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=0.5)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(self) -> None:
        if self._audio_queue is None or self._on_event is None:
            return

        pcm = bytearray()
        sample_rate = 16000
        channels = 1

        while not self._stop_event.is_set():
            try:
                frame = self._audio_queue.get(timeout=0.2)
            except Empty:
                continue
            if frame is None:  # Sentinel
                break
            pcm.extend(frame.pcm16_bytes)
            sample_rate = frame.sample_rate
            channels = frame.channels

        if self._stop_event.is_set():
            return

        if not pcm:
            self._emit(RecognitionEvent(kind=RecognitionKind.FINAL.value, text=""))
            return

        self._recognize_stream(_pcm_to_wav_base64(bytes(pcm), sample_rate, channels))

    def _recognize_stream(self, wav_data: str) -> None:
        if dashscope is None:
            self._emit_error(CompletionError(SDK_MISSING))
            return

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            self._emit_error(CompletionError("invalid api key: no API key configured", 401))
            return

        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": wav_data}]},
                ],
                result_format="message",
                asr_options={"language": language_hint(self._language), "enable_itn": False},
                stream=True,
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            self._emit_error(exc)
            return

        latest_text = ""
        try:
            for chunk in response:
                if self._stop_event.is_set():
                    return
                status = _chunk_status(chunk)
                if status is not None and status >= 400:
                    self._emit_error(chunk)
                    return
                text = _extract_text(chunk)
                if text:
                    latest_text = text
                    self._emit(RecognitionEvent(kind=RecognitionKind.PARTIAL.value, text=text))
        except Exception as exc:
            self._emit_error(exc)
            return

        self._emit(RecognitionEvent(kind=RecognitionKind.FINAL.value, text=latest_text))

    def _emit(self, event: RecognitionEvent) -> None:
        if self._on_event is not None:
            self._on_event(event)

    def _emit_error(self, error: object) -> None:
        self._emit(RecognitionEvent(kind=RecognitionKind.ERROR.value, error=error))


def _chunk_status(chunk: object) -> Optional[int]:
    status = chunk.get("status_code") if isinstance(chunk, dict) else None
    return status if isinstance(status, int) else None


def _extract_text(chunk: object) -> str:
    """Pull text from a streaming chunk dict."""
    if not isinstance(chunk, dict):
        return ""
    choices = (chunk.get("output") or {}).get("choices") or []
    if not choices:
        return ""
    content = (choices[0].get("message") or {}).get("content") or []
    if not content:
        return ""
    value = content[0]
    if isinstance(value, dict):
        return str(value.get("text", ""))
    return ""
