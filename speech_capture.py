"""Voice capture device assembled from a recorder and a recognizer."""

from __future__ import annotations

import threading
from queue import Queue
from typing import Optional

from interfaces import EventCallback, RecognizerAdapter, Recorder
from models import AudioFrame, CaptureConfig, RecognitionEvent, RecognitionKind


class DeviceSpeechCapture:
    """Exposes recorder + recognizer as one capture with a single event stream.

    Each capture ends with exactly one ``end`` event, after the final result
    or the error that terminated it, or straight away on ``abort``.
    """

    def __init__(
        self,
        recorder: Recorder,
        recognizer: RecognizerAdapter,
        config: CaptureConfig = CaptureConfig(),
        queue_maxsize: int = 50,
    ) -> None:
        self._recorder = recorder
        self._recognizer = recognizer
        self._config = config
        self._queue_maxsize = queue_maxsize
        self._lock = threading.Lock()
        self._on_event: Optional[EventCallback] = None
        self._ended = True
        self._timer: Optional[threading.Timer] = None

    @property
    def available(self) -> bool:
        return self._recorder.available

    @property
    def config(self) -> CaptureConfig:
        return self._config

    def start(self, on_event: EventCallback) -> None:
        with self._lock:
            self._on_event = on_event
            self._ended = False
        audio_queue: Queue[AudioFrame | None] = Queue(maxsize=self._queue_maxsize)
        self._recognizer.start(audio_queue, self._handle_event)
        try:
            self._recorder.start(audio_queue)
        except Exception:
            self._recognizer.stop()
            with self._lock:
                self._ended = True
            raise
        if not self._config.continuous:
            self._timer = threading.Timer(self._config.max_utterance_s, self.stop)
            self._timer.daemon = True
            self._timer.start()

    def stop(self) -> None:
        self._cancel_timer()
        # The recorder's sentinel lets the recognizer finalize.
        self._recorder.stop()

    def abort(self) -> None:
        self._cancel_timer()
        self._recognizer.stop()
        self._recorder.stop()
        self._finish()

    def _handle_event(self, event: RecognitionEvent) -> None:
        kind = event.kind
        if kind == RecognitionKind.PARTIAL.value:
            if self._config.interim_results:
                self._dispatch(event)
            return
        if kind == RecognitionKind.FINAL.value:
            if event.text.strip():
                self._dispatch(event)
            self._finish()
            return
        if kind == RecognitionKind.ERROR.value:
            self._recorder.stop()
            self._dispatch(event)
            self._finish()

    def _dispatch(self, event: RecognitionEvent) -> None:
        with self._lock:
            on_event = None if self._ended else self._on_event
        if on_event is not None:
            on_event(event)

    def _finish(self) -> None:
        with self._lock:
            if self._ended:
                return
            self._ended = True
            on_event = self._on_event
        if on_event is not None:
            on_event(RecognitionEvent(kind=RecognitionKind.END.value))

    def _cancel_timer(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()
