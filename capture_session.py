"""State machine for one voice-input capture.

All state changes happen on a single worker thread that drains a FIFO of
commands. Explicit calls (``start``, ``stop``, ``abort`` and the pipeline
stage calls) enqueue a command and wait until it has been applied; device
events enqueue without waiting. Transitions are therefore applied one at a
time, in the order their triggers arrived.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from queue import Queue
from typing import Any, Callable, Optional

from error_classifier import classify, log_error, microphone_error
from errors import (
    NOT_FOUND_ERROR,
    RECOGNITION_FAILED,
    AppError,
    CaptureDeviceError,
    ErrorKind,
    VoiceAssistantError,
)
from interfaces import SpeechCapture
from logger import get_logger
from models import RecognitionEvent, RecognitionKind, RecognitionState

_logger = get_logger("capture")

StateCallback = Callable[[RecognitionState, RecognitionState], None]
TextCallback = Callable[[str], None]
ErrorCallback = Callable[[AppError], None]

_START = "start"
_STOP = "stop"
_ABORT = "abort"
_DEVICE = "device"
_PROCESSING = "processing"
_SPEAKING = "speaking"
_FINISH = "finish"
_FLUSH = "flush"
_CLOSE = "close"


@dataclass
class _Command:
    action: str
    turn: int = 0
    event: Optional[RecognitionEvent] = None
    done: Optional[threading.Event] = None
    result: Any = None


class CaptureSession:
    def __init__(
        self,
        capture: Optional[SpeechCapture],
        on_state_change: Optional[StateCallback] = None,
        on_partial: Optional[TextCallback] = None,
        on_transcript: Optional[TextCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._capture = capture
        self._on_state_change = on_state_change
        self._on_partial = on_partial
        self._on_transcript = on_transcript
        self._on_error = on_error

        # Owned by the worker thread.
        self._state = RecognitionState.IDLE
        self._transcript = ""
        self._last_error: Optional[AppError] = None
        self._turn = 0
        self._accepting = False

        self._ended = threading.Event()
        self._ended.set()
        self._closed = False
        # Guards _closed so no command is queued behind the close marker.
        self._close_lock = threading.Lock()
        self._inbox: Queue[_Command] = Queue()
        self._worker = threading.Thread(target=self._run, name="capture-session", daemon=True)
        self._worker.start()

    @property
    def state(self) -> RecognitionState:
        return self._state

    @property
    def transcript(self) -> str:
        return self._transcript

    @property
    def last_error(self) -> Optional[AppError]:
        return self._last_error

    @property
    def is_supported(self) -> bool:
        return self._capture is not None and self._capture.available

    # ------------------------------------------------------------------
    # Explicit triggers
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Begin listening from ``IDLE`` or ``ERROR``.

        Returns False when the session is busy. Raises VoiceAssistantError
        with a MICROPHONE error when capture cannot start; the session is
        then in ``ERROR`` with an empty transcript.
        """
        result = self._submit(_START)
        if isinstance(result, AppError):
            raise VoiceAssistantError(result)
        return bool(result)

    def stop(self) -> bool:
        return bool(self._submit(_STOP))

    def abort(self) -> bool:
        return bool(self._submit(_ABORT))

    def begin_processing(self) -> bool:
        return bool(self._submit(_PROCESSING))

    def begin_speaking(self) -> bool:
        return bool(self._submit(_SPEAKING))

    def finish_turn(self) -> bool:
        return bool(self._submit(_FINISH))

    def flush(self) -> None:
        """Wait until every event queued so far has been applied."""
        self._submit(_FLUSH)

    def wait_for_end(self, timeout: Optional[float] = None) -> bool:
        return self._ended.wait(timeout)

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
            self._inbox.put(_Command(_CLOSE))
        if threading.current_thread() is not self._worker:
            self._worker.join(timeout=1.0)

    # ------------------------------------------------------------------
    # Queue plumbing
    # ------------------------------------------------------------------

    def _submit(self, action: str) -> Any:
        command = _Command(action)
        reentrant = threading.current_thread() is self._worker
        if not reentrant:
            command.done = threading.Event()
        with self._close_lock:
            if self._closed:
                raise RuntimeError("capture session is closed")
            self._inbox.put(command)
        if reentrant:
            # Called from a callback: applied after the current command.
            return None
        command.done.wait()
        return command.result

    def _post_device_event(self, turn: int, event: RecognitionEvent) -> None:
        self._inbox.put(_Command(_DEVICE, turn=turn, event=event))

    def _run(self) -> None:
        while True:
            command = self._inbox.get()
            try:
                if command.action == _CLOSE:
                    return
                command.result = self._apply(command)
            except Exception:
                _logger.exception("capture session failed to apply %s", command.action)
            finally:
                if command.done is not None:
                    command.done.set()

    def _apply(self, command: _Command) -> Any:
        action = command.action
        if action == _START:
            return self._handle_start()
        if action == _STOP:
            return self._handle_stop()
        if action == _ABORT:
            return self._handle_abort()
        if action == _DEVICE:
            if command.turn == self._turn and command.event is not None:
                self._handle_device_event(command.event)
            return None
        if action == _PROCESSING:
            return self._move(RecognitionState.PROCESSING, {RecognitionState.IDLE})
        if action == _SPEAKING:
            return self._move(
                RecognitionState.SPEAKING,
                {RecognitionState.IDLE, RecognitionState.PROCESSING},
            )
        if action == _FINISH:
            return self._move(
                RecognitionState.IDLE,
                {RecognitionState.PROCESSING, RecognitionState.SPEAKING},
            )
        return None

    # ------------------------------------------------------------------
    # Transitions (worker thread only)
    # ------------------------------------------------------------------

    def _handle_start(self) -> Any:
        if self._state not in (RecognitionState.IDLE, RecognitionState.ERROR):
            return False
        self._turn += 1
        self._transcript = ""
        self._last_error = None
        if not self.is_supported:
            return self._fail_start(
                CaptureDeviceError(NOT_FOUND_ERROR, "speech capture is not available")
            )

        turn = self._turn
        self._ended.clear()
        self._accepting = True
        try:
            self._capture.start(lambda event: self._post_device_event(turn, event))
        except Exception as exc:
            return self._fail_start(exc)
        self._transition(RecognitionState.LISTENING)
        return True

    def _fail_start(self, exc: Exception) -> AppError:
        error = microphone_error(exc)
        self._transcript = ""
        self._accepting = False
        self._ended.set()
        self._record_error(error, "capture start")
        self._transition(RecognitionState.ERROR)
        return error

    def _handle_stop(self) -> bool:
        if self._state != RecognitionState.LISTENING:
            return False
        self._transition(RecognitionState.IDLE)
        self._safe_call("stop")
        return True

    def _handle_abort(self) -> bool:
        in_flight = not self._ended.is_set()
        # Events still queued for this capture are discarded.
        self._turn += 1
        self._accepting = False
        self._transcript = ""
        if in_flight:
            self._safe_call("abort")
        self._ended.set()
        self._transition(RecognitionState.IDLE)
        return True

    def _handle_device_event(self, event: RecognitionEvent) -> None:
        kind = event.kind
        if kind == RecognitionKind.PARTIAL.value:
            if self._accepting and self._on_partial:
                self._on_partial(event.text)
            return
        if kind == RecognitionKind.FINAL.value:
            if self._accepting and event.text.strip():
                text = event.text.strip()
                self._transcript = f"{self._transcript} {text}" if self._transcript else text
            return
        if kind == RecognitionKind.ERROR.value:
            self._accepting = False
            self._record_error(_device_error(event.error), "speech capture")
            self._transition(RecognitionState.ERROR)
            return
        if kind == RecognitionKind.END.value:
            delivered = self._accepting
            self._accepting = False
            if self._state == RecognitionState.LISTENING:
                self._transition(RecognitionState.IDLE)
            self._ended.set()
            if delivered and self._transcript and self._on_transcript:
                self._on_transcript(self._transcript)

    def _move(self, to_state: RecognitionState, allowed: set) -> bool:
        if self._state not in allowed:
            return False
        self._transition(to_state)
        return True

    def _record_error(self, error: AppError, context: str) -> None:
        self._last_error = error
        log_error(error, context)
        if self._on_error:
            self._on_error(error)

    def _safe_call(self, method: str) -> None:
        try:
            getattr(self._capture, method)()
        except Exception as exc:  # pragma: no cover
            _logger.warning("speech capture %s failed: %s", method, exc)

    def _transition(self, to_state: RecognitionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        _logger.debug("capture %s -> %s", from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)


def _device_error(source: object) -> AppError:
    error = classify(source)
    if error.kind != ErrorKind.UNKNOWN:
        return error
    return AppError(
        ErrorKind.SPEECH_RECOGNITION,
        RECOGNITION_FAILED,
        error.is_retryable,
        details=error.details,
    )
