"""Application entrypoint."""

from __future__ import annotations

import argparse
import json
import sys
import threading
from pathlib import Path
from typing import Callable, Optional

from api_client import ApiClient
from assistant import CommandAssistant, RemoteCommandAssistant
from capture_session import CaptureSession
from clipboard import ClipboardService
from completion import DashscopeCompletionService
from config import JsonConfigStore
from error_classifier import format_error_message
from errors import AppError, VoiceAssistantError
from history import InMemoryHistoryStore
from hotkey import PushToTalkHotkey
from interfaces import Assistant, ConfigStore, SpeechCapture
from logger import logger
from models import AnalysisResult, CaptureConfig, RecognitionState, ResultEnvelope
from recognizer import DashscopeRecognizerAdapter
from recorder import SoundDeviceRecorder
from resilience import ResilientCaller
from speech_capture import DeviceSpeechCapture

FINALIZE_TIMEOUT_S = 15.0


class App:
    def __init__(
        self,
        assistant: Assistant,
        capture: Optional[SpeechCapture],
        clipboard: Optional[ClipboardService] = None,
        context: Optional[str] = None,
        output: Callable[[str], None] = print,
    ) -> None:
        self.assistant = assistant
        self.clipboard = clipboard
        self.context = context
        self._output = output
        self._turn_lock = threading.Lock()
        self._turn_cancel: Optional[threading.Event] = None
        self.session = CaptureSession(
            capture,
            on_state_change=self._on_state_change,
            on_partial=self._on_partial,
            on_transcript=self._on_transcript,
            on_error=self._on_error,
        )

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def run_once(self, text: str, as_json: bool = False) -> int:
        envelope = self.assistant.analyze(text, self.context)
        if as_json:
            self._output(json.dumps(envelope.to_dict(), ensure_ascii=False, indent=2))
        else:
            self._present(envelope)
        return 0 if envelope.success else 1

    def run_turn(self, transcript: str) -> ResultEnvelope[AnalysisResult]:
        cancel = threading.Event()
        with self._turn_lock:
            self._turn_cancel = cancel
        try:
            self.session.begin_processing()
            envelope = self.assistant.analyze(transcript, self.context, cancel)
            if envelope.success:
                self.session.begin_speaking()
            self._present(envelope)
            return envelope
        finally:
            self.session.finish_turn()
            with self._turn_lock:
                self._turn_cancel = None

    def _present(self, envelope: ResultEnvelope[AnalysisResult]) -> None:
        if not envelope.success or envelope.data is None:
            self._output(f"Error: {envelope.message}")
            return
        result = envelope.data
        self._output(f"[{result.category.value}]\n{result.response}")
        if self.clipboard and self.clipboard.copy_text(result.response):
            self._output("(copied to clipboard)")

    # ------------------------------------------------------------------
    # Hotkey handlers
    # ------------------------------------------------------------------

    def _on_hotkey_press(self) -> None:
        with self._turn_lock:
            if self._turn_cancel is not None:
                return
        try:
            self.session.start()
        except VoiceAssistantError as exc:
            self._output(f"Error: {format_error_message(exc.error)}")

    def _on_hotkey_release(self) -> None:
        # stop + finalize waits on the recognizer; keep it off the listener thread
        threading.Thread(target=self._finish_capture, daemon=True).start()

    def _on_cancel(self) -> None:
        self.session.abort()
        with self._turn_lock:
            if self._turn_cancel is not None:
                self._turn_cancel.set()

    def _finish_capture(self) -> None:
        if not self.session.stop():
            return
        if not self.session.wait_for_end(timeout=FINALIZE_TIMEOUT_S):
            self.session.abort()
            self._output("Error: speech recognition did not finish in time.")
            return
        transcript = self.session.transcript
        if transcript and self.session.state == RecognitionState.IDLE:
            self.run_turn(transcript)

    # ------------------------------------------------------------------
    # Session callbacks (capture worker thread)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: RecognitionState, to_state: RecognitionState) -> None:
        if to_state == RecognitionState.LISTENING:
            self._output("Listening...")
        elif to_state == RecognitionState.PROCESSING:
            self._output("Processing...")

    def _on_partial(self, text: str) -> None:
        self._output(f"  ... {text}")

    def _on_transcript(self, text: str) -> None:
        self._output(f"> {text}")

    def _on_error(self, error: AppError) -> None:
        self._output(f"Error: {format_error_message(error)}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self, hotkey: PushToTalkHotkey) -> int:
        if not self.session.is_supported:
            self._output("Error: no speech capture backend is available.")
            return 1
        hotkey.start(
            on_press=self._on_hotkey_press,
            on_release=self._on_hotkey_release,
            on_cancel=self._on_cancel,
        )
        self._output("Hold the hotkey to talk, press the cancel key to abort, Ctrl+C to quit.")
        try:
            threading.Event().wait()
        except KeyboardInterrupt:
            logger.info("Shutting down...")
        finally:
            hotkey.stop()
            self.quit()
        return 0

    def quit(self) -> None:
        self._on_cancel()
        self.session.close()


def build_assistant(
    config_store: ConfigStore,
    api_url: str = "",
    history: Optional[InMemoryHistoryStore] = None,
) -> Assistant:
    caller = ResilientCaller(
        max_retries=config_store.get_max_retries(),
        timeout_s=config_store.get_timeout_s(),
    )
    if api_url:
        return RemoteCommandAssistant(ApiClient(api_url, caller=caller), history=history)
    completion = DashscopeCompletionService(
        api_key=config_store.get_api_key(),
        model=config_store.get_model(),
        request_timeout_s=config_store.get_timeout_s(),
    )
    return CommandAssistant(completion, caller=caller, history=history)


def build_capture(config_store: ConfigStore) -> DeviceSpeechCapture:
    language = config_store.get_language()
    recognizer = DashscopeRecognizerAdapter(
        api_key=config_store.get_api_key(),
        model=config_store.get_asr_model(),
        language=language,
    )
    return DeviceSpeechCapture(SoundDeviceRecorder(), recognizer, CaptureConfig(language=language))


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="dev-voice",
        description="Dictate developer commands and get an AI analysis back.",
    )
    parser.add_argument("--text", help="Analyze this command instead of listening")
    parser.add_argument("--context-file", type=Path, help="Attach file contents as context")
    parser.add_argument("--api-url", help="Use a remote /api/analyze server")
    parser.add_argument("--json", action="store_true", help="Print the result envelope as JSON")
    parser.add_argument("--no-clipboard", action="store_true", help="Do not copy responses")
    parser.add_argument("--config", type=Path, help="Config file path")
    parser.add_argument("--set-api-key", metavar="KEY", help="Save the DashScope API key and exit")
    parser.add_argument("--set-hotkey", metavar="KEY", help="Save the push-to-talk key and exit")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    config_store = JsonConfigStore(path=args.config)

    if args.set_api_key is not None or args.set_hotkey is not None:
        if args.set_api_key is not None:
            config_store.set_api_key(args.set_api_key)
        if args.set_hotkey is not None:
            config_store.set_hotkey(args.set_hotkey)
        print(f"Saved to {config_store.path}")
        return 0

    context = None
    if args.context_file is not None:
        try:
            context = args.context_file.read_text(encoding="utf-8")
        except OSError as exc:
            print(f"Error: cannot read context file: {exc}", file=sys.stderr)
            return 1

    history = InMemoryHistoryStore()
    assistant = build_assistant(config_store, args.api_url or config_store.get_api_url(), history)
    clipboard = None if args.no_clipboard else ClipboardService()

    if args.text is not None:
        app = App(assistant, capture=None, clipboard=clipboard, context=context)
        try:
            return app.run_once(args.text, as_json=args.json)
        finally:
            app.session.close()

    app = App(assistant, build_capture(config_store), clipboard=clipboard, context=context)
    hotkey = PushToTalkHotkey(config_store.get_hotkey(), config_store.get_cancel_key())
    try:
        code = app.run(hotkey)
    except RuntimeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        app.quit()
        return 1
    logger.info("%d command(s) answered this session", len(history.records()))
    return code


if __name__ == "__main__":
    raise SystemExit(main())
