from __future__ import annotations

import pytest

import hotkey
from hotkey import PushToTalkHotkey


class _Recorder:
    def __init__(self) -> None:
        self.calls: list[str] = []

    def press(self) -> None:
        self.calls.append("press")

    def release(self) -> None:
        self.calls.append("release")

    def cancel(self) -> None:
        self.calls.append("cancel")


class _FakeListener:
    def __init__(self, on_press, on_release) -> None:  # noqa: ANN001
        self.on_press = on_press
        self.on_release = on_release
        self.started = False
        self.stopped = False

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True


class _FakeKeyboard:
    Listener = _FakeListener


@pytest.fixture
def wired(monkeypatch):  # noqa: ANN001, ANN201
    monkeypatch.setattr(hotkey, "keyboard", _FakeKeyboard)
    calls = _Recorder()
    ptt = PushToTalkHotkey(talk_key="Key.alt_l", cancel_key="Key.esc")
    ptt.start(on_press=calls.press, on_release=calls.release, on_cancel=calls.cancel)
    return ptt, calls


def test_hold_and_release(wired) -> None:  # noqa: ANN001
    ptt, calls = wired
    ptt.handle_press("Key.alt_l")
    ptt.handle_release("Key.alt_l")
    assert calls.calls == ["press", "release"]


def test_key_repeat_is_ignored(wired) -> None:  # noqa: ANN001
    ptt, calls = wired
    for _ in range(5):
        ptt.handle_press("Key.alt_l")
    ptt.handle_release("Key.alt_l")
    ptt.handle_release("Key.alt_l")
    assert calls.calls == ["press", "release"]


def test_other_keys_are_ignored(wired) -> None:  # noqa: ANN001
    ptt, calls = wired
    ptt.handle_press("'a'")
    ptt.handle_release("'a'")
    assert calls.calls == []


def test_cancel_key(wired) -> None:  # noqa: ANN001
    ptt, calls = wired
    ptt.handle_press("Key.alt_l")
    ptt.handle_press("Key.esc")
    assert calls.calls == ["press", "cancel"]


def test_listener_lifecycle(wired) -> None:  # noqa: ANN001
    ptt, _ = wired
    listener = ptt._listener
    assert isinstance(listener, _FakeListener)
    assert listener.started is True

    ptt.stop()
    assert listener.stopped is True
    ptt.stop()


def test_start_without_pynput(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(hotkey, "keyboard", None)
    with pytest.raises(RuntimeError, match="pynput is not installed"):
        PushToTalkHotkey().start(on_press=lambda: None, on_release=lambda: None)
