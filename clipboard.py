"""Copy assistant responses to the system clipboard."""

from __future__ import annotations

from logger import get_logger

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

_logger = get_logger("clipboard")


class ClipboardService:
    @property
    def available(self) -> bool:
        return pyperclip is not None

    def copy_text(self, text: str) -> bool:
        if not text.strip():
            return False
        if pyperclip is None:
            _logger.warning("Clipboard unavailable: pyperclip is not installed")
            return False
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as exc:
            _logger.warning("Failed to copy to clipboard: %s", exc)
            return False
        return True
