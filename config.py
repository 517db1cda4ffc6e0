"""Simple JSON-based config store."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

DEFAULTS: dict[str, Any] = {
    "api_key": "",
    "hotkey": "Key.alt_l",
    "cancel_key": "Key.esc",
    "model": "qwen-plus",
    "asr_model": "qwen3-asr-flash",
    "language": "en-US",
    "max_retries": 3,
    "timeout_s": 30.0,
    "api_url": "",
}


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "dev_voice" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def get_api_key(self) -> str:
        return self._get_str("api_key") or os.getenv("DASHSCOPE_API_KEY", "")

    def set_api_key(self, key: str) -> None:
        self._set("api_key", key)

    def get_hotkey(self) -> str:
        return self._get_str("hotkey")

    def set_hotkey(self, hotkey: str) -> None:
        self._set("hotkey", hotkey)

    def get_cancel_key(self) -> str:
        return self._get_str("cancel_key")

    def get_model(self) -> str:
        return self._get_str("model")

    def set_model(self, model: str) -> None:
        self._set("model", model)

    def get_asr_model(self) -> str:
        return self._get_str("asr_model")

    def get_language(self) -> str:
        return self._get_str("language")

    def set_language(self, language: str) -> None:
        self._set("language", language)

    def get_max_retries(self) -> int:
        value = self._read_all().get("max_retries")
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return value
        return DEFAULTS["max_retries"]

    def get_timeout_s(self) -> float:
        value = self._read_all().get("timeout_s")
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            return float(value)
        return DEFAULTS["timeout_s"]

    def get_api_url(self) -> str:
        return self._get_str("api_url")

    def set_api_url(self, url: str) -> None:
        self._set("api_url", url)

    def _get_str(self, key: str) -> str:
        value = self._read_all().get(key)
        if isinstance(value, str) and (value or key in ("api_key", "api_url")):
            return value
        return DEFAULTS[key]

    def _set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
