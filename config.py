"""Simple JSON-based settings store."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DictationSettings:
    api_url: str = "http://localhost:8765/api/v1"
    api_token: str = ""
    language: str = "pt"
    enable_correction: bool = True
    show_partial_results: bool = True
    show_confidence: bool = True
    auto_check_daemon: bool = True
    hotkey: str = "<ctrl>+<shift>+d"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "dictate2me" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> DictationSettings:
        defaults = DictationSettings()
        data = self._read_all()
        values: dict[str, Any] = {}
        for f in fields(DictationSettings):
            if f.name not in data:
                continue
            value = data[f.name]
            expected = type(getattr(defaults, f.name))
            if isinstance(value, expected):
                values[f.name] = value
            else:
                logger.warning("Ignoring invalid value for %s: %r", f.name, value)
        return replace(defaults, **values)

    def save(self, settings: DictationSettings) -> None:
        self._write_all(asdict(settings))

    def update(self, **changes: Any) -> DictationSettings:
        settings = replace(self.load(), **changes)
        self.save(settings)
        return settings

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            logger.warning("Unreadable config at %s, using defaults", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
