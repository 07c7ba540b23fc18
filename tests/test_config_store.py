from __future__ import annotations

import json
from pathlib import Path

from config import DictationSettings, JsonConfigStore


def test_config_defaults(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")
    settings = store.load()

    assert settings == DictationSettings()
    assert settings.api_url == "http://localhost:8765/api/v1"
    assert settings.language == "pt"
    assert settings.enable_correction is True


def test_config_read_write(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)

    store.update(api_token="abc", language="en", show_confidence=False)

    reloaded = JsonConfigStore(path=path).load()
    assert reloaded.api_token == "abc"
    assert reloaded.language == "en"
    assert reloaded.show_confidence is False
    assert reloaded.show_partial_results is True


def test_config_invalid_json_fallback(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{invalid", encoding="utf-8")

    assert JsonConfigStore(path=path).load() == DictationSettings()


def test_config_ignores_wrongly_typed_values(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"language": 7, "enable_correction": "no", "api_url": "http://10.0.0.2:8765/api/v1"}),
        encoding="utf-8",
    )

    settings = JsonConfigStore(path=path).load()
    assert settings.language == "pt"
    assert settings.enable_correction is True
    assert settings.api_url == "http://10.0.0.2:8765/api/v1"


def test_config_non_object_fallback(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    assert JsonConfigStore(path=path).load() == DictationSettings()
