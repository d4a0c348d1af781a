from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .paths import config_path

CONFIG_VERSION = 1
DEFAULT_BACKEND_URL = "http://127.0.0.1:7341"
DEFAULT_SEARCH_DEBOUNCE_MS = 400
DEFAULT_SEARCH_LIMIT = 50
DEFAULT_OVERSCAN = 3
DEFAULT_MIN_CARD_WIDTH = 26

VIEW_MODES = {"grid", "timeline"}
MALFORMED_RULE_POLICIES = {"match_all", "match_none"}
LOG_LEVELS = {"debug", "info", "warning", "error"}
SORT_FIELDS = {"recordedAt", "filename", "fileSize", "durationSecs"}
SORT_DIRECTIONS = {"asc", "desc"}


@dataclass
class AppConfig:
    version: int = CONFIG_VERSION
    backend_url: str | None = None
    view_mode: str | None = None
    sort_field: str | None = None
    sort_dir: str | None = None
    search_debounce_ms: int | None = None
    search_limit: int | None = None
    overscan: int | None = None
    min_card_width: int | None = None
    malformed_rules: str | None = None
    log_level: str | None = None

    def effective_backend_url(self) -> str:
        return self.backend_url or DEFAULT_BACKEND_URL

    def effective_debounce(self) -> float:
        millis = self.search_debounce_ms
        if millis is None:
            millis = DEFAULT_SEARCH_DEBOUNCE_MS
        return millis / 1000.0

    def effective_search_limit(self) -> int:
        return self.search_limit or DEFAULT_SEARCH_LIMIT

    def effective_overscan(self) -> int:
        return DEFAULT_OVERSCAN if self.overscan is None else self.overscan

    def effective_min_card_width(self) -> int:
        return self.min_card_width or DEFAULT_MIN_CARD_WIDTH

    def effective_malformed_rules(self) -> str:
        return self.malformed_rules or "match_all"


def load_config(path: Path | None = None) -> tuple[AppConfig, str | None]:
    path = path or config_path()
    if not path.exists():
        return AppConfig(), None
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        return AppConfig(), f"Failed to read config: {path} ({exc})"
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return AppConfig(), f"Config file is not valid JSON: {path}"
    if not isinstance(data, dict):
        return AppConfig(), f"Config file must be a JSON object: {path}"
    return _parse_config_data(data), None


def save_config(config: AppConfig, path: Path | None = None) -> str | None:
    path = path or config_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return f"Failed to create config directory: {path.parent} ({exc})"
    payload = _config_to_dict(config)
    try:
        path.write_text(
            json.dumps(payload, ensure_ascii=True, indent=2),
            encoding="utf-8",
        )
    except OSError as exc:
        return f"Failed to write config: {path} ({exc})"
    return None


def _parse_config_data(data: dict[str, Any]) -> AppConfig:
    return AppConfig(
        version=_as_int(data.get("version")) or CONFIG_VERSION,
        backend_url=_as_str(data.get("backend_url")),
        view_mode=_as_choice(data.get("view_mode"), VIEW_MODES),
        sort_field=_as_choice(data.get("sort_field"), SORT_FIELDS),
        sort_dir=_as_choice(data.get("sort_dir"), SORT_DIRECTIONS),
        search_debounce_ms=_as_nonneg_int(data.get("search_debounce_ms")),
        search_limit=_as_positive_int(data.get("search_limit")),
        overscan=_as_nonneg_int(data.get("overscan")),
        min_card_width=_as_positive_int(data.get("min_card_width")),
        malformed_rules=_as_choice(data.get("malformed_rules"), MALFORMED_RULE_POLICIES),
        log_level=_as_choice(data.get("log_level"), LOG_LEVELS),
    )


def _config_to_dict(config: AppConfig) -> dict[str, Any]:
    data: dict[str, Any] = {"version": config.version}
    _set_if(data, "backend_url", config.backend_url)
    _set_if(data, "view_mode", config.view_mode)
    _set_if(data, "sort_field", config.sort_field)
    _set_if(data, "sort_dir", config.sort_dir)
    _set_if(data, "search_debounce_ms", config.search_debounce_ms)
    _set_if(data, "search_limit", config.search_limit)
    _set_if(data, "overscan", config.overscan)
    _set_if(data, "min_card_width", config.min_card_width)
    _set_if(data, "malformed_rules", config.malformed_rules)
    _set_if(data, "log_level", config.log_level)
    return data


def _set_if(data: dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        data[key] = value


def _as_str(value: Any) -> str | None:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def _as_choice(value: Any, choices: set[str]) -> str | None:
    text = _as_str(value)
    if text in choices:
        return text
    return None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _as_nonneg_int(value: Any) -> int | None:
    number = _as_int(value)
    if number is None or number < 0:
        return None
    return number


def _as_positive_int(value: Any) -> int | None:
    number = _as_int(value)
    if number is None or number <= 0:
        return None
    return number
