from __future__ import annotations

import copy
import os
import threading
from pathlib import Path
from typing import Any, Mapping

import yaml

from calpilot.models import AppConfig, default_app_config


ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "OPENAI_API_KEY": ("ai", "api_key"),
    "OPENAI_MODEL": ("ai", "model"),
    "OPENAI_BASE_URL": ("ai", "base_url"),
    "GOOGLE_CLIENT_ID": ("google", "client_id"),
    "GOOGLE_CLIENT_SECRET": ("google", "client_secret"),
    "GOOGLE_REDIRECT_URI": ("google", "redirect_uri"),
    "CALENDAR_TIMEZONE": ("calendar", "timezone"),
    "CALPILOT_WEEK_LENGTH_DAYS": ("calendar", "week_length_days"),
    "CALPILOT_SESSION_PATH": ("session", "store_path"),
}


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name, (section, key) in ENV_OVERRIDES.items():
        value = str(environ.get(name, "")).strip()
        if value:
            overrides.setdefault(section, {})[key] = value
    return overrides


class ConfigManager:
    def __init__(
        self,
        config_path: str | os.PathLike[str],
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.config_path = Path(config_path)
        self.environ = os.environ if environ is None else environ
        self._lock = threading.RLock()
        self._ensure_exists()

    def _ensure_exists(self) -> None:
        if self.config_path.exists():
            return
        self.save(default_app_config())

    def load_file(self) -> dict[str, Any]:
        with self._lock:
            with self.config_path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
            return data if isinstance(data, dict) else {}

    def load(self) -> AppConfig:
        merged = _deep_merge(self.load_file(), env_overrides(self.environ))
        return AppConfig.from_dict(merged)

    def save(self, config: AppConfig) -> None:
        with self._lock:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.config_path.with_suffix(self.config_path.suffix + ".tmp")
            with tmp_path.open("w", encoding="utf-8") as handle:
                yaml.safe_dump(
                    config.to_dict(),
                    handle,
                    sort_keys=False,
                    allow_unicode=True,
                    default_flow_style=False,
                )
            tmp_path.replace(self.config_path)

    def masked(self) -> dict[str, Any]:
        config = self.load().to_dict()
        if config.get("ai", {}).get("api_key"):
            config["ai"]["api_key"] = "***"
        if config.get("google", {}).get("client_secret"):
            config["google"]["client_secret"] = "***"
        return config
