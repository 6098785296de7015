"""Persisted client configuration and environment driven server settings."""

from __future__ import annotations

import json
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any, Mapping, Optional

from .models import Config, ServerSettings

CONFIG_PATH = (Path.home() / ".voicememo" / "config.json").expanduser()
BASE_URL_ENV = "VOICEMEMO_API_BASE_URL"


class ConfigurationError(RuntimeError):
    """Raised when configuration is missing, invalid or cannot be saved."""


def _read_config_file() -> Config:
    if not CONFIG_PATH.exists():
        return Config()
    try:
        payload = json.loads(CONFIG_PATH.read_text())
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Failed to parse configuration file: {exc}") from exc
    try:
        return Config(**payload)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid configuration file: {exc}") from exc


def load_config() -> Config:
    """Return the saved configuration with environment overrides applied."""

    config = _read_config_file()
    override = os.getenv(BASE_URL_ENV)
    if override:
        config.backend_url = override
    return config


def save_config(config: Config) -> None:
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    data = {k: v for k, v in asdict(config).items() if v is not None}
    CONFIG_PATH.write_text(json.dumps(data, indent=2))


def update_config(**kwargs: Any) -> Config:
    config = _read_config_file()
    for key, value in kwargs.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            raise ConfigurationError(f"Unknown configuration key: {key}")
    save_config(config)
    return config


def require_backend_url(backend_url: Optional[str]) -> str:
    """Return the relay base URL or fail before any request is made."""

    if not backend_url or not backend_url.strip():
        raise ConfigurationError(
            f"No backend URL configured. Set {BASE_URL_ENV} or run "
            "`voicememo config --backend-url http://host:4000`."
        )
    return backend_url.strip().rstrip("/")


def load_server_settings(environ: Optional[Mapping[str, str]] = None) -> ServerSettings:
    """Build relay settings from environment variables.

    Empty variables fall back to the defaults, so ``PORT=""`` behaves like an
    unset ``PORT``.
    """

    env = os.environ if environ is None else environ
    defaults = ServerSettings()
    return ServerSettings(
        host=env.get("HOST") or defaults.host,
        port=_parse_number(env, "PORT", defaults.port, int),
        openai_api_key=env.get("OPENAI_API_KEY") or None,
        cors_allow_origin=env.get("CORS_ALLOW_ORIGIN") or defaults.cors_allow_origin,
        transcription_model=env.get("VOICEMEMO_TRANSCRIPTION_MODEL") or defaults.transcription_model,
        summary_model=env.get("VOICEMEMO_SUMMARY_MODEL") or defaults.summary_model,
        openai_timeout=_parse_number(env, "VOICEMEMO_OPENAI_TIMEOUT", defaults.openai_timeout, float),
    )


def _parse_number(env: Mapping[str, str], key: str, default, cast):
    raw = env.get(key)
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for {key}: {raw!r}") from exc
