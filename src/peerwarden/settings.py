from __future__ import annotations

import json
from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import Field
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from peerwarden.errors import ConfigurationError

DEFAULT_CONFIG_FILE = "config.json"

# Key spellings used by legacy config.json files.
_LEGACY_KEYS = {
    "FirewallUrl": "firewall_url",
    "ServerName": "server_name",
    "Key": "key",
    "Secret": "secret",
}

_REQUIRED = ("firewall_url", "server_name", "key", "secret")


class JsonFileSettingsSource(PydanticBaseSettingsSource):
    """
    Read settings from a flat JSON object.

    Missing file means "no values from this source"; a file that exists but does
    not hold a JSON object is a configuration error.
    """

    def __init__(self, settings_cls: type[BaseSettings], path: str | None) -> None:
        super().__init__(settings_cls)
        self._path = Path(path) if path else None
        self._data = self._load()

    def _load(self) -> dict[str, Any]:
        if self._path is None or not self._path.is_file():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"{self._path}: invalid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigurationError(f"{self._path}: expected a JSON object")
        out: dict[str, Any] = {}
        for key, value in raw.items():
            out[_LEGACY_KEYS.get(key, key)] = value
        return out

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return self._data.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return {k: v for (k, v) in self._data.items() if k in self.settings_cls.model_fields}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PEERWARDEN_",
        extra="ignore",
    )
    config_file: ClassVar[str | None] = DEFAULT_CONFIG_FILE

    log_level: str = "INFO"

    # Firewall API access. Key/secret are the API key pair, sent as HTTP Basic auth.
    firewall_url: str = ""
    key: str = ""
    secret: str = ""
    request_timeout_seconds: float = 20.0
    verify_tls: bool = True
    # Optional CA bundle for firewalls with a private CA; takes precedence over verify_tls.
    ca_cert: str | None = None

    # Display name of the WireGuard server (instance) whose peers are reconciled.
    server_name: str = ""

    health_check_port: int = Field(443, ge=1, le=65535)
    probe_timeout_seconds: float = 1.0
    # 1 keeps the sequential behaviour; store writes are always serialized.
    probe_concurrency: int = 1

    error_policy: Literal["halt", "continue"] = "halt"
    dry_run: bool = False

    # node-exporter textfile collector target; empty disables the metrics dump.
    metrics_textfile: str = ""

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        json_settings = JsonFileSettingsSource(settings_cls, getattr(settings_cls, "config_file", None))
        return (init_settings, env_settings, dotenv_settings, json_settings, file_secret_settings)


def load_settings(config_path: str | None = None, **overrides: Any) -> Settings:
    if not config_path:
        return Settings(**overrides)

    class _FileSettings(Settings):
        config_file: ClassVar[str | None] = config_path

    return _FileSettings(**overrides)


def ensure_required(settings: Settings) -> None:
    missing = [name for name in _REQUIRED if not str(getattr(settings, name) or "").strip()]
    if missing:
        env_names = ", ".join(f"PEERWARDEN_{name.upper()}" for name in missing)
        raise ConfigurationError(f"missing required settings: {env_names}")
    if settings.probe_concurrency < 1:
        raise ConfigurationError("probe_concurrency must be >= 1")
    if settings.probe_timeout_seconds <= 0:
        raise ConfigurationError("probe_timeout_seconds must be > 0")
