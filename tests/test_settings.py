import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from peerwarden.errors import ConfigurationError
from peerwarden.settings import ensure_required, load_settings


@pytest.fixture(autouse=True)
def _isolated(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    for name in ("FIREWALL_URL", "SERVER_NAME", "KEY", "SECRET", "PROBE_CONCURRENCY"):
        monkeypatch.delenv(f"PEERWARDEN_{name}", raising=False)


def _write_config(path: Path, payload: dict) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_load_settings_accepts_legacy_config_keys(tmp_path: Path) -> None:
    path = _write_config(
        tmp_path / "fw.json",
        {"FirewallUrl": "https://fw.lan", "ServerName": "Mullvad", "Key": "k", "Secret": "s"},
    )

    settings = load_settings(str(path))
    ensure_required(settings)

    assert settings.firewall_url == "https://fw.lan"
    assert settings.server_name == "Mullvad"
    assert settings.health_check_port == 443
    assert settings.probe_timeout_seconds == 1.0
    assert settings.error_policy == "halt"


def test_environment_overrides_config_file(tmp_path: Path, monkeypatch) -> None:
    path = _write_config(
        tmp_path / "fw.json",
        {"firewall_url": "https://fw.lan", "server_name": "Mullvad", "key": "k", "secret": "s", "probe_concurrency": 2},
    )
    monkeypatch.setenv("PEERWARDEN_SERVER_NAME", "Other")

    settings = load_settings(str(path))

    assert settings.server_name == "Other"
    assert settings.probe_concurrency == 2


def test_init_overrides_win(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "fw.json", {"ServerName": "Mullvad"})

    settings = load_settings(str(path), server_name="Cli")

    assert settings.server_name == "Cli"


def test_missing_config_file_is_not_an_error(tmp_path: Path) -> None:
    settings = load_settings(str(tmp_path / "absent.json"))

    with pytest.raises(ConfigurationError) as exc_info:
        ensure_required(settings)
    assert "PEERWARDEN_FIREWALL_URL" in str(exc_info.value)
    assert "PEERWARDEN_SECRET" in str(exc_info.value)


def test_blank_values_are_missing(tmp_path: Path) -> None:
    path = _write_config(
        tmp_path / "fw.json",
        {"FirewallUrl": "https://fw.lan", "ServerName": "  ", "Key": "k", "Secret": "s"},
    )

    with pytest.raises(ConfigurationError) as exc_info:
        ensure_required(load_settings(str(path)))
    assert "PEERWARDEN_SERVER_NAME" in str(exc_info.value)


def test_config_file_must_be_an_object(tmp_path: Path) -> None:
    path = tmp_path / "fw.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_settings(str(path))


@pytest.mark.parametrize("port", [0, 70000])
def test_health_check_port_must_be_a_tcp_port(tmp_path: Path, port: int) -> None:
    with pytest.raises(ValidationError):
        load_settings(
            None,
            firewall_url="https://fw.lan",
            server_name="Mullvad",
            key="k",
            secret="s",
            health_check_port=port,
        )
