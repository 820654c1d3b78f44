import json
from pathlib import Path

import pytest

from peerwarden.cli import main as cli
from peerwarden.errors import StoreStatusError
from peerwarden.reconcile import PeerOutcome, ReconcileAborted, ReconcileReport


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    for name in ("FIREWALL_URL", "SERVER_NAME", "KEY", "SECRET", "METRICS_TEXTFILE"):
        monkeypatch.delenv(f"PEERWARDEN_{name}", raising=False)
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"FirewallUrl": "https://fw.lan", "ServerName": "Mullvad", "Key": "k", "Secret": "s"}),
        encoding="utf-8",
    )
    return path


def _outcome(uuid: str, reachable: bool, *, written: bool = True, error: str | None = None) -> PeerOutcome:
    return PeerOutcome(
        uuid=uuid,
        name=f"peer-{uuid}",
        address="198.51.100.1",
        reachable=reachable,
        desired_enabled=reachable,
        previously_enabled=True,
        written=written,
        error=error,
    )


def test_run_success(config_file: Path, monkeypatch, capsys) -> None:
    seen = []

    async def _reconcile(settings):
        seen.append(settings)
        return ReconcileReport(group_name=settings.server_name, outcomes=[_outcome("a", True)], committed=True)

    monkeypatch.setattr(cli, "reconcile_once", _reconcile)

    assert cli.run(["--config", str(config_file)]) == cli.EXIT_OK
    out = capsys.readouterr().out
    assert "Working on Firewall https://fw.lan" in out
    assert "peer-a" in out
    assert seen[0].server_name == "Mullvad"


def test_run_cli_flags_override_settings(config_file: Path, monkeypatch) -> None:
    seen = []

    async def _reconcile(settings):
        seen.append(settings)
        return ReconcileReport(group_name=settings.server_name, dry_run=settings.dry_run)

    monkeypatch.setattr(cli, "reconcile_once", _reconcile)

    code = cli.run(["--config", str(config_file), "--group", "Other", "--dry-run", "--continue-on-error"])

    assert code == cli.EXIT_OK
    assert seen[0].server_name == "Other"
    assert seen[0].dry_run is True
    assert seen[0].error_policy == "continue"


def test_run_aborted_exits_non_zero(config_file: Path, monkeypatch, capsys) -> None:
    async def _reconcile(settings):
        error = StoreStatusError(status_code=500, method="GET", path="/api/wireguard/client/searchClient", detail="")
        raise ReconcileAborted(error, ReconcileReport(group_name=settings.server_name))

    monkeypatch.setattr(cli, "reconcile_once", _reconcile)

    assert cli.run(["--config", str(config_file)]) == cli.EXIT_FAILED
    assert "FAIL." in capsys.readouterr().out


def test_run_per_peer_failure_exits_non_zero(config_file: Path, monkeypatch) -> None:
    async def _reconcile(settings):
        return ReconcileReport(
            group_name=settings.server_name,
            outcomes=[_outcome("a", True), _outcome("b", False, written=False, error="500")],
            committed=True,
        )

    monkeypatch.setattr(cli, "reconcile_once", _reconcile)

    assert cli.run(["--config", str(config_file), "--continue-on-error"]) == cli.EXIT_FAILED


def test_run_missing_settings_is_config_error(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    for name in ("FIREWALL_URL", "SERVER_NAME", "KEY", "SECRET"):
        monkeypatch.delenv(f"PEERWARDEN_{name}", raising=False)

    async def _reconcile(settings):  # pragma: no cover - should never be called
        raise AssertionError("reconcile must not start without settings")

    monkeypatch.setattr(cli, "reconcile_once", _reconcile)

    assert cli.run(["--config", str(tmp_path / "absent.json")]) == cli.EXIT_CONFIG


def test_run_writes_metrics_textfile(config_file: Path, tmp_path: Path, monkeypatch) -> None:
    target = tmp_path / "metrics" / "peerwarden.prom"
    monkeypatch.setenv("PEERWARDEN_METRICS_TEXTFILE", str(target))

    async def _reconcile(settings):
        return ReconcileReport(group_name=settings.server_name, committed=True)

    monkeypatch.setattr(cli, "reconcile_once", _reconcile)

    assert cli.run(["--config", str(config_file)]) == cli.EXIT_OK
    assert "peerwarden_last_run_success 1.0" in target.read_text(encoding="utf-8")


def test_run_out_of_range_port_is_config_error(config_file: Path, monkeypatch) -> None:
    monkeypatch.setenv("PEERWARDEN_HEALTH_CHECK_PORT", "70000")

    async def _reconcile(settings):  # pragma: no cover - should never be called
        raise AssertionError("reconcile must not start with an invalid port")

    monkeypatch.setattr(cli, "reconcile_once", _reconcile)

    assert cli.run(["--config", str(config_file)]) == cli.EXIT_CONFIG
