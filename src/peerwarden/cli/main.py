from __future__ import annotations

import argparse
import asyncio
import logging
import time
from typing import Any

from pydantic import ValidationError

from peerwarden.errors import ConfigurationError
from peerwarden.observability import RUN_LAST_UNIX_SECONDS, RUN_SUCCESS, configure_logging, write_metrics_textfile
from peerwarden.probe import TcpProber
from peerwarden.reconcile import ReconcileAborted, Reconciler, ReconcileReport
from peerwarden.settings import DEFAULT_CONFIG_FILE, Settings, ensure_required, load_settings
from peerwarden.store import FirewallStore

logger = logging.getLogger("peerwarden.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="peerwarden",
        description="Enable reachable WireGuard peers of a server group and disable unreachable ones.",
    )
    ap.add_argument("--config", default=DEFAULT_CONFIG_FILE, help="JSON config file (FirewallUrl, ServerName, Key, Secret)")
    ap.add_argument("--group", help="server group name to reconcile (overrides ServerName)")
    ap.add_argument("--dry-run", action="store_true", default=None, help="probe and report, write nothing")
    ap.add_argument(
        "--continue-on-error",
        action="store_true",
        default=None,
        help="record per-peer write failures and keep going instead of aborting",
    )
    ap.add_argument("--log-level", help="logging level (default from settings)")
    return ap


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if args.group:
        out["server_name"] = args.group
    if args.dry_run:
        out["dry_run"] = True
    if args.continue_on_error:
        out["error_policy"] = "continue"
    if args.log_level:
        out["log_level"] = args.log_level
    return out


def _verify(settings: Settings) -> bool | str:
    if settings.ca_cert:
        return settings.ca_cert
    return settings.verify_tls


def print_report(report: ReconcileReport) -> None:
    for row in report.outcomes:
        state = "enabled" if row.desired_enabled else "disabled"
        if row.error is not None:
            status = f"FAILED ({row.error})"
        elif row.written:
            status = "written"
        else:
            status = "planned" if report.dry_run else "not written"
        print(f"  {row.name or row.uuid} [{row.address}] -> {state}: {status}")
    print(
        f"Group {report.group_name!r}: {len(report.outcomes)} peers, "
        f"{report.reachable_count} reachable, {report.changed_count} changed, "
        f"committed={'yes' if report.committed else 'no'}"
    )


async def reconcile_once(settings: Settings) -> ReconcileReport:
    prober = TcpProber(timeout_seconds=settings.probe_timeout_seconds)
    async with FirewallStore(
        settings.firewall_url,
        settings.key,
        settings.secret,
        timeout=settings.request_timeout_seconds,
        verify=_verify(settings),
    ) as store:
        reconciler = Reconciler(
            store,
            prober,
            group_name=settings.server_name,
            port=settings.health_check_port,
            probe_concurrency=settings.probe_concurrency,
            error_policy=settings.error_policy,
            dry_run=settings.dry_run,
        )
        return await reconciler.run()


def run(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args.config, **_overrides(args))
        ensure_required(settings)
    except (ConfigurationError, ValidationError) as exc:
        configure_logging("INFO")
        logger.error("configuration_error error=%s", exc)
        print(f"Configuration error: {exc}")
        return EXIT_CONFIG

    configure_logging(settings.log_level)
    print(f"Working on Firewall {settings.firewall_url}\n")

    RUN_LAST_UNIX_SECONDS.set(time.time())
    RUN_SUCCESS.set(0)
    try:
        try:
            report = asyncio.run(reconcile_once(settings))
        except ReconcileAborted as exc:
            logger.error("reconcile_failed group=%s error=%s", settings.server_name, exc)
            print_report(exc.report)
            print(f"FAIL. {exc}")
            return EXIT_FAILED

        print_report(report)
        if not report.ok:
            return EXIT_FAILED
        RUN_SUCCESS.set(1)
        return EXIT_OK
    finally:
        write_metrics_textfile(settings.metrics_textfile)


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
