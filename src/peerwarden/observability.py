from __future__ import annotations

import logging
from pathlib import Path

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, write_to_textfile

logger = logging.getLogger("peerwarden.observability")

PROBES_TOTAL = Counter(
    "peerwarden_probes_total",
    "TCP reachability probes by result",
    labelnames=["result"],
)
PROBE_DURATION_SECONDS = Histogram(
    "peerwarden_probe_duration_seconds",
    "Duration of a single TCP reachability probe",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5),
)
STORE_REQUESTS_TOTAL = Counter(
    "peerwarden_store_requests_total",
    "Firewall API requests by operation and HTTP status",
    labelnames=["operation", "status"],
)
STORE_REQUEST_DURATION_SECONDS = Histogram(
    "peerwarden_store_request_duration_seconds",
    "Firewall API request duration in seconds",
    labelnames=["operation"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 20),
)
PEER_WRITES_TOTAL = Counter(
    "peerwarden_peer_writes_total",
    "Peer records written back to the firewall by desired state",
    labelnames=["enabled"],
)
PEERS_SELECTED = Gauge(
    "peerwarden_peers_selected",
    "Peers belonging to the reconciled server group in the last run",
)
PEERS_REACHABLE = Gauge(
    "peerwarden_peers_reachable",
    "Peers that answered the health-check probe in the last run",
)
RUN_SUCCESS = Gauge(
    "peerwarden_last_run_success",
    "1 if the last reconciliation run committed without errors, else 0",
)
RUN_LAST_UNIX_SECONDS = Gauge(
    "peerwarden_last_run_unix_seconds",
    "Unix timestamp of the last reconciliation run",
)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def write_metrics_textfile(path: str, registry: CollectorRegistry = REGISTRY) -> None:
    target = str(path or "").strip()
    if not target:
        return
    Path(target).parent.mkdir(parents=True, exist_ok=True)
    write_to_textfile(target, registry)
    logger.info("metrics_textfile_written path=%s", target)
