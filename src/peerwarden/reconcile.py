from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Literal

from peerwarden.errors import StoreError, UnresolvedGroupError
from peerwarden.models import Peer, encode_enabled
from peerwarden.observability import PEER_WRITES_TOTAL, PEERS_REACHABLE, PEERS_SELECTED
from peerwarden.selector import GroupIndex, select_peers

logger = logging.getLogger("peerwarden.reconcile")

ErrorPolicy = Literal["halt", "continue"]


@dataclass(slots=True)
class PeerOutcome:
    uuid: str
    name: str
    address: str
    reachable: bool
    desired_enabled: bool
    previously_enabled: bool
    written: bool = False
    error: str | None = None

    @property
    def changed(self) -> bool:
        return self.desired_enabled != self.previously_enabled


@dataclass(slots=True)
class ReconcileReport:
    group_name: str
    dry_run: bool = False
    outcomes: list[PeerOutcome] = field(default_factory=list)
    committed: bool = False

    @property
    def reachable_count(self) -> int:
        return sum(1 for row in self.outcomes if row.reachable)

    @property
    def changed_count(self) -> int:
        return sum(1 for row in self.outcomes if row.changed)

    @property
    def failed(self) -> list[PeerOutcome]:
        return [row for row in self.outcomes if row.error is not None]

    @property
    def ok(self) -> bool:
        return not self.failed and (self.committed or self.dry_run)


class ReconcileAborted(RuntimeError):
    """A fatal error stopped the run; `report` holds whatever was done before it."""

    def __init__(self, cause: Exception, report: ReconcileReport) -> None:
        self.cause = cause
        self.report = report
        super().__init__(str(cause))


class Reconciler:
    """
    Enable reachable peers of one server group and disable unreachable ones.

    Stateless: the desired flag is the current probe result, whatever the peer's stored
    state was. Every selected peer is written back in full, then the store is committed
    once. Under the "halt" policy the first store or lookup error aborts the run with no
    rollback of earlier writes and no commit; under "continue" per-peer failures are
    recorded and the commit still happens.

    Group membership is taken from the initial read and not re-checked before writing.
    """

    def __init__(
        self,
        store,
        prober,
        *,
        group_name: str,
        port: int = 443,
        probe_concurrency: int = 1,
        error_policy: ErrorPolicy = "halt",
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.prober = prober
        self.group_name = group_name
        self.port = int(port)
        self.probe_concurrency = max(1, int(probe_concurrency))
        self.error_policy = error_policy
        self.dry_run = dry_run

    async def run(self) -> ReconcileReport:
        report = ReconcileReport(group_name=self.group_name, dry_run=self.dry_run)

        try:
            peers = await self.store.list_peers()
            groups = GroupIndex(await self.store.list_server_groups())
        except StoreError as exc:
            raise ReconcileAborted(exc, report) from exc

        selected = select_peers(peers, self.group_name)
        PEERS_SELECTED.set(len(selected))
        logger.info(
            "reconcile_started group=%s peers_total=%s peers_selected=%s groups=%s",
            self.group_name,
            len(peers),
            len(selected),
            len(groups),
        )

        async with contextlib.aclosing(self._reachability(selected)) as reachability:
            async for peer, reachable in reachability:
                outcome = PeerOutcome(
                    uuid=peer.uuid,
                    name=peer.name,
                    address=peer.serveraddress,
                    reachable=reachable,
                    desired_enabled=reachable,
                    previously_enabled=peer.is_enabled,
                )
                report.outcomes.append(outcome)
                try:
                    await self._apply(peer, outcome, groups)
                except (StoreError, UnresolvedGroupError) as exc:
                    outcome.error = str(exc)
                    if self.error_policy != "continue":
                        logger.error("reconcile_aborted peer=%s uuid=%s error=%s", peer.name, peer.uuid, exc)
                        raise ReconcileAborted(exc, report) from exc
                    logger.error("peer_write_failed peer=%s uuid=%s error=%s", peer.name, peer.uuid, exc)

        PEERS_REACHABLE.set(report.reachable_count)

        if self.dry_run:
            logger.info("commit_skipped reason=dry_run group=%s", self.group_name)
            return report

        try:
            await self.store.commit()
        except StoreError as exc:
            raise ReconcileAborted(exc, report) from exc
        report.committed = True
        logger.info(
            "reconcile_finished group=%s selected=%s reachable=%s changed=%s failed=%s",
            self.group_name,
            len(report.outcomes),
            report.reachable_count,
            report.changed_count,
            len(report.failed),
        )
        return report

    async def _reachability(self, peers: Sequence[Peer]) -> AsyncIterator[tuple[Peer, bool]]:
        if self.probe_concurrency == 1:
            for peer in peers:
                yield peer, await self.prober.probe(peer.serveraddress, self.port)
            return

        sem = asyncio.Semaphore(self.probe_concurrency)

        async def _probe(peer: Peer) -> bool:
            async with sem:
                return await self.prober.probe(peer.serveraddress, self.port)

        results = await asyncio.gather(*[_probe(peer) for peer in peers])
        for peer, reachable in zip(peers, results):
            yield peer, reachable

    async def _apply(self, peer: Peer, outcome: PeerOutcome, groups: GroupIndex) -> None:
        group_id = groups.resolve(peer.servers, peer_name=peer.name)
        if self.dry_run:
            logger.info(
                "peer_write_planned peer=%s uuid=%s enabled=%s group_id=%s",
                peer.name,
                peer.uuid,
                encode_enabled(outcome.desired_enabled),
                group_id,
            )
            return

        await self.store.set_peer(peer, outcome.desired_enabled, group_id)
        outcome.written = True
        PEER_WRITES_TOTAL.labels(encode_enabled(outcome.desired_enabled)).inc()
        logger.info(
            "peer_written peer=%s uuid=%s enabled=%s changed=%s",
            peer.name,
            peer.uuid,
            encode_enabled(outcome.desired_enabled),
            outcome.changed,
        )
