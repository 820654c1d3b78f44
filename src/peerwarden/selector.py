from __future__ import annotations

from collections.abc import Iterable

from peerwarden.errors import UnresolvedGroupError
from peerwarden.models import Peer, ServerGroup


def select_peers(peers: Iterable[Peer], group_name: str) -> list[Peer]:
    """Peers whose group name equals `group_name` exactly, in input order."""
    return [peer for peer in peers if peer.servers == group_name]


class GroupIndex:
    """Name -> uuid lookup over the server group table (first entry wins on duplicate names)."""

    def __init__(self, groups: Iterable[ServerGroup]) -> None:
        self._by_name: dict[str, str] = {}
        for group in groups:
            self._by_name.setdefault(group.name, group.uuid)

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def resolve(self, group_name: str, *, peer_name: str = "") -> str:
        try:
            return self._by_name[group_name]
        except KeyError:
            raise UnresolvedGroupError(group_name, peer_name=peer_name) from None


def resolve_group_id(groups: Iterable[ServerGroup], group_name: str) -> str:
    return GroupIndex(groups).resolve(group_name)
