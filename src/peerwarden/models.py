from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

ENABLED = "1"
DISABLED = "0"


def encode_enabled(value: bool) -> str:
    return ENABLED if value else DISABLED


class _StoreRow(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _none_as_empty(cls, value):  # noqa: ANN001, ANN206
        # The API returns numbers for some columns and null for unset ones; every field is a string.
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class Peer(_StoreRow):
    uuid: str = Field(min_length=1)
    enabled: str = DISABLED
    name: str = ""
    pubkey: str = ""
    psk: str = ""
    tunneladdress: str = ""
    serveraddress: str = ""
    serverport: str = ""
    endpoint: str = ""
    keepalive: str = ""
    # Server group *name* on read; the write side needs the group uuid instead.
    servers: str = ""

    @property
    def is_enabled(self) -> bool:
        return self.enabled == ENABLED


class PeerPage(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    rows: list[Peer] = Field(default_factory=list)
    row_count: int = Field(default=0, alias="rowCount")
    total: int = 0
    current: int = 1


class ServerGroup(_StoreRow):
    uuid: str = Field(min_length=1)
    name: str = ""


class ServerGroupList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    rows: list[ServerGroup] = Field(default_factory=list)


class PeerWrite(BaseModel):
    """Full writable peer record; the store clears anything left out."""

    enabled: str
    name: str
    pubkey: str
    psk: str
    tunneladdress: str
    serveraddress: str
    serverport: str
    servers: str
    keepalive: str

    @classmethod
    def from_peer(cls, peer: Peer, *, enabled: bool, group_id: str) -> "PeerWrite":
        return cls(
            enabled=encode_enabled(enabled),
            name=peer.name,
            pubkey=peer.pubkey,
            psk=peer.psk,
            tunneladdress=peer.tunneladdress,
            serveraddress=peer.serveraddress,
            serverport=peer.serverport,
            servers=group_id,
            keepalive=peer.keepalive,
        )

    def payload(self) -> dict[str, dict[str, str]]:
        return {"client": self.model_dump()}
