from __future__ import annotations

import logging
import time
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from peerwarden.errors import StoreDecodeError, StoreRejectedError, StoreStatusError, StoreTransportError
from peerwarden.models import Peer, PeerPage, PeerWrite, ServerGroup, ServerGroupList
from peerwarden.observability import STORE_REQUEST_DURATION_SECONDS, STORE_REQUESTS_TOTAL

logger = logging.getLogger("peerwarden.store")

SEARCH_CLIENTS_PATH = "/api/wireguard/client/searchClient"
LIST_SERVERS_PATH = "/api/wireguard/client/list_servers"
SET_CLIENT_PATH = "/api/wireguard/client/setClient"
GENERAL_SET_PATH = "/api/wireguard/general/set"
RECONFIGURE_PATH = "/api/wireguard/service/reconfigure"


class FirewallStore:
    """
    Client for the firewall's WireGuard configuration API.

    Peer writes are staged by the firewall and only go live after `commit()`.
    Any non-200 answer, transport failure or undecodable body raises a `StoreError`.
    """

    def __init__(
        self,
        base_url: str,
        key: str,
        secret: str,
        *,
        timeout: float = 20.0,
        verify: bool | str = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=httpx.BasicAuth(key, secret),
            timeout=timeout,
            verify=verify,
            transport=transport,
        )

    async def __aenter__(self) -> "FirewallStore":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> Any:
        started = time.perf_counter()
        status = "error"
        try:
            try:
                response = await self._client.request(method, path, **kwargs)
            except httpx.TransportError as exc:
                raise StoreTransportError(method=method, path=path, reason=str(exc) or type(exc).__name__) from exc

            status = str(response.status_code)
            if response.status_code != 200:
                raise StoreStatusError(
                    status_code=response.status_code,
                    method=method,
                    path=path,
                    detail=response.text[:400],
                )
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError as exc:
                raise StoreDecodeError(method=method, path=path, reason=str(exc)) from exc
        finally:
            STORE_REQUESTS_TOTAL.labels(operation, status).inc()
            STORE_REQUEST_DURATION_SECONDS.labels(operation).observe(max(0.0, time.perf_counter() - started))

    @staticmethod
    def _decode(model: type[BaseModel], body: Any, *, method: str, path: str) -> Any:
        if not isinstance(body, dict):
            raise StoreDecodeError(method=method, path=path, reason=f"expected JSON object, got {type(body).__name__}")
        try:
            return model.model_validate(body)
        except ValidationError as exc:
            raise StoreDecodeError(method=method, path=path, reason=str(exc)) from exc

    @staticmethod
    def _ensure_acknowledged(body: Any, *, method: str, path: str) -> None:
        # 200 with {"result": "failed", "validations": {...}} means the record was not saved.
        if not isinstance(body, dict):
            return
        result = str(body.get("result") or "").strip().lower()
        if result == "failed":
            validations = body.get("validations") or {}
            if not isinstance(validations, dict):
                validations = {"detail": str(validations)}
            raise StoreRejectedError(
                method=method,
                path=path,
                validations={str(k): str(v) for (k, v) in validations.items()},
            )

    async def list_peers(self) -> list[Peer]:
        body = await self._request("list_peers", "GET", SEARCH_CLIENTS_PATH)
        page = self._decode(PeerPage, body, method="GET", path=SEARCH_CLIENTS_PATH)
        logger.info("peers_listed count=%s total=%s", len(page.rows), page.total)
        return list(page.rows)

    async def list_server_groups(self) -> list[ServerGroup]:
        body = await self._request("list_server_groups", "GET", LIST_SERVERS_PATH)
        table = self._decode(ServerGroupList, body, method="GET", path=LIST_SERVERS_PATH)
        logger.info("server_groups_listed count=%s", len(table.rows))
        return list(table.rows)

    async def set_peer(self, peer: Peer, enabled: bool, group_id: str) -> PeerWrite:
        path = f"{SET_CLIENT_PATH}/{peer.uuid}"
        record = PeerWrite.from_peer(peer, enabled=enabled, group_id=group_id)
        body = await self._request("set_peer", "POST", path, json=record.payload())
        self._ensure_acknowledged(body, method="POST", path=path)
        return record

    async def enable_service(self) -> None:
        body = await self._request("enable_service", "POST", GENERAL_SET_PATH, json={"general": {"enabled": "1"}})
        self._ensure_acknowledged(body, method="POST", path=GENERAL_SET_PATH)

    async def reconfigure(self) -> None:
        await self._request("reconfigure", "POST", RECONFIGURE_PATH)

    async def commit(self) -> None:
        await self.enable_service()
        await self.reconfigure()
        logger.info("store_committed base_url=%s", self.base_url)
