from __future__ import annotations


class ConfigurationError(RuntimeError):
    pass


class StoreError(RuntimeError):
    """Base class for anything that makes a firewall API call unusable."""

    def __init__(self, message: str, *, method: str = "", path: str = "") -> None:
        self.method = method
        self.path = path
        super().__init__(message)


class StoreTransportError(StoreError):
    def __init__(self, *, method: str, path: str, reason: str) -> None:
        self.reason = reason
        super().__init__(f"{method} {path}: transport error: {reason}", method=method, path=path)


class StoreStatusError(StoreError):
    def __init__(self, *, status_code: int, method: str, path: str, detail: str) -> None:
        self.status_code = int(status_code)
        self.detail = detail
        super().__init__(
            f"FAIL. Reason: {status_code} Request Type: {method} Request made to: {path}",
            method=method,
            path=path,
        )


class StoreDecodeError(StoreError):
    def __init__(self, *, method: str, path: str, reason: str) -> None:
        self.reason = reason
        super().__init__(f"{method} {path}: cannot decode response: {reason}", method=method, path=path)


class StoreRejectedError(StoreError):
    """The store answered 200 but reported the write as failed."""

    def __init__(self, *, method: str, path: str, validations: dict[str, str]) -> None:
        self.validations = dict(validations)
        details = ", ".join(f"{k}={v}" for (k, v) in sorted(self.validations.items())) or "no details"
        super().__init__(f"{method} {path}: rejected by store: {details}", method=method, path=path)


class UnresolvedGroupError(LookupError):
    def __init__(self, group_name: str, *, peer_name: str = "") -> None:
        self.group_name = group_name
        self.peer_name = peer_name
        suffix = f" (peer {peer_name!r})" if peer_name else ""
        super().__init__(f"server group {group_name!r} not found in group table{suffix}")
