from __future__ import annotations

import asyncio
import logging
import time

from peerwarden.observability import PROBE_DURATION_SECONDS, PROBES_TOTAL

logger = logging.getLogger("peerwarden.probe")

DEFAULT_TIMEOUT_SECONDS = 1.0


class TcpProber:
    """
    Single connect-with-timeout reachability check.

    Every failure mode (timeout, refusal, DNS, anything raised by the socket layer)
    is reported as "unreachable"; there are no retries.
    """

    def __init__(self, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.timeout_seconds = float(timeout_seconds)

    async def probe(self, address: str, port: int) -> bool:
        host = str(address or "").strip()
        if not host:
            logger.warning("probe_skipped reason=empty_address port=%s", port)
            PROBES_TOTAL.labels("unreachable").inc()
            return False

        started = time.perf_counter()
        try:
            ok = await self._connect(host, int(port))
        finally:
            PROBE_DURATION_SECONDS.observe(max(0.0, time.perf_counter() - started))

        PROBES_TOTAL.labels("reachable" if ok else "unreachable").inc()
        return ok

    async def _connect(self, host: str, port: int) -> bool:
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.info("probe_unreachable address=%s port=%s error=timeout", host, port)
            return False
        except (OSError, OverflowError, ValueError) as exc:
            logger.info("probe_unreachable address=%s port=%s error=%s", host, port, exc)
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        logger.info("probe_ok address=%s port=%s", host, port)
        return True
