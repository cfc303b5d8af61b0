"""
Health Monitor

HTTP health probes and remote log tailing.
"""

import asyncio
import time
from datetime import datetime
from typing import Callable, List, Optional

import httpx

from binship.models.results import HealthObservation, HealthStatus
from binship.services.ssh_service import quote

ObservationSink = Callable[[HealthObservation], None]
LineSink = Callable[[str], None]


class HealthMonitor:
    """Polls an HTTP endpoint and classifies every response."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport, follow_redirects=True)
        return self._client

    async def observe_once(
        self,
        endpoint: str,
        timeout: float,
        expect_body: Optional[str] = None,
    ) -> HealthObservation:
        """
        Probe the endpoint once.

        Refused connections and timeouts are UNREACHABLE. A response that is
        not 2xx, or whose body lacks expect_body, is UNHEALTHY.
        """
        client = self._get_client()
        start = time.monotonic()
        try:
            response = await client.get(endpoint, timeout=timeout)
        except httpx.TimeoutException:
            return HealthObservation(
                timestamp=datetime.now(),
                status=HealthStatus.UNREACHABLE,
                latency=time.monotonic() - start,
                error=f"timed out after {timeout}s",
            )
        except httpx.TransportError as e:
            return HealthObservation(
                timestamp=datetime.now(),
                status=HealthStatus.UNREACHABLE,
                latency=time.monotonic() - start,
                error=str(e) or type(e).__name__,
            )

        latency = time.monotonic() - start

        if not response.is_success:
            return HealthObservation(
                timestamp=datetime.now(),
                status=HealthStatus.UNHEALTHY,
                latency=latency,
                error=f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if expect_body and expect_body not in response.text:
            return HealthObservation(
                timestamp=datetime.now(),
                status=HealthStatus.UNHEALTHY,
                latency=latency,
                error=f"response body does not contain '{expect_body}'",
                status_code=response.status_code,
            )

        return HealthObservation(
            timestamp=datetime.now(),
            status=HealthStatus.HEALTHY,
            latency=latency,
            status_code=response.status_code,
        )

    async def run_continuous(
        self,
        endpoint: str,
        interval: float,
        sink: ObservationSink,
        timeout: float,
        expect_body: Optional[str] = None,
    ) -> None:
        """
        Produce one observation per interval until cancelled.

        A probe that has already started is allowed to finish and is
        delivered to the sink before the cancellation propagates.
        """
        while True:
            probe = asyncio.ensure_future(self.observe_once(endpoint, timeout, expect_body))
            try:
                observation = await asyncio.shield(probe)
            except asyncio.CancelledError:
                sink(await probe)
                raise
            sink(observation)
            await asyncio.sleep(interval)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HealthMonitor":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False


class LogTailer:
    """
    Reads lines appended to a remote file.

    The byte offset belongs to this tailer only. If the file shrinks
    (rotation or truncation) reading restarts from the beginning.
    """

    def __init__(self, session, path: str, offset: int = 0):
        self.session = session
        self.path = path
        self.offset = offset
        self._partial = ""

    async def size(self) -> Optional[int]:
        result = await self.session.exec(f"stat -c %s {quote(self.path)}")
        if result.is_failure:
            return None
        try:
            return int(result.stdout.strip())
        except ValueError:
            return None

    async def seek_end(self) -> None:
        """Skip existing content; only lines written from now on are read."""
        size = await self.size()
        self.offset = size or 0
        self._partial = ""

    async def last_lines(self, lines: int) -> List[str]:
        """Last N lines of the file."""
        result = await self.session.exec(f"tail -n {int(lines)} {quote(self.path)}")
        if result.is_failure:
            return []
        return result.stdout.splitlines()

    async def poll(self) -> List[str]:
        """Return complete lines appended since the previous poll."""
        size = await self.size()
        if size is None:
            return []
        if size < self.offset:
            self.offset = 0
            self._partial = ""
        if size == self.offset:
            return []

        length = size - self.offset
        result = await self.session.exec(
            f"tail -c +{self.offset + 1} {quote(self.path)} | head -c {length}"
        )
        if result.is_failure:
            return []

        self.offset = size
        text = self._partial + result.stdout
        lines = text.split("\n")
        self._partial = lines.pop()
        return lines

    async def follow(self, interval: float, sink: LineSink) -> None:
        """Poll forever, feeding new lines to the sink."""
        while True:
            for line in await self.poll():
                sink(line)
            await asyncio.sleep(interval)
