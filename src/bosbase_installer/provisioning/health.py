"""Health probing after the stack starts.

Probes are advisory: an endpoint that never answers is reported as
unverified and the run still completes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

import httpx

from ..shared.logging import get_logger
from .compose import APP_PORT

log = get_logger(__name__)

ProgressCallback = Callable[[int, int, str | None], None]


@dataclass
class HealthProbe:
    """An endpoint to poll and its retry budget."""

    url: str
    label: str
    max_attempts: int = 20
    delay_seconds: float = 3.0


@dataclass
class ProbeResult:
    """Result of polling one probe."""

    probe: HealthProbe
    healthy: bool
    attempts: int = 0
    elapsed_seconds: float = 0.0
    status_code: int | None = None
    error: str | None = None


def default_probes() -> list[HealthProbe]:
    return [HealthProbe(f"http://localhost:{APP_PORT}/api/health", "BosBase API")]


class HealthChecker:
    """Poll probes one after another with bounded retries."""

    def __init__(
        self,
        probes: list[HealthProbe] | None = None,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize health checker.

        Args:
            probes: Probes to poll in order (default: the application API).
            timeout_seconds: Timeout for each HTTP request.
            transport: Optional httpx transport, used by tests.
        """
        self.probes = probes if probes is not None else default_probes()
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def poll(
        self,
        probe: HealthProbe,
        on_attempt: ProgressCallback | None = None,
    ) -> ProbeResult:
        """Poll a probe until a 2xx answer or the attempt budget is spent.

        Args:
            probe: Probe to poll.
            on_attempt: Optional callback called with (attempt, max_attempts, error)
                       for progress reporting.

        Returns:
            ProbeResult; healthy is False when every attempt failed.
        """
        start = datetime.now()
        last_error: str | None = None
        status_code: int | None = None

        async with httpx.AsyncClient(
            timeout=self.timeout_seconds, transport=self.transport
        ) as client:
            for attempt in range(1, probe.max_attempts + 1):
                try:
                    response = await client.get(probe.url)
                    status_code = response.status_code
                    if response.is_success:
                        elapsed = (datetime.now() - start).total_seconds()
                        log.info(
                            "health.healthy", label=probe.label, url=probe.url, attempts=attempt
                        )
                        return ProbeResult(
                            probe,
                            healthy=True,
                            attempts=attempt,
                            elapsed_seconds=elapsed,
                            status_code=status_code,
                        )
                    last_error = f"HTTP {response.status_code}"
                except httpx.ConnectError:
                    last_error = "Connection refused"
                except httpx.TimeoutException:
                    last_error = "Request timeout"
                except httpx.HTTPError as e:
                    last_error = str(e)

                if on_attempt:
                    on_attempt(attempt, probe.max_attempts, last_error)

                # No sleep after the final attempt
                if attempt < probe.max_attempts:
                    await asyncio.sleep(probe.delay_seconds)

        elapsed = (datetime.now() - start).total_seconds()
        log.warning(
            "health.unverified",
            label=probe.label,
            url=probe.url,
            attempts=probe.max_attempts,
            error=last_error,
        )
        return ProbeResult(
            probe,
            healthy=False,
            attempts=probe.max_attempts,
            elapsed_seconds=elapsed,
            status_code=status_code,
            error=f"Unable to verify {probe.label} at {probe.url}. Last error: {last_error}",
        )

    async def check_all(self, on_attempt: ProgressCallback | None = None) -> list[ProbeResult]:
        """Poll every probe sequentially."""
        results = []
        for probe in self.probes:
            results.append(await self.poll(probe, on_attempt))
        return results

    def check_all_sync(self, on_attempt: ProgressCallback | None = None) -> list[ProbeResult]:
        """Synchronous wrapper for check_all."""
        return asyncio.run(self.check_all(on_attempt))
