"""Staleness reaper removing agents whose producer has gone away."""

import asyncio
import contextlib
import logging
from collections.abc import Callable

import psutil

from .models import AgentStatusRecord, now_ms
from .registry import AgentRegistry

logger = logging.getLogger(__name__)


def is_process_alive(pid: int, access_denied_alive: bool = True) -> bool:
    """Check whether a pid refers to a running process.

    Args:
        pid: Process id to probe
        access_denied_alive: Result to use when the process exists but cannot be inspected

    Returns:
        True if the process is running
    """
    try:
        process = psutil.Process(pid)
        return process.status() != psutil.STATUS_ZOMBIE
    except psutil.ZombieProcess:
        return False
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        return access_denied_alive
    except (OSError, ValueError) as e:
        logger.debug(f"Liveness probe for pid {pid} failed: {e}")
        return False


class StalenessReaper:
    """Periodically evicts records of dead or long-silent agents.

    Records with a pid are probed for liveness. Records without one fall back
    to age since the last accepted report.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        evict: Callable[[AgentStatusRecord], bool],
        interval_ms: int = 30_000,
        stale_timeout_ms: int = 24 * 60 * 60 * 1000,
        access_denied_alive: bool = True,
    ) -> None:
        """Initialize the reaper.

        Args:
            registry: Registry to sweep
            evict: Callback removing a record and announcing it; returns False if the record had already changed
            interval_ms: Interval between sweeps
            stale_timeout_ms: Age after which a record without a pid is stale
            access_denied_alive: Liveness verdict for permission-denied probes
        """
        self.registry = registry
        self.evict = evict
        self.interval_ms = interval_ms
        self.stale_timeout_ms = stale_timeout_ms
        self.access_denied_alive = access_denied_alive
        self._task: asyncio.Task[None] | None = None
        self._sweeping = False

    @property
    def running(self) -> bool:
        return self._task is not None

    async def _is_stale(self, record: AgentStatusRecord, now: int) -> bool:
        if record.pid:
            alive = await asyncio.to_thread(is_process_alive, record.pid, self.access_denied_alive)
            return not alive
        return now - record.timestamp > self.stale_timeout_ms

    async def sweep(self) -> list[str]:
        """Run one pass over the registry.

        A sweep that starts while another is in progress does nothing.

        Returns:
            Agent ids evicted by this pass
        """
        if self._sweeping:
            logger.debug("Sweep already in progress, skipping")
            return []

        self._sweeping = True
        evicted: list[str] = []
        try:
            now = now_ms()
            for record in self.registry.list_all():
                try:
                    stale = await self._is_stale(record, now)
                except Exception as e:
                    # A probe that cannot answer counts as a dead process
                    logger.error(f"Staleness check failed for agent {record.agent_id}, treating as stale: {e}")
                    stale = True

                # The record may have been replaced while the probe was running
                if stale and self.evict(record):
                    logger.info(f"Reaped stale agent {record.agent_id} (pid={record.pid})")
                    evicted.append(record.agent_id)
        finally:
            self._sweeping = False

        if evicted:
            logger.info(f"Reaped {len(evicted)} stale agents")
        return evicted

    def start(self) -> None:
        """Start the periodic sweep task."""
        if self._task is not None:
            logger.warning("Reaper already running")
            return

        async def reap_loop() -> None:
            while True:
                try:
                    await asyncio.sleep(self.interval_ms / 1000)
                    await self.sweep()
                except asyncio.CancelledError:
                    logger.debug("Reaper task cancelled")
                    raise
                except Exception as e:
                    logger.error(f"Error in reaper task: {e}")

        self._task = asyncio.create_task(reap_loop())
        logger.info(f"Started reaper with interval {self.interval_ms}ms")

    async def stop(self) -> None:
        """Stop the periodic sweep task."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
            logger.info("Stopped reaper")
