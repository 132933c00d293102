"""Debounce scheduler for transient waiting_for_user reports.

Agent runtimes often report waiting_for_user and then running again a moment
later when they switch modes internally. Announcing every such flicker is
noise, so waiting_for_user announcements are held back for a short delay and
dropped if anything else is reported for the agent in the meantime.

Each agent is either quiescent (no handle) or pending (one timer handle).
"""

import asyncio
import logging

from .hub import BroadcastHub
from .models import AgentStatus
from .protocol import status_update_message
from .registry import AgentRegistry

logger = logging.getLogger(__name__)


class DebounceScheduler:
    """Holds at most one pending announcement per agent."""

    def __init__(self, registry: AgentRegistry, hub: BroadcastHub, delay_ms: int = 3_000) -> None:
        """Initialize the scheduler.

        Args:
            registry: Registry to re-read when a timer fires
            hub: Hub that receives the delayed announcement
            delay_ms: Delay before a waiting_for_user report is announced
        """
        self.registry = registry
        self.hub = hub
        self.delay_ms = delay_ms
        self._pending: dict[str, asyncio.TimerHandle] = {}

    def schedule(self, agent_id: str) -> None:
        """(Re)start the delay for an agent, replacing any pending timer."""
        self.cancel(agent_id)
        loop = asyncio.get_running_loop()
        self._pending[agent_id] = loop.call_later(self.delay_ms / 1000, self._fire, agent_id)
        logger.debug(f"Debouncing waiting_for_user for {agent_id} ({self.delay_ms}ms)")

    def cancel(self, agent_id: str) -> bool:
        """Drop the pending announcement for an agent.

        Returns:
            True if a timer was pending
        """
        handle = self._pending.pop(agent_id, None)
        if handle is None:
            return False
        handle.cancel()
        logger.debug(f"Cancelled pending announcement for {agent_id}")
        return True

    def cancel_all(self) -> None:
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()

    def is_pending(self, agent_id: str) -> bool:
        return agent_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def _fire(self, agent_id: str) -> None:
        self._pending.pop(agent_id, None)
        # The record may have changed or vanished while the timer was pending
        record = self.registry.get(agent_id)
        if record is not None and record.status == AgentStatus.WAITING_FOR_USER:
            self.hub.announce(status_update_message(record))
