"""Status service: ingestion rules tying registry, debounce, reaper and hub together."""

import logging
import time
from typing import Any

from .config import Settings
from .debounce import DebounceScheduler
from .exceptions import AgentNotFoundError, ValidationError
from .hub import BroadcastHub
from .models import AgentStatus, AgentStatusRecord, StatusReport
from .protocol import agent_removed_message, status_update_message
from .reaper import StalenessReaper
from .registry import AgentRegistry

logger = logging.getLogger(__name__)


class StatusService:
    """Applies producer reports to the registry and announces the results."""

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize the service and its collaborators.

        Args:
            settings: Server settings (defaults loaded from the environment)
        """
        self.settings = settings or Settings()
        self.started_at = time.monotonic()
        self.registry = AgentRegistry()
        self.hub = BroadcastHub(self.registry, queue_size=self.settings.observer_queue_size)
        self.debounce = DebounceScheduler(self.registry, self.hub, delay_ms=self.settings.waiting_debounce_ms)
        self.reaper = StalenessReaper(
            self.registry,
            self.evict_record,
            interval_ms=self.settings.cleanup_interval_ms,
            stale_timeout_ms=self.settings.stale_timeout_ms,
            access_denied_alive=self.settings.probe_access_denied_alive,
        )

    @property
    def uptime_seconds(self) -> int:
        return int(time.monotonic() - self.started_at)

    def report(self, payload: Any) -> AgentStatusRecord:
        """Validate and apply a status report.

        Args:
            payload: Decoded JSON body

        Returns:
            The stored record

        Raises:
            ValidationError: If a required field is missing or invalid
        """
        try:
            report = StatusReport.from_payload(payload)
        except ValidationError as e:
            logger.warning(f"Rejected status report: {e}")
            raise

        result = self.registry.upsert(report)
        for ghost in result.evicted:
            self.debounce.cancel(ghost.agent_id)
            self.hub.announce(agent_removed_message(ghost.agent_id))

        record = result.record
        if result.created:
            logger.info(f"New agent {record.agent_id} ({record.project_name}, status={record.status.value})")

        if record.status == AgentStatus.WAITING_FOR_USER:
            self.debounce.schedule(record.agent_id)
        else:
            self.debounce.cancel(record.agent_id)
            self.hub.announce(status_update_message(record))
        return record

    def remove(self, agent_id: str) -> AgentStatusRecord:
        """Remove an agent on request of its producer.

        Raises:
            AgentNotFoundError: If the agent is unknown
        """
        record = self.registry.remove(agent_id)
        if record is None:
            logger.warning(f"Removal requested for unknown agent {agent_id}")
            raise AgentNotFoundError(agent_id)
        self.debounce.cancel(agent_id)
        self.hub.announce(agent_removed_message(agent_id))
        return record

    def patch_label(self, agent_id: str, label: Any) -> AgentStatusRecord:
        """Set or clear an agent's label and announce it immediately.

        Raises:
            AgentNotFoundError: If the agent is unknown
            ValidationError: If label is not a string
        """
        if agent_id not in self.registry:
            raise AgentNotFoundError(agent_id)
        if not isinstance(label, str):
            raise ValidationError("label")

        record = self.registry.set_label(agent_id, label)
        assert record is not None
        logger.debug(f"Label for {agent_id} set to {record.label!r}")
        self.hub.announce(status_update_message(record))
        return record

    def list_records(self) -> list[AgentStatusRecord]:
        return self.registry.list_all()

    def evict_record(self, record: AgentStatusRecord) -> bool:
        """Remove a record found stale by the reaper.

        Returns:
            False if the record was replaced or removed in the meantime
        """
        if not self.registry.remove_record(record):
            return False
        self.debounce.cancel(record.agent_id)
        self.hub.announce(agent_removed_message(record.agent_id))
        return True

    def start(self) -> None:
        self.reaper.start()

    async def shutdown(self) -> None:
        """Cancel timers, stop the reaper and close every observer."""
        logger.info("Shutting down status service...")
        self.debounce.cancel_all()
        await self.reaper.stop()
        await self.hub.close_all()
        logger.info("Status service shutdown complete")
