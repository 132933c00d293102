"""Agent registry holding the current status record of every live agent."""

import logging
from dataclasses import dataclass, field

from .models import AgentStatusRecord, StatusReport, now_ms

logger = logging.getLogger(__name__)


def _empty_records() -> list[AgentStatusRecord]:
    """Factory for empty record list."""
    return []


@dataclass
class UpsertResult:
    """Outcome of a registry upsert."""

    record: AgentStatusRecord
    """The record now stored for the reporting agent"""

    evicted: list[AgentStatusRecord] = field(default_factory=_empty_records)
    """Ghost records removed because they shared the reporter's pid"""

    created: bool = False
    """True if no record existed for this agent id before"""


class AgentRegistry:
    """Registry for tracking agent status records.

    Holds at most one record per agent id and at most one record per pid.
    The underlying mapping is never handed out; callers get records or lists.
    """

    def __init__(self) -> None:
        self._agents: dict[str, AgentStatusRecord] = {}

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def upsert(self, report: StatusReport) -> UpsertResult:
        """Create or replace the record for the reporting agent.

        The stored label is kept when the report does not mention one. Any other
        record sharing the report's pid is evicted before the new record is
        stored.

        Args:
            report: Validated status report

        Returns:
            UpsertResult with the stored record and any evicted ghosts
        """
        existing = self._agents.get(report.agent_id)
        label = report.label if report.label_specified else (existing.label if existing else None)

        record = AgentStatusRecord(
            agent_id=report.agent_id,
            status=report.status,
            project_name=report.project_name,
            timestamp=now_ms(),
            client=report.client,
            cwd=report.cwd,
            pid=report.pid,
            label=label,
        )

        evicted: list[AgentStatusRecord] = []
        if record.pid:
            evicted = self.evict_by_pid(record.pid, keep=record.agent_id)

        self._agents[record.agent_id] = record
        logger.debug(f"Stored agent {record.agent_id} (status={record.status.value}, pid={record.pid})")
        return UpsertResult(record=record, evicted=evicted, created=existing is None)

    def evict_by_pid(self, pid: int, keep: str | None = None) -> list[AgentStatusRecord]:
        """Remove every record carrying the given pid.

        Args:
            pid: Process id to evict
            keep: Agent id exempt from eviction

        Returns:
            The removed records
        """
        ghosts = [record for agent_id, record in self._agents.items() if agent_id != keep and record.pid == pid]
        for ghost in ghosts:
            del self._agents[ghost.agent_id]
            logger.info(f"Evicted agent {ghost.agent_id}: pid {pid} now belongs to {keep}")
        return ghosts

    def set_label(self, agent_id: str, label: str) -> AgentStatusRecord | None:
        """Set or clear (empty string) the label of an agent.

        The timestamp is left alone; labels are not liveness signals.

        Returns:
            The updated record, or None if the agent is unknown
        """
        record = self._agents.get(agent_id)
        if record is None:
            return None
        record.label = label or None
        return record

    def get(self, agent_id: str) -> AgentStatusRecord | None:
        """Get record by agent id."""
        return self._agents.get(agent_id)

    def list_all(self) -> list[AgentStatusRecord]:
        """List all records."""
        return list(self._agents.values())

    def remove(self, agent_id: str) -> AgentStatusRecord | None:
        """Remove an agent.

        Returns:
            The removed record, or None if the agent was unknown
        """
        record = self._agents.pop(agent_id, None)
        if record is not None:
            logger.info(f"Removed agent {agent_id}")
        return record

    def remove_record(self, record: AgentStatusRecord) -> bool:
        """Remove a record only if it is still the one stored for its agent.

        Returns:
            True if the record was removed
        """
        if self._agents.get(record.agent_id) is not record:
            return False
        del self._agents[record.agent_id]
        logger.info(f"Removed agent {record.agent_id}")
        return True

    def clear(self) -> None:
        self._agents.clear()
