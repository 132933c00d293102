"""Data models for agent status tracking."""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .exceptions import ValidationError


def now_ms() -> int:
    """Current epoch time in milliseconds."""
    return int(time.time() * 1000)


class AgentStatus(str, Enum):
    """Status an agent reports about itself."""

    RUNNING = "running"
    WAITING_FOR_USER = "waiting_for_user"
    IDLE = "idle"
    ERROR = "error"


VALID_STATUSES = frozenset(status.value for status in AgentStatus)


@dataclass
class AgentStatusRecord:
    """Current status of one live agent."""

    agent_id: str
    """Unique agent identifier, stable for one agent session"""

    status: AgentStatus
    """Last reported status"""

    project_name: str
    """Display label used for grouping"""

    timestamp: int
    """Epoch milliseconds of the last accepted status report"""

    client: str | None = None
    """Name of the reporting agent runtime"""

    cwd: str | None = None
    """Working directory of the agent"""

    pid: int | None = None
    """Process id used for liveness checks and ghost eviction"""

    label: str | None = None
    """User-assigned display name"""

    def to_dict(self) -> dict[str, Any]:
        """Convert to wire format; absent optional fields are omitted."""
        data: dict[str, Any] = {
            "agentId": self.agent_id,
            "status": self.status.value,
            "projectName": self.project_name,
        }
        if self.client:
            data["client"] = self.client
        if self.cwd:
            data["cwd"] = self.cwd
        if self.pid:
            data["pid"] = self.pid
        if self.label:
            data["label"] = self.label
        data["timestamp"] = self.timestamp
        return data


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _optional_pid(value: Any) -> int | None:
    # bool is an int subclass but never a pid
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int) and value > 0:
        return value
    return None


@dataclass
class StatusReport:
    """A validated inbound status report."""

    agent_id: str
    status: AgentStatus
    project_name: str
    client: str | None = None
    cwd: str | None = None
    pid: int | None = None
    label: str | None = None
    label_specified: bool = False

    @classmethod
    def from_payload(cls, data: Any) -> "StatusReport":
        """Validate a decoded JSON body.

        Required fields are checked in order and the first bad one is named in
        the raised ValidationError. Optional fields of the wrong type are
        dropped rather than rejected.

        Raises:
            ValidationError: If a required field is missing or invalid
        """
        if not isinstance(data, dict):
            raise ValidationError("agentId")

        agent_id = data.get("agentId")
        if not isinstance(agent_id, str) or not agent_id:
            raise ValidationError("agentId")

        status = data.get("status")
        if not isinstance(status, str) or status not in VALID_STATUSES:
            raise ValidationError("status")

        project_name = data.get("projectName")
        if not isinstance(project_name, str) or not project_name:
            raise ValidationError("projectName")

        label_specified = "label" in data
        return cls(
            agent_id=agent_id,
            status=AgentStatus(status),
            project_name=project_name,
            client=_optional_str(data.get("client")),
            cwd=_optional_str(data.get("cwd")),
            pid=_optional_pid(data.get("pid")),
            label=_optional_str(data.get("label")) if label_specified else None,
            label_specified=label_specified,
        )
