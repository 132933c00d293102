"""Wire protocol for the observer WebSocket channel.

Server -> observer frames are JSON objects ``{"type": ..., "data": ...}``:

- ``snapshot``: list of every current record, always the first frame
- ``status_update``: one full record
- ``agent_removed``: ``{"agentId": ...}``
- ``focus_request``: ``{"agentId": ..., "pid"?: ..., "cwd"?: ...}``

Observer -> server frames: ``{"type": "focus_request", "agentId": ...}``.
Anything else is ignored.
"""

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .models import AgentStatusRecord

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Observer channel event types."""

    SNAPSHOT = "snapshot"
    STATUS_UPDATE = "status_update"
    AGENT_REMOVED = "agent_removed"
    FOCUS_REQUEST = "focus_request"


@dataclass
class ObserverEvent:
    """An event announced to observers."""

    event_type: EventType
    data: Any

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.event_type.value, "data": self.data}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def snapshot_message(records: Iterable[AgentStatusRecord]) -> ObserverEvent:
    return ObserverEvent(EventType.SNAPSHOT, [record.to_dict() for record in records])


def status_update_message(record: AgentStatusRecord) -> ObserverEvent:
    return ObserverEvent(EventType.STATUS_UPDATE, record.to_dict())


def agent_removed_message(agent_id: str) -> ObserverEvent:
    return ObserverEvent(EventType.AGENT_REMOVED, {"agentId": agent_id})


def focus_request_message(agent_id: str, record: AgentStatusRecord | None = None) -> ObserverEvent:
    """Build a focus request, enriched with pid/cwd when the agent is known."""
    data: dict[str, Any] = {"agentId": agent_id}
    if record is not None:
        if record.pid:
            data["pid"] = record.pid
        if record.cwd:
            data["cwd"] = record.cwd
    return ObserverEvent(EventType.FOCUS_REQUEST, data)


def parse_focus_request(raw: str | bytes) -> str | None:
    """Extract the agent id from an inbound focus request frame.

    Returns:
        The requested agent id, or None for malformed or unrecognized frames
    """
    try:
        message = json.loads(raw)
    except (ValueError, RecursionError) as e:
        # ValueError covers JSONDecodeError, UnicodeDecodeError and oversized integers
        logger.debug(f"Ignoring malformed observer frame: {e}")
        return None

    if not isinstance(message, dict) or message.get("type") != EventType.FOCUS_REQUEST.value:
        logger.debug("Ignoring unrecognized observer frame")
        return None

    agent_id = message.get("agentId")
    if not isinstance(agent_id, str):
        return None
    return agent_id
