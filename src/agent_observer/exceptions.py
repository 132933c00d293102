"""
Exception classes for the status server.

The service layer raises these; the HTTP layer maps them to status codes.
"""


class AgentObserverError(Exception):
    """Base exception for agent observer errors."""

    pass


class ValidationError(AgentObserverError):
    """Inbound report or patch failed validation."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Missing or invalid field: {field}")


class AgentNotFoundError(AgentObserverError):
    """Operation referenced an unknown agent id."""

    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        super().__init__(f"Agent not found: {agent_id}")
