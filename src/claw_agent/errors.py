"""
Error taxonomy for the agent.

Transport and protocol failures travel through the stream as ``Failed``
events, tool failures become ``ToolResult`` errors, and caller errors are
raised directly from the public entry points.
"""


class AgentError(Exception):
    """Base class for all agent errors."""


class TransportError(AgentError):
    """Connection, timeout or non-success HTTP status from the completion endpoint."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProtocolError(AgentError):
    """The completion endpoint returned data that could not be decoded."""


class NoCredential(AgentError):
    """A required API key is not configured."""

    def __init__(self, service: str):
        super().__init__(f"No {service} API key configured")
        self.service = service


class ToolError(AgentError):
    """Base class for failures while dispatching a tool call."""


class ToolNotFound(ToolError):
    def __init__(self, name: str):
        super().__init__(f"Tool '{name}' not found")
        self.name = name


class InvalidArguments(ToolError):
    def __init__(self, message: str):
        super().__init__(f"Invalid arguments: {message}")


class ExecutionFailed(ToolError):
    def __init__(self, message: str):
        super().__init__(f"Execution failed: {message}")


class LoopLimitExceeded(AgentError):
    """The model kept requesting tools past the configured hop limit."""

    def __init__(self, max_hops: int):
        super().__init__(f"Tool loop limit of {max_hops} hops exceeded")
        self.max_hops = max_hops


class TurnInProgressError(AgentError):
    """A message was sent while the agent was not idle."""


class NotInitializedError(AgentError):
    """The agent was used before ``initialize()``."""
