"""
Fatal error taxonomy for an agent run.

Anything deriving from :class:`AgentError` stops the run: the CLI reports the message and exits
non-zero.  Recoverable problems (bad tool arguments, tool output that does not match its schema)
never raise; they are recorded as failed :class:`~weathermail.core.schema.ToolResult` objects and
fed back to the model instead.
"""


class AgentError(RuntimeError):
    """Base class for errors that terminate a run."""


class UnknownToolError(AgentError):
    """Raised when the model requests a tool that is not in the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool requested by model: {name}")
        self.name = name


class IterationLimitExceeded(AgentError):
    """Raised when the model keeps requesting tools past the iteration bound."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"Too many tool-call iterations (limit is {limit}).")
        self.limit = limit


class ConfigurationError(AgentError):
    """Raised when required operator configuration (env vars, API keys) is missing."""


class ToolExecutionError(AgentError):
    """Raised when a tool executor fails at runtime (network error, unexpected exception)."""


class GatewayError(AgentError):
    """Raised when the language-model API call fails or returns something unusable."""
