"""Error taxonomy for the orchestrator.

Fatal errors derive from OrchestratorError and propagate to the caller
after any partial text has been flushed.  Tool failures are not here:
they never leave the loop and are fed back to the model as tool results.
"""

from __future__ import annotations


class OrchestratorError(Exception):
    """Base class for errors that end an orchestration call."""


class ConfigurationError(OrchestratorError):
    """Missing credentials or nothing to send. Raised before any network call."""


class TransportError(OrchestratorError):
    """The model endpoint could not be reached or answered with an HTTP error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ModelTimeoutError(TransportError):
    """The model call exceeded its overall time ceiling."""


class ProtocolError(OrchestratorError):
    """The endpoint replied, but the reply is malformed or empty."""


class ContextLengthError(OrchestratorError):
    """The endpoint rejected the request because the input is too long."""

    USER_MESSAGE = "Context limit exceeded. Please start a new chat to continue."

    def __init__(self, detail: str = "") -> None:
        super().__init__(self.USER_MESSAGE)
        self.detail = detail


class OrchestrationAborted(OrchestratorError):
    """The caller's abort signal fired while waiting on the model."""


class ToolArgumentError(ValueError):
    """Arguments for a known local tool failed validation."""

    def __init__(self, tool_name: str, detail: str) -> None:
        super().__init__(f"Invalid arguments for {tool_name}: {detail}")
        self.tool_name = tool_name
        self.detail = detail
