"""Custom exception hierarchy for the orchestration runtime.

Only ``ConfigError`` is fatal. Every other error is turned into
conversation content or an instance status by the runtime.
"""


class ForgeError(Exception):
    """Base exception for all runtime errors."""


# =============================================================================
# Configuration
# =============================================================================

class ConfigError(ForgeError):
    """Workflow or settings could not be loaded.

    Attributes:
        key: The offending key or token, when one can be named
    """

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        if key is not None:
            message = f"{message} (key: '{key}')"
        super().__init__(message)


# =============================================================================
# Event routing
# =============================================================================

class UnknownEventError(ForgeError):
    """An event was published that no agent subscribes to."""

    def __init__(self, event_name: str):
        self.event_name = event_name
        super().__init__(f"No agent subscribes to event '{event_name}'")


class DispatchDepthExceededError(ForgeError):
    """An agent dispatch would exceed the configured recursion depth."""

    def __init__(self, event_name: str, depth: int, limit: int):
        self.event_name = event_name
        self.depth = depth
        self.limit = limit
        super().__init__(
            f"Dispatch of '{event_name}' suppressed: depth {depth} exceeds limit {limit}"
        )


class ProtocolViolationError(ForgeError):
    """A tool result does not match any outstanding tool call."""

    def __init__(self, call_id: str):
        self.call_id = call_id
        super().__init__(f"Tool result for unknown or resolved call '{call_id}'")


# =============================================================================
# Parsing
# =============================================================================

class ParseError(ForgeError):
    """A tagged tool call was malformed.

    Returned to the model as corrective feedback rather than raised
    out of the turn.
    """

    def __init__(self, message: str, tool_name: str | None = None):
        self.tool_name = tool_name
        super().__init__(message)


# =============================================================================
# Provider Errors - Issues with LLM API interactions
# =============================================================================

class ProviderError(ForgeError):
    """Base class for LLM provider errors."""


class AuthenticationError(ProviderError):
    """API key is invalid or missing."""


class RateLimitError(ProviderError):
    """Rate limit exceeded."""

    def __init__(self, message: str = "Rate limit exceeded", retry_after: float | None = None):
        self.retry_after = retry_after
        if retry_after:
            message = f"{message}. Retry after: {retry_after}s"
        super().__init__(message)


class ModelNotFoundError(ProviderError):
    """Requested model does not exist."""

    def __init__(self, model_name: str):
        self.model_name = model_name
        super().__init__(f"Model not found: {model_name}")


class ProviderUnavailableError(ProviderError):
    """Provider API is temporarily unavailable."""


class InvalidResponseError(ProviderError):
    """Response from provider could not be parsed."""


# =============================================================================
# Tool Errors - Issues with tool execution
# =============================================================================

class ToolError(ForgeError):
    """Base class for tool errors."""


class ToolNotAvailableError(ToolError):
    """Tool is outside the agent's allow-list or forbidden by the current mode."""

    def __init__(self, tool_name: str, reason: str):
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"Tool '{tool_name}' is not available: {reason}")


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, cause: Exception | str):
        self.tool_name = tool_name
        self.cause = cause
        super().__init__(f"Tool '{tool_name}' execution failed: {cause}")


class ToolTimeoutError(ToolExecutionError):
    """Tool execution timed out."""

    def __init__(self, tool_name: str, timeout: float):
        self.timeout = timeout
        super().__init__(tool_name, f"timed out after {timeout}s")


# =============================================================================
# Security Errors - Security-related issues
# =============================================================================

class SecurityError(ForgeError):
    """Base class for security-related errors."""


class PathTraversalError(SecurityError):
    """Attempted path traversal attack."""

    def __init__(self, attempted_path: str, allowed_base: str):
        self.attempted_path = attempted_path
        self.allowed_base = allowed_base
        super().__init__(
            f"Path traversal blocked: '{attempted_path}' is outside allowed directory '{allowed_base}'"
        )


class DisallowedCommandError(SecurityError):
    """Attempted to run a disallowed command."""

    def __init__(self, command: str, reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Command disallowed: '{command}'. Reason: {reason}")
