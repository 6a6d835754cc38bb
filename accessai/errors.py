"""Exception types shared across AccessAI components."""

from typing import Optional


class AccessAIError(Exception):
    """Base class for every AccessAI failure."""


class CredentialError(AccessAIError):
    """The credential supplier could not produce a token."""


class TransportError(AccessAIError):
    """The streaming transport failed to open or dropped mid-session."""


class ConfigurationRejected(AccessAIError):
    """The remote service refused the session configuration."""


class MalformedEventError(AccessAIError):
    """An inbound frame is not valid JSON or an event carries an unusable payload."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class ToolExecutionError(AccessAIError):
    """A browser tool could not complete its action."""

    kind = "tool_failed"

    def __init__(self, message: str, *, kind: Optional[str] = None):
        super().__init__(message)
        if kind:
            self.kind = kind


class ElementNotFound(ToolExecutionError):
    """No element on the page matched the requested target."""

    kind = "element_not_found"

    def __init__(self, target: str, message: Optional[str] = None):
        super().__init__(message or f"No element found for '{target}'")
        self.target = target


class NoInputField(ToolExecutionError):
    """Typing was requested but the page exposes no visible text input."""

    kind = "no_input_field"


class UnknownTool(ToolExecutionError):
    """The model asked for a tool outside the catalog."""

    kind = "unknown_tool"
