"""
SQLVector Assistant Exceptions
==============================

Error taxonomy for the assistant. Only configuration errors are fatal;
everything else is caught at the interaction loop and ends a single turn.
"""

from typing import Optional


class AssistantError(Exception):
    """Base class for all assistant errors."""
    pass


class ConfigurationMissingError(AssistantError):
    """Raised at startup when a required setting has not been supplied."""

    def __init__(self, missing: list, hint: Optional[str] = None):
        self.missing = list(missing)
        self.hint = hint
        message = "Missing required configuration: " + ", ".join(self.missing)
        if hint:
            message += f"\n{hint}"
        super().__init__(message)


class RetrievalError(AssistantError):
    """Raised when the vector search against SQL Server fails."""
    pass


class GenerationError(AssistantError):
    """Raised when the generation service cannot produce an answer."""
    pass


class GenerationConnectError(GenerationError):
    """Raised when the generation request is rejected before streaming starts."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class GenerationStreamError(GenerationError):
    """Raised when the response stream breaks after it has started."""
    pass
