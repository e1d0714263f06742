from enum import Enum


class ErrorKind(str, Enum):
    OVERLOADED = "overloaded"
    MISCONFIGURED = "misconfigured"
    GENERIC = "generic"


# Substrings checked case-insensitively against error text
OVERLOAD_MARKERS = ("overloaded", "service unavailable", "503", "high demand")
MISCONFIG_MARKERS = ("failed_precondition", "api key", "api_key")

USER_MESSAGES = {
    ErrorKind.OVERLOADED: (
        "AI Service Overloaded: The AI service is currently experiencing high demand. "
        "Please try again in a few minutes."
    ),
    ErrorKind.MISCONFIGURED: (
        "AI Configuration Error: The language model provider is not configured. "
        "Check the OLLAMA_* settings in your .env file."
    ),
    ErrorKind.GENERIC: "The AI service could not complete the request. Please try again.",
}


class ComplianceAgentError(Exception):
    """Base class for every error raised by the compliance agent."""


class ConfigurationError(ComplianceAgentError):
    """Backing services are unreachable or unconfigured. Not recoverable without a reset."""


class GenerationServiceError(ComplianceAgentError):
    def __init__(self, message: str, kind: ErrorKind | None = None):
        super().__init__(message)
        self.kind = kind or classify_error_text(message)

    @property
    def user_message(self) -> str:
        if self.kind == ErrorKind.GENERIC:
            return f"{USER_MESSAGES[self.kind]} ({self})"
        return USER_MESSAGES[self.kind]


class InputRejected(ComplianceAgentError):
    """Local validation failure; no transition and no external call happened."""


class InvalidTransition(ComplianceAgentError):
    """An operation was requested from a state that does not allow it."""


class StoreError(ComplianceAgentError):
    pass


class UploadError(ComplianceAgentError):
    pass


class SessionNotFound(StoreError):
    pass


def classify_error_text(text: str | None) -> ErrorKind:
    """Map raw error text onto an :class:`ErrorKind` by substring inspection."""
    lowered = (text or "").lower()
    if any(marker in lowered for marker in OVERLOAD_MARKERS):
        return ErrorKind.OVERLOADED
    if any(marker in lowered for marker in MISCONFIG_MARKERS):
        return ErrorKind.MISCONFIGURED
    return ErrorKind.GENERIC
