"""Error taxonomy surfaced by the companion SDK.

Exception hierarchy:
    CompanionError (base)
    ├── ValidationError - missing or unsupported provider/model on a request
    ├── TransportError - the companion service could not be reached
    ├── ProtocolError - unparseable body or missing required fields
    ├── ProviderError - remote error payload reported by the service
    ├── CompanionTimeoutError - idle or total stream timeout
    ├── AbortError - caller-initiated cancellation
    ├── UnsupportedOperationError - capability not offered by the provider
    └── CompanionServiceError - companion process failed to start
        └── CompanionServerTimeoutError - process never became healthy
"""

from __future__ import annotations

from typing import Literal

from companion_sdk.providers import display_name


class CompanionError(Exception):
    """Base exception for all companion SDK errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CompanionError):
    pass


class TransportError(CompanionError):
    """Raised when the companion service cannot be reached."""


class ProtocolError(CompanionError):
    """Raised when a response is not JSON or lacks a required field."""


class ProviderError(CompanionError):
    """Remote error payload reported by the companion service.

    Attributes:
        status_code: HTTP status of the response carrying the error, if any.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CompanionTimeoutError(CompanionError):
    """Raised when a stream session exceeds its idle or total window.

    Attributes:
        kind: Which timer fired, ``"idle"`` or ``"total"``.
        timeout: Window length in seconds.
    """

    def __init__(self, kind: Literal["idle", "total"], timeout: float):
        if kind == "idle":
            message = f"Stream idle timeout: no activity for {timeout:g} seconds"
        else:
            message = f"Stream total timeout: request exceeded {timeout:g} seconds"
        super().__init__(message)
        self.kind = kind
        self.timeout = timeout


class AbortError(CompanionError):
    def __init__(self, message: str = "Request aborted"):
        super().__init__(message)


class UnsupportedOperationError(CompanionError):
    pass


class StreamUnavailableError(CompanionError):
    """The streaming chat endpoint does not exist on this service (404/405)."""

    def __init__(self, status_code: int):
        super().__init__(f"Streaming endpoint unavailable (HTTP {status_code})")
        self.status_code = status_code


class CompanionServiceError(CompanionError):
    """Raised when the supervised companion process fails to start."""


class CompanionServerTimeoutError(CompanionServiceError):
    pass


_FETCH_FAILURE_MARKERS = (
    "fetch failed",
    "failed to fetch",
    "connection refused",
    "connecterror",
    "all connection attempts failed",
    "could not reach",
)

_LOCAL_PROVIDERS = {"ollama", "vLLM", "lmStudio", "liteLLM"}


def friendly_error_message(provider: str | None, error: BaseException | str) -> str:
    """Rewrite a generic fetch failure into an actionable, provider-specific message.

    Any other error is returned unchanged.

    Args:
        provider: IDE-facing provider id the request was sent for.
        error: Exception or message to rewrite.

    Returns:
        Plain message suitable for display.
    """
    message = error.message if isinstance(error, CompanionError) else str(error)
    if not isinstance(error, TransportError) and not any(m in message.lower() for m in _FETCH_FAILURE_MARKERS):
        return message

    if provider is None:
        return f"Could not reach the companion service ({message}). Check that it is running."

    name = display_name(provider)
    if provider in _LOCAL_PROVIDERS:
        return (
            f"Failed to reach {name}. Make sure {name} is running locally and that the endpoint "
            f"in your provider settings is correct. ({message})"
        )
    if provider == "openAICompatible":
        return f"Failed to reach your OpenAI-compatible endpoint. Check the endpoint URL and headers. ({message})"
    return (
        f"Failed to reach {name} through the companion service. Check your network connection and "
        f"that your {name} API key is set. ({message})"
    )