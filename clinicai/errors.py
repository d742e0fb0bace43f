"""
Error types raised by the visibility scan pipeline.
"""

from dataclasses import dataclass
from typing import Any, List, Optional


class ClinicAIError(Exception):
    """Base class for pipeline errors."""
    pass


class ProviderAPIError(ClinicAIError):
    """Raised when a provider answers with a non-2xx HTTP status."""

    def __init__(
        self,
        provider: str,
        status: int,
        message: str,
        code: Optional[str] = None,
        error_type: Optional[str] = None,
    ):
        super().__init__(message or "Unknown provider API error")
        self.provider = provider
        self.status = status
        self.code = code
        self.error_type = error_type

    def __str__(self) -> str:
        return f"{self.provider} API error ({self.status}): {self.args[0]}"


class NetworkError(ClinicAIError):
    """Raised when no HTTP response was received from a provider."""

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider

    def __str__(self) -> str:
        return f"{self.provider} network error: {self.args[0]}"


class ScanCancelledError(ClinicAIError):
    """Raised when the caller cancelled an in-flight provider request."""
    pass


class ParseError(ClinicAIError):
    """Raised when extraction output cannot be turned into JSON."""
    pass


class ScanRequestError(ClinicAIError):
    """Raised when a scan request is missing required fields."""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(f"Missing required fields: {', '.join(missing)}")


class VisibilityScanError(ClinicAIError):
    """Caller-facing error raised by the pipeline facade."""

    def __init__(self, message: str, failure: Optional["ScanFailure"] = None):
        super().__init__(message)
        self.failure = failure
        # RequestLog entries collected before the failure, when the facade has them
        self.request_logs: List[Any] = []


class AggregateScanFailure(VisibilityScanError):
    """Raised when neither provider produced a usable parsed result."""

    def __init__(self, provider_a_error: Optional[str], provider_b_error: Optional[str]):
        self.provider_a_error = provider_a_error
        self.provider_b_error = provider_b_error
        super().__init__(
            "Both AI scans failed to return usable results: "
            f"{provider_a_error or 'OpenAI: no response'}; "
            f"{provider_b_error or 'Perplexity: no response'}"
        )


@dataclass
class ScanFailure:
    """Classified failure of one provider call."""
    kind: str
    message: str
    provider: Optional[str] = None
    status: Optional[int] = None
    code: Optional[str] = None


def failure_from_exception(exc: BaseException, provider: Optional[str] = None) -> ScanFailure:
    """
    Classify an exception into a ScanFailure.

    kind is one of "http", "network", "parse", "cancelled" or "unknown".
    """
    if isinstance(exc, ProviderAPIError):
        return ScanFailure(
            kind="http",
            message=exc.args[0],
            provider=exc.provider,
            status=exc.status,
            code=exc.code,
        )
    if isinstance(exc, NetworkError):
        return ScanFailure(kind="network", message=exc.args[0], provider=exc.provider)
    if isinstance(exc, ParseError):
        return ScanFailure(kind="parse", message=str(exc), provider=provider)
    if isinstance(exc, ScanCancelledError):
        return ScanFailure(kind="cancelled", message=str(exc) or "Request cancelled", provider=provider)
    return ScanFailure(kind="unknown", message=str(exc) or exc.__class__.__name__, provider=provider)
