"""Exception taxonomy for completion calls and the news pipeline."""

from __future__ import annotations


class BriefError(Exception):
    """Base class for every error raised by this package."""


class CompletionError(BriefError):
    """A single completion call could not produce model text."""


class UpstreamRejected(CompletionError):
    """The completion endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Completion endpoint returned {status_code}: {body[:200]}")

    @property
    def retryable(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500


class CompletionTimeout(CompletionError):
    """The call exceeded its hard timeout and was cancelled."""


class TransportError(CompletionError):
    """Network-level failure before a status code was received."""


class MalformedEnvelope(CompletionError):
    """The response body was not a usable completion envelope."""


class JsonRepairError(BriefError, ValueError):
    """Model text stayed unparseable after the repair pass."""


class InvalidFormat(BriefError, ValueError):
    """Well-formed JSON with the wrong shape (e.g. an object instead of an array)."""


class OrchestrationFailed(BriefError):
    """The trending stage failed, so no news list could be produced."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause

    @property
    def timed_out(self) -> bool:
        return isinstance(self.cause, CompletionTimeout)
