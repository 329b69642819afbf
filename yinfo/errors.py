"""
Error taxonomy for yinfo.

Transport and cipher errors are local to one profile attempt or one stream
and are normally handled inside the library. Only AllProfilesExhaustedError,
NoPlayableFormatsError and InvalidVideoIdError are expected to reach callers.
"""

from typing import Any


class YinfoError(Exception):
    """Base class for every error raised by yinfo."""

    error_code: str = "yinfo.error"

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        if error_code is not None:
            self.error_code = error_code


class InvalidVideoIdError(YinfoError):
    error_code = "video.invalid_id"


# ── Transport ────────────────────────────────────────────────────────


class TransportError(YinfoError):
    """A single (profile, operation) request failed."""

    error_code = "transport.error"
    retryable = False

    def __init__(self, message: str, client: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.client = client
        self.status_code = status_code


class NetworkError(TransportError):
    """Connectivity problem, timeout or 5xx. Worth retrying with the same profile."""

    error_code = "transport.network"
    retryable = True


class RejectedByServerError(TransportError):
    """4xx, rate limiting or bot detection. Fall back to another profile."""

    error_code = "transport.rejected"


class MalformedResponseError(TransportError):
    """The response body could not be understood."""

    error_code = "transport.malformed"


# ── Cipher ───────────────────────────────────────────────────────────


class CipherError(YinfoError):
    error_code = "cipher.error"


class ExtractionFailedError(CipherError):
    """Downloading or analysing a player script failed."""

    error_code = "cipher.extraction_failed"

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class NoMatchingFunctionError(CipherError):
    error_code = "cipher.no_matching_function"


class UnsupportedOperationError(CipherError):
    error_code = "cipher.unsupported_operation"


class VersionMismatchError(CipherError):
    error_code = "cipher.version_mismatch"

    def __init__(self, expected: str, actual: str | None):
        super().__init__(
            f"Cipher program for player {expected!r} cannot be applied "
            f"to a signature from player {actual!r}"
        )
        self.expected = expected
        self.actual = actual


# ── Orchestration / resolution ───────────────────────────────────────


class OrchestrationError(YinfoError):
    error_code = "orchestration.error"

    def __init__(self, message: str, failures: list[Any] | None = None):
        super().__init__(message)
        self.failures = list(failures or [])


def _client_name(failure: Any) -> str:
    client = getattr(failure, "client", failure)
    return str(getattr(client, "value", client))


class AllProfilesExhaustedError(OrchestrationError):
    """Every client profile was tried and none produced a usable response."""

    error_code = "orchestration.exhausted"

    def __init__(self, target: str, failures: list[Any]):
        tried = ", ".join(_client_name(f) for f in failures) or "none"
        super().__init__(
            f"All client profiles failed for {target!r} (tried: {tried})",
            failures=failures,
        )
        self.target = target


class ResolveError(YinfoError):
    error_code = "resolve.error"


class NoPlayableFormatsError(ResolveError):
    """A playable response came back but none of its streams could be resolved."""

    error_code = "resolve.no_playable_formats"

    def __init__(self, video_id: str, dropped: int = 0, failures: list[Any] | None = None):
        super().__init__(
            f"No playable formats could be resolved for {video_id!r} ({dropped} dropped)"
        )
        self.video_id = video_id
        self.dropped = dropped
        self.failures = list(failures or [])
