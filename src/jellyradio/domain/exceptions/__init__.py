"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing str(exception).
    # The *args lets subclasses pass extra context. This is your base class - DON'T raise it directly!
    # Always use a specific subclass so callers can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class SetupError(DomainException):
    """Pipeline setup failed and the run cannot start.

    Raised for: no valid session, suggestion source unusable, playlist
    creation failed, caller token rejected, single-song download impossible
    or failed. This is the ONLY exception the use cases let escape.

    HTTP Status: 502 (401 when caused by an authentication failure,
    503 when caused by missing configuration)
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause

    @property
    def is_auth_failure(self) -> bool:
        return isinstance(self.cause, AuthenticationError)

    @property
    def is_configuration_failure(self) -> bool:
        return isinstance(self.cause, ConfigurationError)


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Raised when required configuration is missing or invalid.

    HTTP Status: 503 (Service Unavailable)

    Example:
        raise ConfigurationError("Jellyfin admin credentials not configured")
    """

    pass


class AuthenticationError(DomainException):
    """The remote server rejected our credentials or the credential exchange failed.

    Hey future me - http_status is 401/403 when the server told us so. The
    SessionGuard recovers ONE of these per call via refresh-and-retry; a
    second one propagates to whoever made the call.

    HTTP Status: 401
    """

    def __init__(self, message: str, http_status: int | None = None) -> None:
        super().__init__(message)
        self.http_status = http_status


class ExternalServiceError(DomainException):
    """External service (Jellyfin, suggestion API, etc.) returned an error.

    HTTP Status: 502 (Bad Gateway)

    Example:
        raise ExternalServiceError("Jellyfin API error: 503 Service Unavailable", http_status=503)
    """

    def __init__(self, message: str, http_status: int | None = None) -> None:
        super().__init__(message)
        self.http_status = http_status


# =============================================================================
# Per-suggestion / per-run failure kinds
# Hey future me - these are never raised! The pipeline steps put them on the
# failed Outcome values (SearchOutcome.error, AddOutcome.error, ...) and the
# radio run renders their message into SynthesisResult.errors. A single-song
# download that fails wraps its AcquisitionError in a SetupError instead.
# =============================================================================


class MatchError(DomainException):
    """A catalog search failed for one suggestion."""

    pass


class AcquisitionError(DomainException):
    """Acquisition tool unavailable, directory missing, or fetch failed."""

    pass


class PlaylistAddError(DomainException):
    """Adding a matched track to the playlist failed."""

    pass


class ScanTimeoutError(DomainException):
    """The library re-index did not settle within the allotted wait."""

    pass


__all__ = [
    "AcquisitionError",
    "AuthenticationError",
    "ConfigurationError",
    "DomainException",
    "ExternalServiceError",
    "MatchError",
    "PlaylistAddError",
    "ScanTimeoutError",
    "SetupError",
]
