"""
clipflow exception hierarchy.

All errors raised by the package inherit from ClipflowError. The orchestrator
treats them in three tiers:

- fatal to a run: ConfigurationError, SegmentDerivationError, SessionCreateError
- local to one segment: ProviderRequestError (and ResponseShapeError)
- invisible to the user: StorageUpdateError
"""
from enum import Enum
from typing import Optional


class ClipflowError(Exception):
    """Base exception for all clipflow errors."""
    pass


class InvalidTransitionError(ClipflowError):
    """A status change that the segment state machine does not allow."""

    def __init__(self, current: str, event: str):
        super().__init__(f"Cannot apply '{event}' to a segment that is {current}")
        self.current = current
        self.event = event


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(ClipflowError):
    """The active provider is not usable (not configured, bad endpoint)."""
    pass


class ValidationKind(str, Enum):
    MISSING_ENDPOINT = "missing_endpoint"
    MALFORMED_ENDPOINT = "malformed_endpoint"
    MISSING_CREDENTIAL = "missing_credential"


class ProviderConfigValidationError(ConfigurationError):
    """Provider settings were rejected before being persisted."""

    def __init__(self, kind: ValidationKind, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.detail = detail


# =============================================================================
# Run Errors
# =============================================================================

class SegmentDerivationError(ClipflowError):
    """Splitting the prompt into segment prompts failed."""
    pass


class SessionCreateError(ClipflowError):
    """The session store refused or failed to create the session."""
    pass


class ProviderRequestError(ClipflowError):
    """A single clip-generation attempt failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ResponseShapeError(ProviderRequestError):
    """The provider answered 2xx but without a usable clip URL."""
    pass


class StorageUpdateError(ClipflowError):
    """Mirroring a status change to the session store failed."""
    pass


# =============================================================================
# Session Store Errors
# =============================================================================

class SessionStoreError(ClipflowError):
    """Base class for session store failures."""
    pass


class SessionValidationError(SessionStoreError, ValueError):
    """Arguments to create_session were out of bounds."""
    pass


class SessionNotFoundError(SessionStoreError, KeyError):
    """No session exists with the requested id."""

    def __str__(self) -> str:
        return Exception.__str__(self)


class SegmentIndexError(SessionStoreError, IndexError):
    """A segment index outside the session's segment range."""
    pass


def error_type(exc: BaseException) -> str:
    """Stable snake-case tag for an exception class, used in API responses."""
    name = type(exc).__name__
    out = []
    for i, ch in enumerate(name):
        if ch.isupper() and i and not name[i - 1].isupper():
            out.append("_")
        out.append(ch.lower())
    return "".join(out)
