"""
Video session error taxonomy.

Error codes, the exception hierarchy and the classifier that maps raw SDK
failures to a user-facing kind. Drivers capture these into ConnectionState;
they never cross into the control surface as raised exceptions.
"""

import asyncio
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """User-facing classification of a failed session."""
    TOKEN_FETCH = "TokenFetchError"
    UNSUPPORTED_PROVIDER = "UnsupportedProviderError"
    PERMISSION_DENIED = "PermissionDeniedError"
    DEVICE_BUSY = "DeviceBusyError"
    NETWORK_TIMEOUT = "NetworkTimeoutError"
    UNKNOWN = "UnknownSessionError"
    # Internal signals, never shown to the user
    DUPLICATE_JOIN = "DuplicateJoinIgnored"
    STALE_COMPLETION = "StaleCompletionDropped"


# =============================================================================
# ERROR CODES
# =============================================================================

# Credential errors (1xxx)
ERROR_TOKEN_FETCH = 1001
ERROR_UNSUPPORTED_PROVIDER = 1002

# Device errors (2xxx)
ERROR_PERMISSION_DENIED = 2001
ERROR_DEVICE_BUSY = 2002

# Network errors (3xxx)
ERROR_NETWORK_TIMEOUT = 3001

# Session errors (4xxx)
ERROR_UNKNOWN = 4000
ERROR_DUPLICATE_JOIN = 4001
ERROR_STALE_COMPLETION = 4002


# =============================================================================
# EXCEPTIONS
# =============================================================================

class VideoSessionError(Exception):
    """Base class for every classified video session failure."""

    code: int = ERROR_UNKNOWN
    kind: ErrorKind = ErrorKind.UNKNOWN
    default_message: str = "Video call failed. Please try again."
    recoverable: bool = True
    user_visible: bool = True

    def __init__(self, message: Optional[str] = None, cause: Optional[BaseException] = None):
        self.user_message = message or self.default_message
        self.cause = cause
        super().__init__(self.user_message)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "kind": self.kind.value,
            "message": self.user_message,
            "recoverable": self.recoverable,
        }


class TokenFetchError(VideoSessionError):
    """Credential endpoint unreachable or rejected the request."""
    code = ERROR_TOKEN_FETCH
    kind = ErrorKind.TOKEN_FETCH
    default_message = "Failed to load video configuration"


class UnsupportedProviderError(VideoSessionError):
    """Provider tag returned by the backend is not one we can drive."""
    code = ERROR_UNSUPPORTED_PROVIDER
    kind = ErrorKind.UNSUPPORTED_PROVIDER
    default_message = "This consultation uses an unsupported video provider."
    recoverable = False

    def __init__(self, provider: str, message: Optional[str] = None):
        self.provider = provider
        super().__init__(message or f"Unsupported video provider: '{provider}'")


class PermissionDeniedError(VideoSessionError):
    code = ERROR_PERMISSION_DENIED
    kind = ErrorKind.PERMISSION_DENIED
    default_message = (
        "Microphone/Camera permission denied. Please allow access in your "
        "browser or system settings and rejoin."
    )
    recoverable = False


class DeviceBusyError(VideoSessionError):
    code = ERROR_DEVICE_BUSY
    kind = ErrorKind.DEVICE_BUSY
    default_message = (
        "Could not access microphone/camera. Please check if another app is using them."
    )


class NetworkTimeoutError(VideoSessionError):
    code = ERROR_NETWORK_TIMEOUT
    kind = ErrorKind.NETWORK_TIMEOUT
    default_message = "Network timeout. Please check your internet connection or firewall."


class UnknownSessionError(VideoSessionError):
    code = ERROR_UNKNOWN
    kind = ErrorKind.UNKNOWN


class DuplicateJoinIgnored(VideoSessionError):
    """A second join on the same driver while one is in flight (dropped)."""
    code = ERROR_DUPLICATE_JOIN
    kind = ErrorKind.DUPLICATE_JOIN
    default_message = "Duplicate join ignored"
    user_visible = False


class StaleCompletionDropped(VideoSessionError):
    """An async step finished after the driver was told to leave."""
    code = ERROR_STALE_COMPLETION
    kind = ErrorKind.STALE_COMPLETION
    default_message = "Stale completion dropped"
    user_visible = False

    def __init__(self, step: str = "", message: Optional[str] = None):
        self.step = step
        super().__init__(message or f"Stale completion dropped after '{step}'")


# =============================================================================
# CLASSIFICATION
# =============================================================================

_PERMISSION_MARKERS = ("NotAllowedError", "PERMISSION_DENIED", "SecurityError")
_DEVICE_BUSY_MARKERS = ("NotReadableError", "NOT_READABLE", "DEVICE_BUSY", "TrackStartError")
_NETWORK_MARKERS = ("NETWORK_TIMEOUT", "A_ROUND_WS_FAILED", "WS_ABORT", "NETWORK_ERROR")
_DUPLICATE_MARKERS = ("UID_CONFLICT",)
_ABORT_MARKERS = ("OPERATION_ABORTED",)


def _markers(error: BaseException) -> set:
    """Collects name/code identifiers carried by an SDK error."""
    found = {type(error).__name__}
    for attr in ("name", "code"):
        value = getattr(error, attr, None)
        if value is not None:
            found.add(str(value))
    return found


def classify_error(error: BaseException) -> VideoSessionError:
    """Maps a raw SDK/transport failure to a VideoSessionError.

    Already classified errors pass through unchanged. The SDK's own message is
    kept only for unknown failures; known kinds get the explanatory message.
    """
    if isinstance(error, VideoSessionError):
        return error

    markers = _markers(error)
    message = str(error)

    if markers & set(_DUPLICATE_MARKERS):
        return DuplicateJoinIgnored(cause=error)

    if markers & set(_ABORT_MARKERS) or "cancel token canceled" in message:
        return StaleCompletionDropped(step="sdk", message=message or None)

    if isinstance(error, PermissionError) or markers & set(_PERMISSION_MARKERS):
        return PermissionDeniedError(cause=error)

    if markers & set(_DEVICE_BUSY_MARKERS):
        return DeviceBusyError(cause=error)

    if (
        isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError))
        or markers & set(_NETWORK_MARKERS)
        or any(marker in message for marker in _NETWORK_MARKERS)
    ):
        return NetworkTimeoutError(cause=error)

    return UnknownSessionError(message or None, cause=error)
