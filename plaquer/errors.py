from __future__ import annotations

from enum import Enum


class ProviderError(Exception):
    """Bad response from an external provider; adapters turn it into an empty or estimated result."""


class GeolocationErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"


class GeolocationError(Exception):
    def __init__(self, kind: GeolocationErrorKind, message: str = "") -> None:
        super().__init__(message or kind.value)
        self.kind = kind
