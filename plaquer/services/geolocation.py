from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from plaquer.errors import GeolocationError, GeolocationErrorKind
from plaquer.models import Notice, Position

logger = logging.getLogger(__name__)

_MESSAGES = {
    GeolocationErrorKind.PERMISSION_DENIED: "Location access was denied. Enable it in your browser settings.",
    GeolocationErrorKind.UNAVAILABLE: "Your location is currently unavailable.",
    GeolocationErrorKind.TIMEOUT: "Finding your location took too long. Please try again.",
}


class PositionProvider(Protocol):
    """Device geolocation. Raises GeolocationError on failure."""

    async def current_position(self) -> Position: ...


@dataclass
class PositionResult:
    position: Optional[Position] = None
    error: Optional[GeolocationErrorKind] = None
    notice: Optional[Notice] = None

    @property
    def ok(self) -> bool:
        return self.position is not None


async def locate(provider: Optional[PositionProvider], timeout_s: float) -> PositionResult:
    """Current position within `timeout_s`; failures come back classified, never raised."""
    if provider is None:
        kind = GeolocationErrorKind.UNAVAILABLE
        return PositionResult(error=kind, notice=Notice(level="error", message="Geolocation is not supported here."))
    try:
        position = await asyncio.wait_for(provider.current_position(), timeout=timeout_s)
    except asyncio.TimeoutError:
        kind = GeolocationErrorKind.TIMEOUT
    except GeolocationError as e:
        kind = e.kind
        logger.info("Geolocation failed: %s", e)
    else:
        return PositionResult(position=position)
    return PositionResult(error=kind, notice=Notice(level="error", message=_MESSAGES[kind]))
