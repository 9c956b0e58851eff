"""
Environmental readings for the public map.

Failures never propagate to the map: get_snapshot() logs and returns None.
"""

import asyncio
import logging
from typing import Optional, Tuple

from ecowatch.core.errors import EcoWatchError, ValidationError
from ecowatch.core.settings import settings
from ecowatch.models.environment import EnvironmentalSnapshot
from .base import EnvironmentalProvider
from .open_meteo import OpenMeteoProvider

logger = logging.getLogger(__name__)

# ~1 km; nearby map clicks hit the cached snapshot
COORD_PRECISION = 2


class EnvironmentService:
    """Fetches snapshots and remembers the most recent one for the active coordinate."""

    def __init__(self, provider: EnvironmentalProvider, timeout: Optional[float] = None):
        self.provider = provider
        self.timeout = timeout or settings.ENVIRONMENT_TIMEOUT_SECONDS
        self._latest: Optional[Tuple[Tuple[float, float], EnvironmentalSnapshot]] = None

    @staticmethod
    def _key(latitude: float, longitude: float) -> Tuple[float, float]:
        return (round(latitude, COORD_PRECISION), round(longitude, COORD_PRECISION))

    def latest(self, latitude: float, longitude: float) -> Optional[EnvironmentalSnapshot]:
        if self._latest is None:
            return None
        key, snapshot = self._latest
        return snapshot if key == self._key(latitude, longitude) else None

    async def get_snapshot(
        self,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None
    ) -> Optional[EnvironmentalSnapshot]:
        """
        Fetch current readings, defaulting to the configured city centre.

        Returns None when the provider is unavailable.

        Raises:
            ValidationError: coordinates out of range
        """
        lat = settings.DEFAULT_LATITUDE if latitude is None else latitude
        lng = settings.DEFAULT_LONGITUDE if longitude is None else longitude

        if not (-90 <= lat <= 90 and -180 <= lng <= 180):
            raise ValidationError(
                f"Coordinates out of range: ({lat}, {lng})",
                errors=[{"field": "coords", "message": "latitude must be in [-90, 90], longitude in [-180, 180]"}],
            )

        loop = asyncio.get_running_loop()
        try:
            snapshot = await asyncio.wait_for(
                loop.run_in_executor(None, self.provider.fetch, lat, lng),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Environment fetch timed out for ({lat}, {lng})")
            return None
        except EcoWatchError as e:
            logger.warning(f"⚠️ Environment data unavailable for ({lat}, {lng}): {e}")
            return None

        self._latest = (self._key(lat, lng), snapshot)
        return snapshot


_environment_service: Optional[EnvironmentService] = None


def get_environment_service() -> EnvironmentService:
    global _environment_service
    if _environment_service is None:
        _environment_service = EnvironmentService(OpenMeteoProvider())
        logger.info(f"Environment provider initialized: {_environment_service.provider.name}")
    return _environment_service


def set_environment_service(service: Optional[EnvironmentService]) -> None:
    global _environment_service
    _environment_service = service


__all__ = [
    "EnvironmentService",
    "EnvironmentalProvider",
    "OpenMeteoProvider",
    "get_environment_service",
    "set_environment_service",
]
