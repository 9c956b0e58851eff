import logging
from typing import Any, Dict, Optional

import requests

from ecowatch.core.errors import NetworkError
from ecowatch.core.settings import settings
from ecowatch.models.environment import EnvironmentalSnapshot
from ecowatch.utils.timestamps import utcnow
from .base import EnvironmentalProvider

logger = logging.getLogger(__name__)

WEATHER_FIELDS = "temperature_2m,relative_humidity_2m,wind_speed_10m"
AIR_QUALITY_FIELDS = "pm10,pm2_5,carbon_monoxide,nitrogen_dioxide"


class OpenMeteoProvider(EnvironmentalProvider):
    """
    Open-Meteo forecast + air-quality provider.

    - No API key required.
    - Two independent requests; one failing still yields the other's readings.
    - Raises NetworkError only when both requests fail.
    """

    name = "open-meteo"

    def __init__(
        self,
        weather_url: Optional[str] = None,
        air_quality_url: Optional[str] = None,
        timeout: Optional[float] = None,
        timezone: Optional[str] = None,
        session: Optional[requests.Session] = None
    ):
        self.weather_url = weather_url or settings.WEATHER_API_URL
        self.air_quality_url = air_quality_url or settings.AIR_QUALITY_API_URL
        self.timeout = timeout or settings.ENVIRONMENT_TIMEOUT_SECONDS
        self.timezone = timezone or settings.DEFAULT_TIMEZONE
        self.session = session or requests.Session()

    def _get_current(self, url: str, latitude: float, longitude: float, fields: str) -> Optional[Dict[str, Any]]:
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "current": fields,
            "timezone": self.timezone,
        }
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Open-Meteo request to {url} failed: {e}")
            return None

        if resp.status_code != 200:
            logger.warning(f"Open-Meteo request to {url} failed with status {resp.status_code}")
            return None

        try:
            return resp.json().get("current") or {}
        except ValueError as e:
            logger.warning(f"Open-Meteo returned invalid JSON from {url}: {e}")
            return None

    def fetch(self, latitude: float, longitude: float) -> EnvironmentalSnapshot:
        weather = self._get_current(self.weather_url, latitude, longitude, WEATHER_FIELDS)
        air = self._get_current(self.air_quality_url, latitude, longitude, AIR_QUALITY_FIELDS)

        if weather is None and air is None:
            raise NetworkError(f"Open-Meteo unavailable for ({latitude}, {longitude})")

        weather = weather or {}
        air = air or {}

        return EnvironmentalSnapshot(
            latitude=latitude,
            longitude=longitude,
            temperature=weather.get("temperature_2m"),
            humidity=weather.get("relative_humidity_2m"),
            wind_speed=weather.get("wind_speed_10m"),
            pm2_5=air.get("pm2_5"),
            pm10=air.get("pm10"),
            co=air.get("carbon_monoxide"),
            no2=air.get("nitrogen_dioxide"),
            fetched_at=utcnow(),
            provider=self.name,
        )
