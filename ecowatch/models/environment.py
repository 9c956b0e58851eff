"""
Environmental readings shown next to the public map.
Derived and held in memory only.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class EnvironmentalSnapshot(BaseModel):
    """Point-in-time weather and air-quality reading for a coordinate."""
    latitude: float
    longitude: float
    temperature: Optional[float] = Field(None, description="°C")
    humidity: Optional[float] = Field(None, description="Relative humidity, %")
    wind_speed: Optional[float] = Field(None, alias="windSpeed", description="km/h")
    pm2_5: Optional[float] = Field(None, description="µg/m³")
    pm10: Optional[float] = Field(None, description="µg/m³")
    co: Optional[float] = Field(None, description="Carbon monoxide, µg/m³")
    no2: Optional[float] = Field(None, description="Nitrogen dioxide, µg/m³")
    fetched_at: datetime = Field(..., alias="fetchedAt")
    provider: str = "open-meteo"

    class Config:
        populate_by_name = True
