"""
Core settings and environment variables for EcoWatch.
Uses pydantic-settings for type-safe environment variable loading.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Create a .env file in the root directory to configure these.
    """

    # Application
    APP_NAME: str = "EcoWatch"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - Frontend URLs allowed to access this API (comma separated)
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:5174,http://127.0.0.1:5173"

    # Firebase (Auth, Firestore, Storage)
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_CREDENTIALS_PATH: Optional[str] = None  # Path to service account JSON
    FIREBASE_STORAGE_BUCKET: Optional[str] = None

    # In-memory store for local development without Firebase credentials
    USE_MOCK_DB: bool = False
    MOCK_SEED_PATH: Optional[str] = None

    # Store write policy
    STORE_TIMEOUT_SECONDS: float = 10.0
    STORE_MAX_RETRIES: int = 3
    STORE_RETRY_BACKOFF_SECONDS: float = 0.5

    # Report images
    MAX_IMAGES_PER_REPORT: int = 5
    MAX_IMAGE_BYTES: int = 10 * 1024 * 1024

    # Weather / air quality (Open-Meteo, no API key)
    WEATHER_API_URL: str = "https://api.open-meteo.com/v1/forecast"
    AIR_QUALITY_API_URL: str = "https://air-quality-api.open-meteo.com/v1/air-quality"
    ENVIRONMENT_TIMEOUT_SECONDS: float = 5.0
    DEFAULT_LATITUDE: float = -1.2921  # Nairobi
    DEFAULT_LONGITUDE: float = 36.8219
    DEFAULT_TIMEZONE: str = "Africa/Nairobi"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"

    @property
    def cors_origins_list(self):
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Global settings instance
settings = Settings()
