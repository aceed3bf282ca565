from pydantic_settings import BaseSettings
from typing import List
import os


class Settings(BaseSettings):
    # App Configuration
    APP_NAME: str = "TempoLink API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # CORS
    ALLOWED_HOSTS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Database (Postgres + PostGIS in production)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./tempolink.db")
    DATABASE_ECHO: bool = False

    # Clerk Integration
    CLERK_JWT_KEY: str = os.getenv("CLERK_JWT_KEY", "")
    CLERK_AUTHORIZED_PARTIES: List[str] = []

    # Geocoding (Nominatim)
    NOMINATIM_URL: str = "https://nominatim.openstreetmap.org/search"
    NOMINATIM_USER_AGENT: str = "TempoLink/1.0 (Contact: support@tempolink.com)"
    GEOCODING_TIMEOUT_SECONDS: int = 10
    DEFAULT_COUNTRY: str = "United States"

    # Availability grid
    GRID_START_HOUR: int = 8
    GRID_END_HOUR: int = 21
    SLOT_INCREMENT_MINUTES: int = 15

    # Calendar
    OCCURRENCE_LOOKAHEAD_DAYS: int = 365
    CALENDAR_UID_DOMAIN: str = "tempo-link.xyz"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Create settings instance
settings = Settings()

# Update allowed hosts for production
if os.getenv("ENVIRONMENT") == "production":
    settings.ALLOWED_HOSTS.extend([
        "https://tempo-link.xyz",
        "https://www.tempo-link.xyz"
    ])
