from pathlib import Path

from pydantic_settings import BaseSettings

# Application version - single source of truth
APP_VERSION = "0.3.0"

# Base directory for path calculations
_base_dir = Path(__file__).resolve().parent.parent.parent.parent


class Settings(BaseSettings):
    app_name: str = "Spoolstock"
    debug: bool = False  # Default to production mode

    # Paths
    base_dir: Path = _base_dir
    log_dir: Path = base_dir / "logs"
    database_url: str = f"sqlite+aiosqlite:///{_base_dir / 'spoolstock.db'}"

    # Logging
    log_level: str = "INFO"  # Override with LOG_LEVEL env var or DEBUG=true
    log_to_file: bool = True  # Set to false to disable file logging

    # API
    api_prefix: str = "/api/v1"

    # Weight accounting
    allocation_policy: str = "recency_first"  # recency_first, fifo, proportional
    restock_threshold_g: float = 100.0  # Low-stock notification threshold (gross grams)

    # G-code uploads
    gcode_max_upload_bytes: int = 10 * 1024 * 1024
    default_filament_diameter_mm: float = 1.75
    default_filament_density: float = 1.24  # g/cm³ (PLA)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()

# Ensure directories exist
if settings.log_to_file:
    settings.log_dir.mkdir(exist_ok=True)
