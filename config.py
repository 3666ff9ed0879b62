import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

# Load .env once on import
load_dotenv()

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5500",  # local dev
    "https://mikacode-stack.github.io",  # GitHub Pages
]


@dataclass
class Settings:
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "lessons"
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    images_dir: str = "images"
    log_level: int = logging.INFO
    log_file: Optional[str] = None
    port: int = 8000


def _parse_origins(raw: str) -> List[str]:
    origins = [part.strip() for part in raw.split(",")]
    return [origin for origin in origins if origin]


def _parse_log_level(raw: str) -> int:
    level = logging.getLevelName(raw.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown LOG_LEVEL: {raw!r}")
    return level


def get_settings() -> Settings:
    """
    Build settings from the environment.

    DATABASE_URL / DATABASE_NAME  - MongoDB connection
    CORS_ORIGINS                  - comma separated allow-list
    IMAGES_DIR                    - folder served by GET /images
    LOG_LEVEL / LOG_FILE          - logging setup
    PORT                          - uvicorn port
    """
    settings = Settings()

    settings.database_url = os.getenv("DATABASE_URL") or settings.database_url
    settings.database_name = os.getenv("DATABASE_NAME") or settings.database_name

    origins_raw = os.getenv("CORS_ORIGINS", "").strip()
    if origins_raw:
        settings.cors_origins = _parse_origins(origins_raw)

    settings.images_dir = os.getenv("IMAGES_DIR") or settings.images_dir

    level_raw = os.getenv("LOG_LEVEL", "").strip()
    if level_raw:
        settings.log_level = _parse_log_level(level_raw)
    settings.log_file = os.getenv("LOG_FILE") or None

    port_raw = os.getenv("PORT", "").strip()
    if port_raw:
        try:
            settings.port = int(port_raw)
        except ValueError:
            raise ValueError(f"PORT must be an integer, got {port_raw!r}") from None

    return settings
