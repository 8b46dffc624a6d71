"""
Application configuration.

Settings are read from the process environment once per process, after
loading an optional ``.env`` file. All modules obtain them through
:func:`get_settings` so tests can swap values by clearing the cache.

Environment variables:
    - PORT, LOG_LEVEL
    - JSON_LIMIT, URL_LIMIT, FILE_UPLOAD_LIMIT: size strings such as ``10mb``
    - CORS_ORIGINS: ``*`` or a comma-separated list of origins
    - SESSION_SECRET
    - MONGODB_URI, MONGODB_DB, USE_EMULATOR, EMULATOR_DB_HOST
    - EXTERNAL_API_BASE_URL, EXTERNAL_API_MASTER_PASSWORD
    - CONTRACT_SERVICE_URL, FRONTEND_URL
    - ONTOLOGY_STORAGE_DIR
"""

import os
import re
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

DEFAULT_SIZE_LIMIT = 10 * 1024 * 1024

_SIZE_RE = re.compile(r"^(\d+)(kb|mb|gb)?$", re.IGNORECASE)
_UNITS = {"kb": 1024, "mb": 1024 ** 2, "gb": 1024 ** 3}


def parse_size_limit(value: Optional[str], default: int = DEFAULT_SIZE_LIMIT) -> int:
    """
    Converts a size string like ``100mb`` into a number of bytes.

    A bare number is read as megabytes. Values that cannot be parsed
    fall back to ``default``.

    Example:
        >>> parse_size_limit("512kb")
        524288
    """

    if not value:
        return default
    match = _SIZE_RE.match(value.strip())
    if not match:
        return default
    amount = int(match.group(1))
    unit = (match.group(2) or "mb").lower()
    return amount * _UNITS[unit]


def _parse_origins(value: Optional[str]) -> List[str]:
    if not value or value.strip() == "*":
        return ["*"]
    return [origin.strip() for origin in value.split(",") if origin.strip()]


def _parse_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")


class Settings(BaseModel):
    """Runtime configuration for the UpConsent backend."""

    port: int = 8010
    log_level: str = "INFO"

    json_limit: int = DEFAULT_SIZE_LIMIT
    url_limit: int = DEFAULT_SIZE_LIMIT
    file_upload_limit: int = DEFAULT_SIZE_LIMIT

    cors_origins: List[str] = ["*"]
    session_secret: str = "supersecret"

    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "upconsent"
    use_emulator: bool = False
    emulator_db_host: str = "localhost:27017"

    external_api_base_url: str = "https://dips.soton.ac.uk/negotiation-api"
    external_api_master_password: Optional[str] = None
    contract_service_url: str = "https://dips.soton.ac.uk/contract-service-api"
    frontend_url: str = "http://localhost:5173"

    ontology_storage_dir: str = "ontology_storage"

    @property
    def database_uri(self) -> str:
        """Connection string actually used, honouring emulator mode."""
        if self.use_emulator:
            return f"mongodb://{self.emulator_db_host}"
        return self.mongodb_uri

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            port=int(os.getenv("PORT", "8010")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            json_limit=parse_size_limit(os.getenv("JSON_LIMIT")),
            url_limit=parse_size_limit(os.getenv("URL_LIMIT")),
            file_upload_limit=parse_size_limit(os.getenv("FILE_UPLOAD_LIMIT")),
            cors_origins=_parse_origins(os.getenv("CORS_ORIGINS")),
            session_secret=os.getenv("SESSION_SECRET", "supersecret"),
            mongodb_uri=os.getenv("MONGODB_URI", "mongodb://localhost:27017"),
            mongodb_db=os.getenv("MONGODB_DB", "upconsent"),
            use_emulator=_parse_bool(os.getenv("USE_EMULATOR")),
            emulator_db_host=os.getenv("EMULATOR_DB_HOST", "localhost:27017"),
            external_api_base_url=os.getenv(
                "EXTERNAL_API_BASE_URL", "https://dips.soton.ac.uk/negotiation-api"
            ).rstrip("/"),
            external_api_master_password=os.getenv("EXTERNAL_API_MASTER_PASSWORD") or None,
            contract_service_url=os.getenv(
                "CONTRACT_SERVICE_URL", "https://dips.soton.ac.uk/contract-service-api"
            ).rstrip("/"),
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:5173"),
            ontology_storage_dir=os.getenv("ONTOLOGY_STORAGE_DIR", "ontology_storage"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
