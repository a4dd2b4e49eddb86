import os
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # Database
    DATABASE_URL = os.getenv("BOOKKEEPER_DATABASE_URL", "sqlite:///./data/bookkeeper.db")

    # Directories
    BASE_DIR = Path(__file__).parent.parent

    # API Settings
    API_V1_STR = "/api"
    PROJECT_NAME = "Bookkeeper"
    OWNER_HEADER = "X-Owner-Id"
    VERSION_HEADER = "X-Ledger-Version"

    # Pagination
    PAGE_SIZE = int(os.getenv("BOOKKEEPER_PAGE_SIZE", "20"))
    MAX_PAGE_SIZE = 500

    # Import limits (enforced before parsing)
    MAX_IMPORT_BYTES = int(os.getenv("BOOKKEEPER_MAX_IMPORT_BYTES", str(5 * 1024 * 1024)))
    MAX_IMPORT_ROWS = int(os.getenv("BOOKKEEPER_MAX_IMPORT_ROWS", "10000"))
    STAGING_TTL_SECONDS = int(os.getenv("BOOKKEEPER_STAGING_TTL_SECONDS", "3600"))

    # Logging
    LOG_LEVEL = os.getenv("BOOKKEEPER_LOG_LEVEL", "INFO")
    LOG_JSON = _env_bool("BOOKKEEPER_LOG_JSON", False)

    def __init__(self):
        # Ensure the SQLite data directory exists
        if self.DATABASE_URL.startswith("sqlite:///") and ":memory:" not in self.DATABASE_URL:
            Path(self.DATABASE_URL[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)

settings = Settings()
