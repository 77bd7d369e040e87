import os
import threading
from typing import Optional


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or value.strip() == "":
        return None
    return int(value)


class BackendSettings:
    _instance = None
    _lock = threading.Lock()

    def __init__(self):
        self.DEBUG_MODE = os.environ.get("DEBUG_MODE","development")
        self.LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
        # Database
        self.DATABASE_URL = os.environ.get("DATABASE_URL", None)
        self.POSTGRES_URL = os.environ.get("POSTGRES_URL", "localhost:5432")
        self.POSTGRES_USER = os.environ.get("POSTGRES_USER", "postgres")
        self.POSTGRES_PASSWORD = os.environ.get("POSTGRES_PASSWORD", "postgres")
        self.POSTGRES_DB = os.environ.get("POSTGRES_DB", "resources")
        # Resource queries
        self.RESOURCES_QUERY_MAX_TOP = _optional_int(os.environ.get("RESOURCES_QUERY_MAX_TOP"))

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(BackendSettings, cls).__new__(cls)
        return cls._instance

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_URL}/{self.POSTGRES_DB}"

settings = BackendSettings()
