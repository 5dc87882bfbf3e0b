from pydantic_settings import BaseSettings
from typing import Optional, List


class Settings(BaseSettings):
    # Astarte
    ASTARTE_API_URL: Optional[str] = None
    ASTARTE_REALM: Optional[str] = None
    ASTARTE_TOKEN: Optional[str] = None
    # Individual service URLs, needed when Astarte runs on localhost
    ASTARTE_APPENGINE_URL: Optional[str] = None
    ASTARTE_REALM_MANAGEMENT_URL: Optional[str] = None

    PAGE_SIZE: int = 1000
    REQUEST_TIMEOUT: int = 40

    # Logging
    LOG_LEVEL: str = "info"
    LOG_FILE: Optional[str] = None

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


settings = Settings()
