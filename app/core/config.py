from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # API Settings
    PROJECT_NAME: str = "LocalHub Search API"
    API_V1_STR: str = "/api/v1"
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:3001"]

    # Database
    DATABASE_HOST: str = "localhost"
    DATABASE_PORT: int = 3306
    DATABASE_USER: str = "root"
    DATABASE_PASSWORD: str = ""
    DATABASE_NAME: str = "localhub"
    DATABASE_POOL_MIN_SIZE: int = 1
    DATABASE_POOL_MAX_SIZE: int = 10
    DATABASE_CONNECT_TIMEOUT_SECONDS: int = 5

    # Search cache
    SEARCH_CACHE_BACKEND: str = "memory"  # "memory" or "redis"
    SEARCH_CACHE_TTL_SECONDS: int = 600
    SEARCH_CACHE_MAX_ENTRIES: int = 1000
    REDIS_URL: Optional[str] = "redis://localhost:6379"

    # Search behaviour
    SEARCH_DEFAULT_LIMIT: int = 20
    SEARCH_MAX_LIMIT: int = 100
    SEARCH_OVERFETCH_FACTOR: int = 5
    DEFAULT_SEARCH_RADIUS_MILES: float = 35.0
    SEARCH_BACKEND_TIMEOUT_SECONDS: float = 4.0
    NEARBY_BACKEND_ENABLED: bool = True
    DEFAULT_TIMEZONE: str = "UTC"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def search_candidate_limit(self) -> int:
        return self.SEARCH_MAX_LIMIT * self.SEARCH_OVERFETCH_FACTOR

settings = Settings()
