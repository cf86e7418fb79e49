from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
from functools import lru_cache


class Settings(BaseSettings):
    # Application Settings
    APP_NAME: str = "QuizGuard"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"

    @property
    def debug(self) -> bool:
        return self.DEBUG

    # API Settings
    API_V1_PREFIX: str = "/api/v1"
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Supabase Configuration
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""

    @property
    def supabase_url(self) -> str:
        return self.SUPABASE_URL

    @property
    def supabase_key(self) -> str:
        return self.SUPABASE_KEY

    @property
    def supabase_service_role_key(self) -> str:
        return self.SUPABASE_SERVICE_ROLE_KEY

    # Storage backend: "supabase" or "memory"
    STORAGE_BACKEND: str = "supabase"

    # CORS Settings
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    @property
    def host(self) -> str:
        return self.HOST

    @property
    def port(self) -> int:
        return self.PORT

    # Anti-cheat defaults (used when a quiz omits a setting)
    DEFAULT_TAB_CHANGE_LIMIT: int = 3
    DEFAULT_TIME_AWAY_THRESHOLD: int = 5  # seconds
    DEFAULT_AUTO_DISQUALIFY_ON_REFRESH: bool = True
    DEFAULT_AUTO_SUBMIT_ON_DISQUALIFICATION: bool = True

    # Grading
    ESSAY_GRADING_POLICY: str = "exclude"  # "exclude" or "non_empty"

    # Live monitoring
    LIVE_POLL_INTERVAL_SECONDS: int = 2
    LIVE_TIME_AWAY_WARNING_SECONDS: int = 5
    VIOLATION_DISPLAY_LIMIT: int = 5

    # History
    HISTORY_RECENT_LIMIT: int = 5
    HISTORY_PAGE_LIMIT: int = 50

    # Session store
    SESSION_UPDATE_MAX_RETRIES: int = 5
    SESSION_STALE_AFTER_MINUTES: Optional[int] = 180
    SESSION_REAP_INTERVAL_SECONDS: Optional[int] = 300  # None or 0 disables the background reaper

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="allow",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
