from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "FlightDesk"
    debug: bool = False

    # Student record API
    api_url: str = "http://localhost:5000/api"
    api_key: str = ""
    # None disables the client-side timeout; the API enforces its own
    request_timeout: float | None = None
    read_retry_attempts: int = 3

    # Roles allowed to mutate requirements, milestones and stages
    admin_roles: list[str] = ["school_admin", "sys_admin"]

    # Logging
    log_level: str = "INFO"
    json_logs: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
