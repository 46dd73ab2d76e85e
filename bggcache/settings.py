import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Upstream (BoardGameGeek XML API2)
    bgg_api_base: str = Field(
        default="https://boardgamegeek.com/xmlapi2", alias="BGG_API_BASE"
    )
    bgg_user_agent: str = Field(default="bggcache/1.0", alias="BGG_USER_AGENT")
    bgg_request_timeout: float = Field(default=30.0, alias="BGG_REQUEST_TIMEOUT")

    # Request queue throttling
    rate_limit_window_seconds: int = Field(default=60, alias="RATE_LIMIT_WINDOW")
    rate_limit_max_requests: int = Field(default=10, alias="RATE_LIMIT_MAX_REQUESTS")
    rate_limit_backoff_seconds: float = Field(default=5.0, alias="RATE_LIMIT_BACKOFF")
    request_interval_seconds: float = Field(default=1.0, alias="REQUEST_INTERVAL")

    # Synchronization
    deferred_max_attempts: int = Field(default=3, alias="DEFERRED_MAX_ATTEMPTS")
    deferred_retry_delay_seconds: float = Field(
        default=5.0, alias="DEFERRED_RETRY_DELAY"
    )
    cascade_delay_seconds: float = Field(default=0.1, alias="CASCADE_DELAY")
    game_ttl_seconds: int = Field(default=7 * 24 * 3600, alias="GAME_TTL")

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/bgg.sqlite", alias="DATABASE_URL"
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # Maintenance
    ledger_retention_minutes: int = Field(default=60, alias="LEDGER_RETENTION")
    maintenance_interval_minutes: int = Field(
        default=30, alias="MAINTENANCE_INTERVAL"
    )
    hot_list_refresh_minutes: int = Field(
        default=0, alias="HOT_LIST_REFRESH_INTERVAL"
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


# Aliased fields come from the environment, everything else in it is ignored
global_settings = Settings.model_validate(dict(os.environ))
