"""
Runtime settings for sqlguard pools.

Values come from SQLGUARD_* environment variables (or a .env file) and act as
defaults; the tuning setters on ConnectionPool / GuardedHandle override them
per instance.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SQLGUARD_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # Seconds; forwarded to the driver only when set.
    CONNECT_TIMEOUT: int | None = Field(default=None, gt=0)

    POOL_MAX_IDLE_CONNS: int = 2
    POOL_MAX_OPEN_CONNS: int = 0
    POOL_CONN_MAX_LIFETIME_SEC: float = 0.0
    # Idle connections older than this are pinged before being handed out.
    POOL_PING_IDLE_THRESHOLD_SEC: float = 30.0


settings = Settings()  # type: ignore
