from pathlib import Path
from typing import Literal

from pydantic import Field, PositiveFloat, PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration, read from REQSYNC_* environment variables."""

    data_file: Path = Field(default=Path("data.json"), description="JSON document store location.")
    request_timeout: PositiveFloat | None = Field(default=30.0, description="Outbound call timeout in seconds, None disables it.")
    follow_redirects: bool = Field(default=True)
    verify_ssl: bool = Field(default=True)
    host: str = Field(default="127.0.0.1")
    port: PositiveInt = Field(default=5000)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    outbox_size: PositiveInt = Field(default=256, description="Per-connection collaboration queue capacity.")
    history_limit: PositiveInt = Field(default=50, description="History entries returned per request.")

    model_config = SettingsConfigDict(env_prefix="REQSYNC_", env_file=".env", extra="ignore")
