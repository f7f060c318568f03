"""Configuration management for hookrelay."""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Built once at startup and handed to the components that need it;
    nothing reads the process environment afterwards.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Server settings
    host: str = Field(default="0.0.0.0")
    listen_port: int = Field(
        default=4040,
        validation_alias=AliasChoices("listen_port", "port"),
    )
    log_level: str = Field(default="INFO")

    # Discord session
    bot_credential: str = Field(
        validation_alias=AliasChoices("bot_credential", "discord_bot_token"),
    )
    destination_channel: str = Field(
        default="",
        validation_alias=AliasChoices("destination_channel", "discord_channel_id"),
    )
    guild_id: str = Field(
        default="",
        validation_alias=AliasChoices("guild_id", "discord_server_id"),
    )
    channel_name_hint: str = Field(default="github")
    discord_api_base: str = Field(default="https://discord.com/api/v10")
    request_timeout: float = Field(default=30.0, gt=0)

    # GitHub webhook validation
    webhook_secret: str = Field(
        min_length=1,
        validation_alias=AliasChoices("webhook_secret", "github_webhook_secret"),
    )
    strict_headers: bool = Field(default=True)
    user_agent_prefix: str = Field(default="GitHub-Hookshot/")

    # Relay
    queue_capacity: int = Field(default=100, ge=1)
    delivery_mode: Literal["queue", "broadcast"] = Field(default="queue")
    broadcast_channels: list[str] = Field(default_factory=list)

    # Notifier lifecycle
    startup_timeout: float = Field(default=30.0, gt=0)
    reconnect_attempts: int = Field(default=5, ge=1)
    reconnect_delay: float = Field(default=1.0, ge=0)
    reconnect_backoff: float = Field(default=2.0, ge=1)
    reconnect_max_delay: float = Field(default=30.0, ge=0)
    shutdown_grace: float = Field(default=5.0, ge=0)

    @model_validator(mode="after")
    def _check_destination(self) -> "Settings":
        if not self.destination_channel and not self.guild_id:
            raise ValueError("either destination_channel or guild_id must be set")
        return self

    @property
    def destinations(self) -> list[str]:
        """Channel ids served by notifiers, one session each."""
        if self.delivery_mode == "broadcast":
            return [self.destination_channel, *self.broadcast_channels]
        return [self.destination_channel]


@lru_cache
def get_settings() -> Settings:
    return Settings()
