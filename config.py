"""Application configuration using pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Discord
    discord_token: str = Field(default="", alias="DISCORD_TOKEN")

    # Database
    database_path: str = Field(default="pixelcover.db", alias="DATABASE_PATH")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Spotify catalog (client credentials stay on the server)
    spotify_client_id: str = Field(default="", alias="SPOTIFY_CLIENT_ID")
    spotify_client_secret: str = Field(default="", alias="SPOTIFY_CLIENT_SECRET")
    spotify_market: str = Field(default="US", alias="SPOTIFY_MARKET")
    http_timeout_seconds: float = Field(default=10.0, alias="HTTP_TIMEOUT_SECONDS")
    http_max_retries: int = Field(default=3, alias="HTTP_MAX_RETRIES")
    fallback_artist_name: str = Field(default="The Beatles", alias="FALLBACK_ARTIST_NAME")

    # Round settings
    max_guesses: int = Field(default=5, alias="MAX_GUESSES")
    starting_pixelation: int = Field(default=35, alias="STARTING_PIXELATION")
    min_pixelation: int = Field(default=3, alias="MIN_PIXELATION")
    pixel_step_bonus: int = Field(default=2, alias="PIXEL_STEP_BONUS")

    # Timer (seconds per difficulty)
    easy_timer_seconds: int = Field(default=20, alias="EASY_TIMER_SECONDS")
    medium_timer_seconds: int = Field(default=10, alias="MEDIUM_TIMER_SECONDS")
    hard_timer_seconds: int = Field(default=5, alias="HARD_TIMER_SECONDS")

    # Scoring
    max_award: int = Field(default=1000, alias="MAX_AWARD")
    min_award: int = Field(default=100, alias="MIN_AWARD")
    award_step: int = Field(default=200, alias="AWARD_STEP")
    time_bonus_per_second: int = Field(default=10, alias="TIME_BONUS_PER_SECOND")
    hint_cost: int = Field(default=30, alias="HINT_COST")
    skip_cost: int = Field(default=50, alias="SKIP_COST")


# Global settings instance
settings = Settings()


class Config:
    """Uppercase config interface used throughout the bot."""

    DISCORD_TOKEN = settings.discord_token
    DATABASE_PATH = settings.database_path
    LOG_LEVEL = settings.log_level.upper()
    SPOTIFY_CLIENT_ID = settings.spotify_client_id
    SPOTIFY_CLIENT_SECRET = settings.spotify_client_secret
    SPOTIFY_MARKET = settings.spotify_market
    HTTP_TIMEOUT_SECONDS = settings.http_timeout_seconds
    HTTP_MAX_RETRIES = settings.http_max_retries
    FALLBACK_ARTIST_NAME = settings.fallback_artist_name
    MAX_GUESSES = settings.max_guesses
    STARTING_PIXELATION = settings.starting_pixelation
    MIN_PIXELATION = settings.min_pixelation
    PIXEL_STEP_BONUS = settings.pixel_step_bonus
    EASY_TIMER_SECONDS = settings.easy_timer_seconds
    MEDIUM_TIMER_SECONDS = settings.medium_timer_seconds
    HARD_TIMER_SECONDS = settings.hard_timer_seconds
    MAX_AWARD = settings.max_award
    MIN_AWARD = settings.min_award
    AWARD_STEP = settings.award_step
    TIME_BONUS_PER_SECOND = settings.time_bonus_per_second
    HINT_COST = settings.hint_cost
    SKIP_COST = settings.skip_cost
