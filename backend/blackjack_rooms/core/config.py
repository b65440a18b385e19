from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Blackjack Rooms API"
    debug: bool = True
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    log_level: str = "INFO"

    database_url: str = "sqlite:///./blackjack_rooms.db"
    redis_url: str = "redis://localhost:6379/0"

    rate_limit_enabled: bool = True
    api_rate_limit: int = 180
    api_rate_limit_window_seconds: int = 60
    websocket_event_limit: int = 180
    websocket_event_window_seconds: int = 60

    shoe_decks: int = 6
    shoe_reshuffle_threshold: int = 20
    starting_chips: int = 1000
    max_players_per_room: int = 7
    max_hands_per_player: int = 4

    auto_stand_delay_seconds: float = 5.0
    reconnect_grace_seconds: int = 30
    dealer_draw_delay_seconds: float = 0.7
    dealer_settle_delay_seconds: float = 0.5
    timer_tick_seconds: float = 1.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
