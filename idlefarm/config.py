"""Runtime configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from ``IDLEFARM_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IDLEFARM_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Directory holding the save and backup slots
    save_dir: str = "."

    # Game loop cadence
    tick_interval_seconds: float = 1.0
    display_interval_seconds: float = 0.1
    autosave_interval_seconds: float = 60.0

    # Logging
    log_level: str = "info"


settings = Settings()
