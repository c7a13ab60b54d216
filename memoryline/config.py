"""Application settings loaded from environment variables."""

import os
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_NAME = "memoryline"


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


def _default_support_dir() -> Path:
    """Per-user application support directory for cached state."""
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_NAME
    xdg = os.getenv("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / APP_NAME


def _split_csv(value: str) -> list[str]:
    if not value.strip():
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    """memoryline configuration. All values come from environment variables."""

    # iMessage (local chat.db)
    imessage_db_path: Path = Field(default=Path.home() / "Library" / "Messages" / "chat.db")
    imessage_message_limit: int = Field(default=500)
    imessage_chat_guids: str = Field(default="")
    imessage_handle_filters: str = Field(default="")
    imessage_include_groups: bool = Field(default=True)

    # Omi (remote transcripts)
    omi_api_key: str = Field(default="")
    omi_base_url: str = Field(default="https://api.omi.me/v1")
    omi_timeout_seconds: float = Field(default=20.0)

    # Google People (contact directory)
    google_credentials_path: str = Field(default="credentials.json")
    google_account: str = Field(default="default")
    google_token_dir: Path = Field(default=Path("auth_tokens"))

    # Ingestion
    ingest_source_timeout_seconds: float = Field(default=60.0)

    # Snapshot cache
    cache_dir: Path = Field(default_factory=_default_support_dir)
    cache_filename: str = Field(default="conversation-cache.json")

    # Demo data
    demo_data_path: str = Field(default="")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_chat_guids(self) -> list[str]:
        """Parse IMESSAGE_CHAT_GUIDS into a list of thread GUIDs."""
        return _split_csv(self.imessage_chat_guids)

    def get_handle_filters(self) -> list[str]:
        """Parse IMESSAGE_HANDLE_FILTERS into a list of handles."""
        return _split_csv(self.imessage_handle_filters)

    @property
    def cache_path(self) -> Path:
        return self.cache_dir / self.cache_filename


settings = Settings()
