"""LLM connection and storage settings."""

from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REGISTRY_FILENAME = "prompts.json"
DEFAULT_SEED_FILENAME = "prompts.template.json"


class Settings(BaseSettings):
    """Settings from environment, ``.env`` or direct initialization."""

    api_key: str = Field(
        default="",
        validation_alias=AliasChoices("FPO_API_KEY", "OPENAI_API_KEY", "API_KEY", "api_key"),
    )
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    base_url: Optional[str] = None
    data_dir: Path = Field(
        default=Path("data"),
        validation_alias=AliasChoices("FPO_DATA_DIR", "data_dir"),
    )
    registry_filename: str = DEFAULT_REGISTRY_FILENAME
    seed_filename: str = DEFAULT_SEED_FILENAME

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def registry_path(self) -> Path:
        return self.data_dir / self.registry_filename

    @property
    def seed_path(self) -> Path:
        return self.data_dir / self.seed_filename


def get_settings() -> Settings:
    """Load settings from environment."""
    return Settings()
