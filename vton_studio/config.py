"""Configuration management for the try-on studio."""

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings


class GeminiConfig(BaseModel):
    """Image model settings."""
    model: str = "gemini-2.5-flash-image"
    aspect_ratio: str = "3:4"


class PreprocessConfig(BaseModel):
    """Image preprocessing settings."""
    max_dimension: int = Field(default=800, gt=0)  # keeps request bodies under the upload ceiling
    fetch_timeout: float = 30.0


class StudioConfig(BaseSettings):
    """Main studio configuration."""

    # Credential (loaded from .env or the process environment)
    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("gemini_api_key", "GEMINI_API_KEY", "API_KEY"),
    )

    # Sub-configs
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    preprocess: PreprocessConfig = Field(default_factory=PreprocessConfig)

    # Preset assets shown before any upload (URLs or file paths)
    preset_people: list[str] = Field(default_factory=list)
    preset_clothes: list[str] = Field(default_factory=list)

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = ""
        extra = "ignore"
        populate_by_name = True


def load_config() -> StudioConfig:
    """Load configuration from environment and defaults."""
    return StudioConfig()
