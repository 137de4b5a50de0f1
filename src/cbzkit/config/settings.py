"""Configuration settings using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, YamlConfigSettingsSource

from cbzkit.config.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_COMPRESSED_QUALITY,
    DEFAULT_CONFIG_FILE,
    DEFAULT_EPUB_TITLE,
    DEFAULT_LOG_DIR,
    DEFAULT_MAX_PAGES_PER_OUTPUT,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PAGE_MARGINS,
    DEFAULT_SCRATCH_DIR,
    DEFAULT_TRANSCODE_QUALITY,
    USER_CONFIG_FILE,
)


def positive_or_default(value: object, default: int) -> int:
    """Coerce user input to a positive int, falling back to ``default``.

    Blank strings, non-numeric values and anything <= 0 yield the default.
    """
    if isinstance(value, bool):
        return default
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


class ConversionConfig(BaseModel):
    """Conversion defaults used when the CLI does not override them."""

    max_pages_per_output: int = DEFAULT_MAX_PAGES_PER_OUTPUT
    batch_size: int = DEFAULT_BATCH_SIZE
    sort_mode: Literal["lexicographic", "on_disk"] = "lexicographic"
    merge_sources: bool = False
    compress: bool = False
    chapter_auto_name: bool = False
    output_format: Literal["pdf", "epub"] = "pdf"

    @field_validator("max_pages_per_output", mode="before")
    @classmethod
    def _max_pages_fallback(cls, value: object) -> int:
        return positive_or_default(value, DEFAULT_MAX_PAGES_PER_OUTPUT)

    @field_validator("batch_size", mode="before")
    @classmethod
    def _batch_size_fallback(cls, value: object) -> int:
        return positive_or_default(value, DEFAULT_BATCH_SIZE)


class ImageConfig(BaseModel):
    """Image normalization configuration."""

    transcode_quality: int = Field(default=DEFAULT_TRANSCODE_QUALITY, ge=1, le=100)
    compressed_quality: int = Field(default=DEFAULT_COMPRESSED_QUALITY, ge=1, le=100)


class PdfConfig(BaseModel):
    """PDF writer configuration."""

    margin_top: float = Field(default=DEFAULT_PAGE_MARGINS[0], ge=0)
    margin_right: float = Field(default=DEFAULT_PAGE_MARGINS[1], ge=0)
    margin_bottom: float = Field(default=DEFAULT_PAGE_MARGINS[2], ge=0)
    margin_left: float = Field(default=DEFAULT_PAGE_MARGINS[3], ge=0)

    @property
    def margins(self) -> tuple[float, float, float, float]:
        """Margins as (top, right, bottom, left)."""
        return (self.margin_top, self.margin_right, self.margin_bottom, self.margin_left)


class EpubConfig(BaseModel):
    """EPUB writer configuration."""

    title: str = DEFAULT_EPUB_TITLE


class OutputConfig(BaseModel):
    """Output configuration."""

    default_dir: str = DEFAULT_OUTPUT_DIR


class CbzkitSettings(BaseSettings):
    """Main configuration class for cbzkit."""

    model_config = SettingsConfigDict(
        env_prefix="CBZKIT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        """Customize settings sources to include YAML file."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(
                settings_cls, yaml_file=[USER_CONFIG_FILE, DEFAULT_CONFIG_FILE]
            ),
            file_secret_settings,
        )

    # Sub-configurations
    conversion: ConversionConfig = Field(default_factory=ConversionConfig)
    image: ImageConfig = Field(default_factory=ImageConfig)
    pdf: PdfConfig = Field(default_factory=PdfConfig)
    epub: EpubConfig = Field(default_factory=EpubConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    # Global settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_dir: str = DEFAULT_LOG_DIR
    scratch_dir: str = DEFAULT_SCRATCH_DIR


@lru_cache
def get_settings() -> CbzkitSettings:
    """Get cached settings instance."""
    return CbzkitSettings()


def reload_settings() -> CbzkitSettings:
    """Force reload settings (clear cache)."""
    get_settings.cache_clear()
    return get_settings()
