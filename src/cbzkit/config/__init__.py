"""Configuration module for cbzkit."""

from cbzkit.config.settings import (
    CbzkitSettings,
    ConversionConfig,
    EpubConfig,
    ImageConfig,
    OutputConfig,
    PdfConfig,
    get_settings,
    positive_or_default,
    reload_settings,
)

__all__ = [
    "CbzkitSettings",
    "ConversionConfig",
    "EpubConfig",
    "ImageConfig",
    "OutputConfig",
    "PdfConfig",
    "get_settings",
    "positive_or_default",
    "reload_settings",
]
