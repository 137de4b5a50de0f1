"""Image processing module for cbzkit."""

from cbzkit.image.normalizer import FORMAT_INFO, ImageAsset, ImageNormalizer

__all__ = ["FORMAT_INFO", "ImageAsset", "ImageNormalizer"]
