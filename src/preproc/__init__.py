"""Image buffers and tensor encoding."""

from .image_buffer import RasterImage
from .tensor_codec import IMAGENET, SYMMETRIC, NormalizationProfile, decode, encode, split_records

__all__ = [
    "RasterImage",
    "NormalizationProfile",
    "IMAGENET",
    "SYMMETRIC",
    "encode",
    "decode",
    "split_records",
]
