"""
Conversion between raster images and model tensors.

Encoded tensors are float32 in planar (NCHW) layout: every sample of the
red channel, then green, then blue. The detector and the recognizer
encoder both depend on this layout.
"""

from dataclasses import dataclass
from typing import Tuple, Union

import cv2
import numpy as np

from data.errors import FormatError, PreprocessingError
from preproc.image_buffer import RasterImage
from util.logging import get_logger

logger = get_logger(__name__)

Buffer = Union[bytes, bytearray, memoryview, np.ndarray]


@dataclass(frozen=True)
class NormalizationProfile:
    """Per-channel affine normalization: (value / 255 - mean[c]) / std[c]."""

    name: str
    mean: Tuple[float, float, float]
    std: Tuple[float, float, float]

    def __post_init__(self):
        if len(self.mean) != 3 or len(self.std) != 3:
            raise ValueError("mean and std need one value per RGB channel")
        if any(s == 0 for s in self.std):
            raise ValueError("std values must be non-zero")


# Detector input
IMAGENET = NormalizationProfile(
    name='imagenet',
    mean=(0.485, 0.456, 0.406),
    std=(0.229, 0.224, 0.225),
)

# Recognizer encoder input, equivalent to value * 2 / 255 - 1
SYMMETRIC = NormalizationProfile(
    name='symmetric',
    mean=(0.5, 0.5, 0.5),
    std=(0.5, 0.5, 0.5),
)


def encode(
    image: RasterImage,
    target_width: int,
    target_height: int,
    normalization: NormalizationProfile,
) -> np.ndarray:
    """
    Resample an image and convert it to a normalized planar tensor.

    Args:
        image: Source raster
        target_width: Model input width
        target_height: Model input height
        normalization: Per-channel normalization profile

    Returns:
        float32 array of shape [1, 3, target_height, target_width]

    Raises:
        PreprocessingError: If the image cannot be rasterized or resampled
    """
    if target_width <= 0 or target_height <= 0:
        raise PreprocessingError(f"Invalid target size {target_width}x{target_height}")
    if image.is_empty:
        raise PreprocessingError(f"Cannot encode an empty image {image.size}")

    rgb = image.to_rgb()

    if rgb.shape[1] != target_width or rgb.shape[0] != target_height:
        interpolation = cv2.INTER_AREA
        if target_width > rgb.shape[1] or target_height > rgb.shape[0]:
            interpolation = cv2.INTER_LINEAR
        try:
            rgb = cv2.resize(rgb, (target_width, target_height), interpolation=interpolation)
        except cv2.error as e:
            raise PreprocessingError(f"Resampling failed: {e}") from e

    mean = np.asarray(normalization.mean, dtype=np.float32)
    std = np.asarray(normalization.std, dtype=np.float32)

    normalized = (rgb.astype(np.float32) / 255.0 - mean) / std

    # HWC -> CHW, plus batch axis
    planar = np.ascontiguousarray(normalized.transpose(2, 0, 1), dtype=np.float32)
    return planar[None, ...]


def decode(buffer: Buffer) -> np.ndarray:
    """
    Reinterpret a raw buffer as a flat sequence of float32 values.

    Raises:
        FormatError: If a byte buffer is not a whole number of float32 values
    """
    if isinstance(buffer, np.ndarray):
        return np.ascontiguousarray(buffer, dtype=np.float32).reshape(-1)

    raw = bytes(buffer)
    if len(raw) % 4 != 0:
        raise FormatError(f"Buffer of {len(raw)} bytes is not a float32 sequence")
    return np.frombuffer(raw, dtype=np.float32)


def split_records(flat: np.ndarray, record_width: int) -> np.ndarray:
    """
    Reshape a flat float sequence into fixed-width rows.

    Raises:
        FormatError: If the length is not a multiple of the record width
    """
    if record_width <= 0:
        raise ValueError(f"record_width must be positive, got {record_width}")

    flat = np.asarray(flat).reshape(-1)
    remainder = flat.size % record_width
    if remainder:
        raise FormatError(
            f"Buffer of {flat.size} values is not a multiple of record width "
            f"{record_width} ({remainder} trailing values)"
        )
    return flat.reshape(-1, record_width)
