"""
Opaque raster image supplied by the surrounding application.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image

from data.detections import FormulaRegion
from data.errors import PreprocessingError
from util.logging import get_logger

logger = get_logger(__name__)

CHANNELS = {'L': 1, 'RGB': 3, 'BGR': 3, 'RGBA': 4, 'BGRA': 4}

_TO_RGB = {
    'L': cv2.COLOR_GRAY2RGB,
    'BGR': cv2.COLOR_BGR2RGB,
    'RGBA': cv2.COLOR_RGBA2RGB,
    'BGRA': cv2.COLOR_BGRA2RGB,
}


@dataclass(frozen=True)
class RasterImage:
    """Pixel buffer (H x W x C, uint8) with its channel order."""

    pixels: np.ndarray
    channel_order: str = 'RGB'

    def __post_init__(self):
        if self.channel_order not in CHANNELS:
            raise PreprocessingError(f"Unsupported channel order: {self.channel_order}")

        pixels = self.pixels
        if pixels.ndim == 2:
            pixels = pixels[:, :, None]
        if pixels.ndim != 3 or pixels.shape[2] != CHANNELS[self.channel_order]:
            raise PreprocessingError(
                f"Pixel array of shape {self.pixels.shape} does not match "
                f"channel order {self.channel_order}"
            )
        if pixels.dtype != np.uint8:
            raise PreprocessingError(f"Expected uint8 samples, got {pixels.dtype}")

        object.__setattr__(self, 'pixels', pixels)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        """Get image size as (width, height)."""
        return (self.width, self.height)

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def to_rgb(self) -> np.ndarray:
        """Return an H x W x 3 RGB array."""
        if self.is_empty:
            raise PreprocessingError("Cannot convert an empty raster")
        if self.channel_order == 'RGB':
            return self.pixels
        pixels = self.pixels
        if self.channel_order == 'L':
            pixels = pixels[:, :, 0]
        try:
            return cv2.cvtColor(np.ascontiguousarray(pixels), _TO_RGB[self.channel_order])
        except cv2.error as e:
            raise PreprocessingError(f"Color conversion failed: {e}") from e

    def crop(self, region: FormulaRegion) -> 'RasterImage':
        """
        Crop a region, clamped to the image bounds.

        Args:
            region: Region in this image's pixel space

        Returns:
            Cropped RasterImage (a copy)
        """
        left, top, right, bottom = region.to_crop_box()
        left, top = max(0, left), max(0, top)
        right, bottom = min(self.width, right), min(self.height, bottom)

        if right <= left or bottom <= top:
            raise PreprocessingError(
                f"Crop box {(left, top, right, bottom)} is empty for image {self.size}"
            )

        return RasterImage(
            pixels=self.pixels[top:bottom, left:right].copy(),
            channel_order=self.channel_order,
        )

    def to_pil(self) -> Image.Image:
        """Convert to an RGB PIL image."""
        return Image.fromarray(self.to_rgb())

    @classmethod
    def from_array(cls, array: np.ndarray, channel_order: Optional[str] = None) -> 'RasterImage':
        """
        Wrap a numpy array, guessing the channel order from its shape.

        2-D arrays are grayscale, 3 channels RGB and 4 channels RGBA unless
        ``channel_order`` says otherwise.
        """
        array = np.asarray(array)
        if channel_order is None:
            if array.ndim == 2 or (array.ndim == 3 and array.shape[2] == 1):
                channel_order = 'L'
            elif array.ndim == 3 and array.shape[2] == 4:
                channel_order = 'RGBA'
            else:
                channel_order = 'RGB'
        return cls(pixels=array, channel_order=channel_order)

    @classmethod
    def from_pil(cls, image: Image.Image) -> 'RasterImage':
        """Create from a PIL image, converting unusual modes to RGB."""
        if image.mode not in ('RGB', 'RGBA', 'L'):
            image = image.convert('RGB')
        return cls(pixels=np.array(image), channel_order=image.mode)

    @classmethod
    def open(cls, image_path: Union[str, Path]) -> 'RasterImage':
        """
        Load an image file.

        Raises:
            PreprocessingError: If the file cannot be read as an image
        """
        try:
            with Image.open(image_path) as image:
                image.load()
                return cls.from_pil(image)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load image {image_path}: {e}")
            raise PreprocessingError(f"Cannot read image {image_path}: {e}") from e
