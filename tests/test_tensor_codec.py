"""
Tests for image buffers and tensor encoding.
"""

import numpy as np
import pytest
from PIL import Image

from data.detections import FormulaRegion
from data.errors import FormatError, PreprocessingError
from preproc.image_buffer import RasterImage
from preproc.tensor_codec import IMAGENET, SYMMETRIC, decode, encode, split_records


def _solid(width, height, rgb):
    pixels = np.empty((height, width, 3), dtype=np.uint8)
    pixels[:, :] = rgb
    return RasterImage(pixels)


def test_encode_shape_and_dtype():
    """Encoded tensors are [1, 3, H, W] float32."""
    tensor = encode(_solid(40, 20, (0, 0, 0)), 32, 16, SYMMETRIC)

    assert tensor.shape == (1, 3, 16, 32)
    assert tensor.dtype == np.float32


def test_encode_planar_layout():
    """All red samples come first, then green, then blue."""
    tensor = encode(_solid(8, 8, (255, 0, 255)), 8, 8, SYMMETRIC)
    flat = tensor.reshape(-1)

    plane = 8 * 8
    assert np.allclose(flat[:plane], 1.0)
    assert np.allclose(flat[plane:2 * plane], -1.0)
    assert np.allclose(flat[2 * plane:], 1.0)


def test_encode_symmetric_profile():
    """Symmetric normalization is value * 2 / 255 - 1."""
    tensor = encode(_solid(4, 4, (0, 51, 255)), 4, 4, SYMMETRIC)

    assert tensor[0, 0, 0, 0] == pytest.approx(-1.0)
    assert tensor[0, 1, 0, 0] == pytest.approx(51 * 2 / 255 - 1, abs=1e-6)
    assert tensor[0, 2, 0, 0] == pytest.approx(1.0)


def test_encode_imagenet_profile():
    """ImageNet normalization uses the per-channel mean and std."""
    tensor = encode(_solid(4, 4, (255, 255, 255)), 4, 4, IMAGENET)

    expected = [(1.0 - m) / s for m, s in zip(IMAGENET.mean, IMAGENET.std)]
    for channel, value in enumerate(expected):
        assert tensor[0, channel, 2, 2] == pytest.approx(value, rel=1e-5)


def test_encode_converts_channel_order():
    """BGR input is reordered before encoding."""
    pixels = np.zeros((4, 4, 3), dtype=np.uint8)
    pixels[:, :, 0] = 255  # blue in BGR

    tensor = encode(RasterImage(pixels, channel_order='BGR'), 4, 4, SYMMETRIC)

    assert tensor[0, 0].max() == pytest.approx(-1.0)
    assert tensor[0, 2].min() == pytest.approx(1.0)


def test_encode_grayscale():
    pixels = np.full((6, 6), 255, dtype=np.uint8)
    tensor = encode(RasterImage.from_array(pixels), 3, 3, SYMMETRIC)

    assert tensor.shape == (1, 3, 3, 3)
    assert np.allclose(tensor, 1.0)


def test_encode_invalid_target():
    with pytest.raises(PreprocessingError):
        encode(_solid(4, 4, (0, 0, 0)), 0, 4, SYMMETRIC)


def test_encode_empty_image():
    empty = RasterImage(np.zeros((0, 5, 3), dtype=np.uint8))
    with pytest.raises(PreprocessingError):
        encode(empty, 4, 4, SYMMETRIC)


def test_decode_bytes():
    """Test reinterpreting a byte buffer as float32 values."""
    values = np.array([1.5, -2.0, 0.25], dtype=np.float32)
    assert np.array_equal(decode(values.tobytes()), values)


def test_decode_array_is_flattened():
    assert decode(np.ones((1, 2, 6), dtype=np.float64)).shape == (12,)


def test_decode_rejects_partial_value():
    with pytest.raises(FormatError):
        decode(b'\x00' * 7)


def test_split_records():
    rows = split_records(np.arange(12, dtype=np.float32), 6)
    assert rows.shape == (2, 6)
    assert rows[1, 0] == 6


def test_split_records_remainder():
    """Trailing values that do not fill a record are a format error."""
    with pytest.raises(FormatError):
        split_records(np.arange(13, dtype=np.float32), 6)


def test_raster_image_validation():
    """Test pixel array validation."""
    with pytest.raises(PreprocessingError):
        RasterImage(np.zeros((4, 4, 3), dtype=np.float32))

    with pytest.raises(PreprocessingError):
        RasterImage(np.zeros((4, 4, 4), dtype=np.uint8), channel_order='RGB')

    with pytest.raises(PreprocessingError):
        RasterImage(np.zeros((4, 4, 3), dtype=np.uint8), channel_order='CMYK')


def test_raster_image_crop():
    """Crops round outwards and are clamped to the image."""
    pixels = np.arange(10 * 20 * 3, dtype=np.uint8).reshape(10, 20, 3)
    image = RasterImage(pixels)

    crop = image.crop(FormulaRegion(x=2.5, y=1.2, width=5.0, height=3.6))
    assert crop.size == (6, 4)
    assert np.array_equal(crop.pixels, pixels[1:5, 2:8])

    clamped = image.crop(FormulaRegion(x=15, y=5, width=10, height=10))
    assert clamped.size == (5, 5)
    assert np.array_equal(clamped.pixels, pixels[5:10, 15:20])


def test_raster_image_crop_is_copy():
    image = _solid(10, 10, (1, 2, 3))
    crop = image.crop(FormulaRegion(x=0, y=0, width=5, height=5))
    crop.pixels[0, 0] = 0
    assert image.pixels[0, 0, 0] == 1


def test_raster_image_crop_outside():
    image = _solid(10, 10, (1, 2, 3))
    with pytest.raises(PreprocessingError):
        image.crop(FormulaRegion(x=20, y=20, width=5, height=5))


def test_raster_image_from_pil():
    """Palette images are converted to RGB."""
    pil = Image.new('P', (12, 8))
    image = RasterImage.from_pil(pil)

    assert image.channel_order == 'RGB'
    assert image.size == (12, 8)
    assert image.to_pil().size == (12, 8)


def test_raster_image_from_array_guesses_order():
    assert RasterImage.from_array(np.zeros((3, 3), dtype=np.uint8)).channel_order == 'L'
    assert RasterImage.from_array(np.zeros((3, 3, 4), dtype=np.uint8)).channel_order == 'RGBA'
    assert RasterImage.from_array(np.zeros((3, 3, 3), dtype=np.uint8)).channel_order == 'RGB'


def test_raster_image_open(tmp_path):
    path = tmp_path / "page.png"
    Image.new('RGB', (30, 20), (255, 255, 255)).save(path)

    image = RasterImage.open(path)

    assert image.size == (30, 20)
    assert image.pixels[0, 0].tolist() == [255, 255, 255]


def test_raster_image_open_invalid(tmp_path):
    path = tmp_path / "broken.png"
    path.write_bytes(b"not an image")

    with pytest.raises(PreprocessingError):
        RasterImage.open(path)
