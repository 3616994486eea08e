"""
Tests for coordinate utilities.
"""

import pytest

from data.detections import Detection, FormulaRegion
from util.coords import compute_iou, sort_reading_order, to_image_space


def test_compute_iou_identical():
    """Identical boxes overlap completely."""
    box = Detection(x=10, y=10, width=100, height=50, confidence=0.9)
    assert compute_iou(box, box) == pytest.approx(1.0)


def test_compute_iou_disjoint():
    """Disjoint boxes do not overlap."""
    box1 = Detection(x=0, y=0, width=10, height=10, confidence=0.9)
    box2 = Detection(x=20, y=20, width=10, height=10, confidence=0.9)
    assert compute_iou(box1, box2) == 0.0


def test_compute_iou_touching_edges():
    """Boxes sharing only an edge have zero intersection."""
    box1 = Detection(x=0, y=0, width=10, height=10, confidence=0.9)
    box2 = Detection(x=10, y=0, width=10, height=10, confidence=0.9)
    assert compute_iou(box1, box2) == 0.0


def test_compute_iou_partial():
    """Test IoU of partially overlapping boxes."""
    box1 = Detection(x=0, y=0, width=100, height=100, confidence=0.9)
    box2 = Detection(x=50, y=50, width=100, height=100, confidence=0.9)

    # Intersection 50x50, union 2 * 10000 - 2500
    assert compute_iou(box1, box2) == pytest.approx(2500 / 17500)


def test_compute_iou_symmetric():
    box1 = Detection(x=3, y=7, width=40, height=12, confidence=0.9)
    box2 = Detection(x=20, y=1, width=30, height=30, confidence=0.5)
    assert compute_iou(box1, box2) == pytest.approx(compute_iou(box2, box1))


def test_compute_iou_zero_area():
    """Zero-area boxes yield 0 instead of dividing by zero."""
    point = Detection(x=5, y=5, width=0, height=0, confidence=0.9)
    assert compute_iou(point, point) == 0.0


def test_to_image_space_scales_per_axis():
    """Model-space boxes scale by image/model ratio on each axis."""
    detection = Detection(x=100, y=200, width=50, height=40, confidence=0.8, class_id=1)

    region = to_image_space(detection, (768, 768), (1536, 384))

    assert region.x == pytest.approx(200)
    assert region.y == pytest.approx(100)
    assert region.width == pytest.approx(100)
    assert region.height == pytest.approx(20)
    assert region.confidence == 0.8
    assert region.class_id == 1
    assert region.label == 'isolated'


def test_to_image_space_identity():
    """Equal model and image sizes keep coordinates unchanged."""
    detection = Detection(x=10, y=20, width=30, height=40, confidence=0.5)

    region = to_image_space(detection, (640, 480), (640, 480))

    assert region.to_corners() == pytest.approx((10, 20, 40, 60))


def test_to_image_space_clamps_to_image():
    """Boxes crossing the image border are clamped to it."""
    detection = Detection(x=-20, y=700, width=100, height=100, confidence=0.9)

    region = to_image_space(detection, (768, 768), (768, 768))

    assert region.x == 0
    assert region.y == pytest.approx(700)
    assert region.x2 == pytest.approx(80)
    assert region.y2 == 768


def test_to_image_space_outside_image():
    """A box entirely outside the image maps to nothing."""
    detection = Detection(x=800, y=800, width=50, height=50, confidence=0.9)
    assert to_image_space(detection, (768, 768), (768, 768)) is None


def test_to_image_space_degenerate_box():
    detection = Detection(x=10, y=10, width=0, height=20, confidence=0.9)
    assert to_image_space(detection, (768, 768), (768, 768)) is None


def test_to_image_space_padding():
    """Padding grows the region in source pixels, still clamped."""
    detection = Detection(x=5, y=50, width=10, height=10, confidence=0.9)

    region = to_image_space(detection, (100, 100), (100, 100), padding=8)

    assert region.to_corners() == pytest.approx((0, 42, 23, 68))


def test_to_image_space_invalid_model_size():
    detection = Detection(x=0, y=0, width=1, height=1, confidence=0.9)
    with pytest.raises(ValueError):
        to_image_space(detection, (0, 768), (100, 100))


def test_sort_reading_order():
    """Test sorting regions in reading order."""
    regions = [
        FormulaRegion(x=100, y=10, width=50, height=20),  # Top right
        FormulaRegion(x=10, y=12, width=50, height=20),   # Top left
        FormulaRegion(x=10, y=50, width=50, height=20),   # Bottom left
    ]

    ordered = sort_reading_order(regions, line_tolerance=10)

    assert [(r.x, r.y) for r in ordered] == [(10, 12), (100, 10), (10, 50)]


def test_sort_reading_order_empty():
    assert sort_reading_order([]) == []
