"""
Coordinate utilities: overlap measures and mapping between model-input
space and source-image space.
"""

from typing import List, Optional, Sequence, Tuple

from data.detections import Detection, FormulaRegion

Size = Tuple[int, int]  # (width, height)


def compute_iou(box1, box2) -> float:
    """
    Compute Intersection over Union (IoU) between two axis-aligned boxes.

    Both arguments must expose ``x``, ``y``, ``width`` and ``height``.
    Intersection sides are clamped at zero and a zero-area union yields 0.

    Returns:
        IoU value (0-1)
    """
    x1 = max(box1.x, box2.x)
    y1 = max(box1.y, box2.y)
    x2 = min(box1.x + box1.width, box2.x + box2.width)
    y2 = min(box1.y + box1.height, box2.y + box2.height)

    intersection = max(0.0, x2 - x1) * max(0.0, y2 - y1)

    area1 = max(0.0, box1.width) * max(0.0, box1.height)
    area2 = max(0.0, box2.width) * max(0.0, box2.height)
    union = area1 + area2 - intersection

    if union <= 0:
        return 0.0

    return min(1.0, intersection / union)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def to_image_space(
    detection: Detection,
    model_input_size: Size,
    image_size: Size,
    padding: float = 0.0,
) -> Optional[FormulaRegion]:
    """
    Map a model-space detection into source-image pixels.

    The detection is already in top-left form; no center offset is applied
    here. Coordinates are scaled by ``image_dim / model_dim`` per axis,
    grown by ``padding`` pixels on every side and clamped to the image.

    Args:
        detection: Detection in model-input pixels
        model_input_size: (width, height) of the detector input
        image_size: (width, height) of the source image
        padding: Extra margin in source pixels

    Returns:
        FormulaRegion, or None when the clamped rectangle is empty
    """
    model_w, model_h = model_input_size
    image_w, image_h = image_size

    if model_w <= 0 or model_h <= 0:
        raise ValueError(f"Model input size must be positive, got {model_input_size}")

    scale_x = image_w / model_w
    scale_y = image_h / model_h

    left = _clamp(detection.x * scale_x - padding, 0, image_w)
    top = _clamp(detection.y * scale_y - padding, 0, image_h)
    right = _clamp(detection.x2 * scale_x + padding, 0, image_w)
    bottom = _clamp(detection.y2 * scale_y + padding, 0, image_h)

    width = right - left
    height = bottom - top
    if width <= 0 or height <= 0:
        return None

    return FormulaRegion(
        x=left,
        y=top,
        width=width,
        height=height,
        confidence=detection.confidence,
        class_id=detection.class_id,
    )


def sort_reading_order(
    regions: Sequence[FormulaRegion],
    line_tolerance: float = 10.0,
) -> List[FormulaRegion]:
    """
    Sort regions in reading order (top-to-bottom, left-to-right).

    Args:
        regions: Regions to sort
        line_tolerance: Max difference in top edge for regions on the same line

    Returns:
        Sorted list of regions
    """
    if not regions:
        return []

    sorted_regions = sorted(regions, key=lambda r: r.y)

    lines = []
    current_line = [sorted_regions[0]]

    for region in sorted_regions[1:]:
        if abs(region.y - current_line[0].y) < line_tolerance:
            current_line.append(region)
        else:
            lines.append(sorted(current_line, key=lambda r: r.x))
            current_line = [region]

    lines.append(sorted(current_line, key=lambda r: r.x))

    return [region for line in lines for region in line]
