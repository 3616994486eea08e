"""
Detector output postprocessing: row decoding, confidence filtering,
non-maximum suppression and ranked selection.

Every function here is pure; the same input order and confidences always
produce the same output.
"""

import math
from typing import List, Sequence, Union

import numpy as np

from data.block_types import ScoreActivation, SelectionPolicy
from data.detections import Detection, RawDetection
from preproc.tensor_codec import split_records
from util.coords import compute_iou
from util.logging import get_logger

logger = get_logger(__name__)

RECORD_WIDTH = 6


def _sigmoid(value: float) -> float:
    if value >= 0:
        return 1.0 / (1.0 + math.exp(-value))
    z = math.exp(value)
    return z / (1.0 + z)


def decode(
    flat_floats: Union[np.ndarray, Sequence[float]],
    record_width: int = RECORD_WIDTH,
    score_activation: ScoreActivation = ScoreActivation.IDENTITY,
) -> List[RawDetection]:
    """
    Decode detector output rows of (cx, cy, w, h, confidence, class_id).

    Columns beyond the sixth (if ``record_width`` is larger) are ignored.
    The class id is truncated towards zero, not rounded.

    Raises:
        FormatError: If the buffer length is not a multiple of record_width
    """
    if record_width < RECORD_WIDTH:
        raise ValueError(f"record_width must be at least {RECORD_WIDTH}, got {record_width}")

    rows = split_records(np.asarray(flat_floats, dtype=np.float32), record_width)

    detections = []
    for row in rows:
        confidence = float(row[4])
        if score_activation == ScoreActivation.SIGMOID:
            confidence = _sigmoid(confidence)

        detections.append(RawDetection(
            center_x=float(row[0]),
            center_y=float(row[1]),
            width=float(row[2]),
            height=float(row[3]),
            confidence=confidence,
            class_id=int(row[5]),
        ))

    return detections


def filter_detections(raw: Sequence[RawDetection], threshold: float) -> List[Detection]:
    """
    Keep detections with confidence strictly above the threshold.

    This is the only place where center-form boxes are converted to
    top-left form. Negative sizes are clamped to zero.
    """
    accepted = []
    for det in raw:
        if not det.confidence > threshold:
            continue

        width = max(0.0, det.width)
        height = max(0.0, det.height)
        accepted.append(Detection(
            x=det.center_x - width / 2,
            y=det.center_y - height / 2,
            width=width,
            height=height,
            confidence=det.confidence,
            class_id=det.class_id,
        ))

    return accepted


def rank(detections: Sequence[Detection]) -> List[Detection]:
    """Stable sort by confidence, highest first."""
    return sorted(detections, key=lambda d: d.confidence, reverse=True)


def suppress(detections: Sequence[Detection], iou_threshold: float) -> List[Detection]:
    """
    Greedy non-maximum suppression.

    Candidates are visited in ranked order (ties keep their input order).
    Each candidate that is not yet suppressed is accepted, and every later
    candidate whose IoU with it exceeds ``iou_threshold`` is suppressed.

    Returns:
        Accepted detections in ranked order
    """
    ordered = rank(detections)
    suppressed = [False] * len(ordered)
    keep = []

    for i, candidate in enumerate(ordered):
        if suppressed[i]:
            continue
        keep.append(candidate)

        for j in range(i + 1, len(ordered)):
            if not suppressed[j] and compute_iou(candidate, ordered[j]) > iou_threshold:
                suppressed[j] = True

    return keep


def select(
    detections: Sequence[Detection],
    policy: SelectionPolicy = SelectionPolicy.ALL,
    selection_rank: int = 0,
) -> List[Detection]:
    """
    Choose which ranked detections continue to recognition.

    Args:
        detections: Detections in ranked order
        policy: ALL keeps every detection, BEST the first one, RANK the one at
            ``selection_rank`` (0-based)
        selection_rank: Position used by the RANK policy

    Returns:
        Selected detections (possibly empty)
    """
    if policy == SelectionPolicy.ALL:
        return list(detections)
    if policy == SelectionPolicy.BEST:
        return list(detections[:1])
    if policy == SelectionPolicy.RANK:
        if selection_rank < len(detections):
            return [detections[selection_rank]]
        return []
    raise ValueError(f"Unknown selection policy: {policy}")


class DetectionPostprocessor:
    """Decode, filter, suppress and select detector output."""

    def __init__(
        self,
        confidence_threshold: float = 0.5,
        iou_threshold: float = 0.45,
        record_width: int = RECORD_WIDTH,
        score_activation: ScoreActivation = ScoreActivation.IDENTITY,
        selection: SelectionPolicy = SelectionPolicy.ALL,
        selection_rank: int = 0,
    ):
        self.confidence_threshold = confidence_threshold
        self.iou_threshold = iou_threshold
        self.record_width = record_width
        self.score_activation = ScoreActivation(score_activation)
        self.selection = SelectionPolicy(selection)
        self.selection_rank = selection_rank

    def __call__(self, flat_floats: Union[np.ndarray, Sequence[float]]) -> List[Detection]:
        raw = decode(flat_floats, self.record_width, self.score_activation)
        accepted = filter_detections(raw, self.confidence_threshold)
        kept = suppress(accepted, self.iou_threshold)
        selected = select(kept, self.selection, self.selection_rank)

        logger.debug(
            f"Detector rows: {len(raw)}, above threshold: {len(accepted)}, "
            f"after NMS: {len(kept)}, selected: {len(selected)}"
        )
        return selected

    def __repr__(self) -> str:
        return (
            f"DetectionPostprocessor(threshold={self.confidence_threshold}, "
            f"iou={self.iou_threshold}, selection={self.selection.value})"
        )
