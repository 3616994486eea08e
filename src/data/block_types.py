"""Enumerations shared by the detection and recognition stages."""

from enum import Enum


class FormulaType(int, Enum):
    """Formula classes emitted by the detector head."""

    EMBEDDING = 0  # inline formula inside a text line
    ISOLATED = 1  # display formula on its own line

    @classmethod
    def label_for(cls, class_id: int) -> str:
        """Return the label for a class id, or 'unknown' for ids outside the enum."""
        try:
            return cls(class_id).name.lower()
        except ValueError:
            return "unknown"


class SelectionPolicy(str, Enum):
    """Which ranked detections are passed on to recognition."""

    ALL = "all"
    BEST = "best"
    RANK = "rank"  # only the detection at a configured rank


class RegionOrder(str, Enum):
    """Order of regions in the pipeline output."""

    CONFIDENCE = "confidence"  # ranked order produced by suppression
    READING = "reading"  # top-to-bottom, left-to-right


class ScoreActivation(str, Enum):
    """Activation applied to raw detector confidences before thresholding."""

    IDENTITY = "identity"
    SIGMOID = "sigmoid"
